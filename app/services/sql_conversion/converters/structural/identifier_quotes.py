from ..base_converter import BaseConverter
from ...models import ConversionContext, Dialect
from ...utils.parser_utils import apply_edits, literal_regions


class IdentifierQuoteConverter(BaseConverter):
    """Quoted identifiers: ``"name"`` in Oracle and PostgreSQL, `` `name` `` in MySQL."""
    name = 'identifier_quotes'

    def applies(self) -> bool:
        if self.source is self.target:
            return False
        return Dialect.MYSQL in (self.source, self.target)

    def convert(self, sql: str, context: ConversionContext) -> str:
        if not self.applies():
            return sql
        if self.target is Dialect.MYSQL:
            kind, quote, new_quote = 'identifier', '"', '`'
        else:
            kind, quote, new_quote = 'backtick', '`', '"'

        edits = []
        for region in literal_regions(sql):
            if region.kind != kind or not region.closed:
                continue
            name = sql[region.start + 1:region.end - 1].replace(quote * 2, quote)
            name = name.replace(new_quote, new_quote * 2)
            edits.append((region.start, region.end, f"{new_quote}{name}{new_quote}"))
        if not edits:
            return sql
        self.record(context, f"{quote}identifier{quote} -> {new_quote}identifier{new_quote}", len(edits))
        return apply_edits(sql, edits)
