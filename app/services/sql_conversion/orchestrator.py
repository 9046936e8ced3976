"""ConversionOrchestrator – high-level driver for dialect conversion.

Responsibilities
----------------
1. Split SQL text into statements (semicolons outside literals, ``/`` after
   PL/SQL blocks).
2. Convert every statement through `StatementConverter`, optionally in a
   thread pool, and reassemble the text in input order.
3. Optionally validate each statement pair and fold the findings into the
   outcome.
4. File mode: locate input *.sql files, write converted copies to
   `converted/<pair>_<timestamp>`, produce `conversion_summary.json` and the
   manual-review log.

Rewrites happen in the converter layer; this module splits, aggregates,
logs and does the file I/O.

WHAT THIS CLASS DOES:
====================
- Resolves the dialect pair once; unknown names fail at construction.
- Creates the StatementConverter (and the validator when requested).
- Converts text (`convert_sql`) or whole directories (`convert_directory`).
- Turns an unexpected failure on one statement into an ERROR warning and
  returns that statement unchanged; the rest of the run continues.

ENTRY POINTS:
=============
  - convert_sql(): SQL text in, ConversionOutcome out.
  - convert_directory(): File-mode run, returns the summary dictionary and
    mirrors its log into <output_dir>/conversion.log.

Helpers:
  - Splitting and reassembling statements (_split, _join).
  - Converting one statement with error capture and validation (_convert_statement).
  - Running the statement list serially or in the pool (_convert_all).
  - Per-file processing and summary writing (_run_files, _process_file,
    _write_conversion_summary_to_file).
"""

# Standard library imports
import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

# Local application imports
from app.config import config
from app.utils.file_utils import create_processing_stats, find_sql_files, read_file_content, write_file_content, write_json
from app.utils.path_utils import create_run_directory
from app.utils.logger import attach_run_log, detach_run_log, setup_logger
from .converters.declarative.statement_converter import StatementConverter, classify_statement
from .models import ConversionContext, ConversionOutcome, ConversionWarning, Severity, WarningKind
from .rules.registry import RuleRegistry, load_rule_registry
from .utils.dialect_utils import pair_name, resolve_pair
from .utils.manual_review_logger import ManualReviewLogger
from .utils.parser_utils import is_plsql_block, statement_spans
from .utils.result_formatter import create_result_dictionary, overall_status
from .validator import SqlConversionValidator, ValidationReport

PLSQL_TERMINATOR = '\n/'


@dataclass
class _Statement:
    text: str
    terminated: bool
    plsql: bool


@dataclass
class _StatementResult:
    original: str
    converted: str
    context: ConversionContext
    validation: Optional[ValidationReport] = None


class ConversionOrchestrator:

    def __init__(self, source, target, *, registry: Optional[RuleRegistry] = None, validate: bool = False,
                 max_workers: Optional[int] = None):
        self.logger = setup_logger("ConversionOrchestrator")
        self.source, self.target = resolve_pair(source, target)
        conversion_cfg = config.get('conversion', {})
        self.max_workers = max_workers if max_workers is not None else int(conversion_cfg.get('max_workers', 1))
        self.validate = validate
        self.registry = registry if registry is not None else load_rule_registry()
        self.statement_converter = StatementConverter(self.source, self.target, self.registry)
        self.validator = SqlConversionValidator() if validate else None
        self.logger.debug(f"Created converters for {pair_name(self.source, self.target)} "
                          f"(max_workers={self.max_workers}, validate={validate})")

    # ------------------------------------------------------------------
    # Text mode
    # ------------------------------------------------------------------

    def convert_sql(self, text: str) -> ConversionOutcome:
        """
        Converts SQL text holding one or more statements.

        Args:
            text: SQL in the source dialect.

        Returns:
            ConversionOutcome with the converted text, the warnings and applied
            rules of every statement in input order, and a quality score when
            validation is on.
        """
        if self.source is self.target or not text or not text.strip():
            return ConversionOutcome(converted_sql=text or '')

        statements = self._split(text)
        results = self._convert_all(statements)
        outcome = self._build_outcome(statements, results)
        self.logger.info(
            f"Converted {len(statements)} statement(s) {self.source.label} -> {self.target.label}: "
            f"{len(outcome.applied_rules)} rule(s) applied, {len(outcome.warnings)} warning(s)"
        )
        return outcome

    @staticmethod
    def _split(text: str) -> List[_Statement]:
        statements = []
        for start, end in statement_spans(text):
            chunk = text[start:end].strip()
            if not chunk:
                continue
            statements.append(_Statement(chunk, end < len(text), is_plsql_block(chunk)))
        return statements

    @staticmethod
    def _join(statements: List[_Statement], converted: List[str]) -> str:
        pieces = []
        for statement, sql in zip(statements, converted):
            if statement.terminated:
                sql += PLSQL_TERMINATOR if statement.plsql else ';'
            pieces.append(sql)
        return '\n'.join(pieces)

    def _convert_all(self, statements: List[_Statement]) -> List[_StatementResult]:
        if self.max_workers > 1 and len(statements) > 1:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(statements))) as executor:
                # map() yields in submission order
                return list(executor.map(self._convert_statement, range(len(statements)),
                                         [s.text for s in statements]))
        return [self._convert_statement(i, s.text) for i, s in enumerate(statements)]

    def _convert_statement(self, index: int, sql: str) -> _StatementResult:
        context = ConversionContext(self.source, self.target)
        try:
            converted = self.statement_converter.convert(sql, context)
        except Exception as e:
            self.logger.error(f"Statement {index + 1} could not be converted: {e}", exc_info=True)
            context = ConversionContext(self.source, self.target)
            context.warn(
                WarningKind.MANUAL_REVIEW_NEEDED,
                f"Statement {index + 1} could not be converted ({type(e).__name__}: {e}); it was left unchanged.",
                Severity.ERROR,
                "Convert the statement manually.",
            )
            converted = sql

        result = _StatementResult(sql, converted, context)
        if self.validator is not None:
            result.validation = self.validator.validate(sql, converted, self.source, self.target)
        return result

    def _build_outcome(self, statements: List[_Statement], results: List[_StatementResult]) -> ConversionOutcome:
        warnings: List[ConversionWarning] = []
        applied_rules: List[str] = []
        for result in results:
            warnings.extend(result.context.warnings)
            applied_rules.extend(result.context.applied_rules)

        quality_score = None
        reports = [r.validation for r in results if r.validation is not None]
        if reports:
            for report in reports:
                warnings.extend(report.warnings)
            # the weakest statement decides
            quality_score = min(report.quality_score for report in reports)

        return ConversionOutcome(
            converted_sql=self._join(statements, [r.converted for r in results]),
            warnings=tuple(warnings),
            applied_rules=tuple(applied_rules),
            quality_score=quality_score,
        )

    # ------------------------------------------------------------------
    # File mode
    # ------------------------------------------------------------------

    def convert_directory(self, input_path: str, output_dir: Optional[str] = None) -> Dict:
        """
        Converts every .sql file under *input_path* (a directory or a single file).

        Args:
            input_path: Directory or file containing SQL files to convert
            output_dir: Where to write the converted files; defaults to a new
                timestamped folder under the workspace ``converted`` directory

        Returns:
            Dictionary containing conversion results and statistics
        """
        sql_files = find_sql_files(input_path)
        if not sql_files:
            self.logger.warning(f"No SQL files found in: {input_path}")
            return create_result_dictionary("error", f"No SQL files found in {input_path}",
                                            create_processing_stats(), [], output_dir)

        pair = pair_name(self.source, self.target)
        output_dir = Path(output_dir) if output_dir else create_run_directory(prefix=pair)
        output_dir.mkdir(parents=True, exist_ok=True)
        run_log = attach_run_log(self.logger, output_dir)
        try:
            return self._run_files(sql_files, input_path, output_dir)
        finally:
            detach_run_log(self.logger, run_log)

    def _run_files(self, sql_files: List[str], input_path: str, output_dir: Path) -> Dict:
        self.logger.info(f"Processing {len(sql_files)} SQL files from: {input_path}")
        self.logger.info(f"Output directory: {output_dir}")

        review_logger = ManualReviewLogger(output_dir=str(output_dir), logger=self.logger)
        stats = create_processing_stats()
        stats['total_files'] = len(sql_files)

        file_results = []
        for i, file_path in enumerate(sql_files, 1):
            self.logger.info(f"[{i}/{len(sql_files)}] Processing: {os.path.basename(file_path)}")
            file_results.append(self._process_file(file_path, input_path, output_dir, stats, review_logger))

        review_log = review_logger.write_manual_review_log()
        if review_log:
            self.logger.info("\n" + review_logger.create_summary_report())
        status = overall_status(file_results)
        summary = create_result_dictionary(
            status,
            f"Conversion finished for {len(sql_files)} files ({self.source.label} -> {self.target.label}).",
            stats,
            file_results,
            str(output_dir),
            summary_file=str(output_dir / "conversion_summary.json"),
            manual_review_log=review_log,
        )
        self._write_conversion_summary_to_file(summary, output_dir)
        return summary

    def _process_file(self, file_path: str, input_path: str, output_dir: Path, stats: Dict,
                      review_logger: ManualReviewLogger) -> Dict:
        relative = self._relative_name(file_path, input_path)
        content = read_file_content(file_path)
        if content is None:
            self.logger.warning(f"Skipping empty or unreadable file: {relative}")
            return {'file_name': relative, 'status': 'skipped', 'message': 'Empty or unreadable file',
                    'statements': 0, 'warnings': [], 'applied_rules': []}

        if self.source is self.target:
            statements, results = [], []
            converted_text = content
        else:
            statements = self._split(content)
            results = self._convert_all(statements)
            converted_text = self._build_outcome(statements, results).converted_sql

        output_path = output_dir / relative
        try:
            write_file_content(output_path, converted_text if converted_text.endswith('\n') else converted_text + '\n')
        except OSError as e:
            self.logger.error(f"Failed to write {output_path}: {e}", exc_info=True)
            stats['files_failed'] += 1
            return {'file_name': relative, 'status': 'error', 'message': f"Failed to write output: {e}",
                    'statements': len(statements), 'warnings': [], 'applied_rules': []}

        warnings, applied_rules = [], []
        for number, result in enumerate(results, 1):
            statement_warnings = list(result.context.warnings)
            if result.validation is not None:
                statement_warnings.extend(result.validation.warnings)
            review_logger.log_warnings(relative, number, statement_warnings,
                                       classify_statement(result.original).value, result.original)
            warnings.extend(w.to_dict() for w in statement_warnings)
            applied_rules.extend(result.context.applied_rules)
            if result.converted != result.original:
                stats['statements_changed'] += 1

        errors = sum(1 for w in warnings if w['severity'] == Severity.ERROR.value)
        stats['files_converted'] += 1
        stats['total_statements'] += len(statements)
        stats['warnings'] += len(warnings)
        stats['errors'] += errors
        self.logger.info(f"Wrote {len(statements)} statement(s) to: {output_path} ({len(warnings)} warning(s))")
        return {
            'file_name': relative,
            'status': 'success',
            'message': f"Converted {relative}" + (f" with {errors} error(s)" if errors else ''),
            'output_file': str(output_path),
            'statements': len(statements),
            'warnings': warnings,
            'applied_rules': applied_rules,
        }

    @staticmethod
    def _relative_name(file_path: str, input_path: str) -> str:
        if os.path.isdir(input_path):
            return os.path.relpath(file_path, input_path)
        return os.path.basename(file_path)

    def _write_conversion_summary_to_file(self, summary_data_dict: Dict, output_dir: Path):
        summary_path = output_dir / "conversion_summary.json"
        try:
            write_json(summary_path, summary_data_dict)
        except (OSError, TypeError) as e:
            self.logger.error(f"Failed to write conversion summary to {summary_path}: {e}", exc_info=True)
            return
        self.logger.info(f"Conversion summary written to: {summary_path}")
