"""Exception hierarchy for the SQL conversion service.

SQL *content* problems never raise: they are reported as conversion
warnings. These exceptions cover caller and configuration mistakes, which are
detected when a converter or registry is constructed.
"""


class SqlConversionError(Exception):
    """Base exception for conversion errors."""


class UnsupportedDialectError(SqlConversionError, ValueError):
    """Dialect name that the engine does not know."""

    def __init__(self, dialect_name: str) -> None:
        self.dialect_name = dialect_name
        super().__init__(f"Unsupported dialect: {dialect_name!r}")


class RuleConfigurationError(SqlConversionError):
    """Invalid or inconsistent rule table."""

    def __init__(self, message: str, pair: str | None = None) -> None:
        self.pair = pair
        if pair:
            message = f"{pair}: {message}"
        super().__init__(message)
