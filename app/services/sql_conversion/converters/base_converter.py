from app.utils.logger import setup_logger
from ..models import ConversionContext, Dialect


class BaseConverter:
    """
    A base class for all converters to ensure a consistent interface.

    A converter is built once per dialect pair and holds no per-call state, so
    one instance may be shared by any number of threads. Everything a single
    conversion produces goes into the ConversionContext passed to convert().
    """
    name = 'base'

    def __init__(self, source: Dialect, target: Dialect):
        self.source = Dialect.from_name(source)
        self.target = Dialect.from_name(target)
        self.logger = setup_logger(type(self).__name__)

    def applies(self) -> bool:
        """Whether this converter has anything to do for its dialect pair."""
        return self.source is not self.target

    def convert(self, sql: str, context: ConversionContext) -> str:
        """
        The main conversion method that each converter must implement.

        Args:
            sql (str): A single SQL statement (or fragment) to convert.
            context: Collector for the warnings and applied rules of this call.

        Returns:
            The converted SQL text. Must return the input unchanged when there
            is nothing to rewrite.
        """
        raise NotImplementedError("Each converter must implement its own convert method.")

    def record(self, context: ConversionContext, description: str, count: int = 1) -> None:
        """Log and record one applied rewrite (only called when the text changed)."""
        label = f"{description} (x{count})" if count > 1 else description
        self.logger.debug(f"[{self.source.value}->{self.target.value}] {label}")
        context.applied(label)
