import logging
import sys

_NO_BATCH = "-"


class _BatchContextFilter(logging.Filter):
    """Stamps every record with the id of the batch currently running."""

    def __init__(self) -> None:
        super().__init__()
        self.batch_id = _NO_BATCH

    def filter(self, record: logging.LogRecord) -> bool:
        record.batch_id = self.batch_id
        return True


class Log:
    """Process-wide logging facade; lines carry the active batch id."""

    _logger: logging.Logger = logging.getLogger("fiscal_indexer")
    _context: _BatchContextFilter = _BatchContextFilter()

    @classmethod
    def configure(cls, log_level: str) -> None:
        """Set the level and attach a single stdout handler."""
        cls._logger.setLevel(log_level.upper())
        if not cls._logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(
                logging.Formatter("%(asctime)s [%(levelname)s] [%(batch_id)s] %(message)s")
            )
            handler.addFilter(cls._context)
            cls._logger.addHandler(handler)

    @classmethod
    def bind_batch(cls, batch_id: str) -> None:
        """Tag subsequent log lines with this batch id."""
        cls._context.batch_id = batch_id

    @classmethod
    def clear_batch(cls) -> None:
        """Stop tagging log lines with a batch id."""
        cls._context.batch_id = _NO_BATCH

    @classmethod
    def info(cls, message: str, **kwargs: object) -> None:
        """Log at info level."""
        cls._logger.info(message, extra=kwargs)

    @classmethod
    def warning(cls, message: str, **kwargs: object) -> None:
        """Log at warning level."""
        cls._logger.warning(message, extra=kwargs)

    @classmethod
    def error(cls, message: str, **kwargs: object) -> None:
        """Log at error level."""
        cls._logger.error(message, extra=kwargs)

    @classmethod
    def exception(cls, message: str, **kwargs: object) -> None:
        """Log at error level with the active exception's traceback."""
        cls._logger.exception(message, extra=kwargs)

    @classmethod
    def debug(cls, message: str, **kwargs: object) -> None:
        """Log at debug level."""
        cls._logger.debug(message, extra=kwargs)
