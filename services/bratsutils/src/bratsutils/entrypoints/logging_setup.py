import logging
import sys


class ProcessOutputFormatter(logging.Formatter):
    """Print child output raw; everything else gets the usual prefix."""

    def __init__(self) -> None:
        super().__init__("%(asctime)s - %(levelname)-8s - [%(name)s] - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        if record.name.startswith("proc."):
            return record.getMessage()
        return super().format(record)


def configure_logging(verbose: bool = False) -> None:
    """Send logs to stderr unless the host process already configured logging."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(ProcessOutputFormatter())
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, handlers=[handler])
    # Child output already reaches the terminal through the supervisor's sink.
    logging.getLogger("proc").setLevel(logging.INFO)
