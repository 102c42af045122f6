import logging

from rich.console import Console
from rich.logging import RichHandler


def setup_logger(name: str = "skybastion", level: int = logging.ERROR) -> logging.Logger:
    """Configures and returns a logger with RichHandler."""

    logger = logging.getLogger(name)

    # Calling setup twice (CLI after import) must not duplicate handlers

    if not logger.handlers:
        logger.setLevel(level)

        # stderr keeps stdout clean for --json output
        handler = RichHandler(
            console=Console(stderr=True), rich_tracebacks=True, markup=True
        )

        handler.setFormatter(logging.Formatter("%(message)s"))

        logger.addHandler(handler)

    else:
        logger.setLevel(level)

    return logger


# Global logger instance (default to ERROR, the CLI raises it)


logger = setup_logger(level=logging.ERROR)
