import logging
import sys
import warnings

from gitpin.exceptions import OverrideRevisionMismatchWarning

logger = logging.getLogger("gitpin")


class ProgressFormatter(logging.Formatter):
    """Plain progress lines; warnings and errors carry their level."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        if record.levelno >= logging.WARNING:
            return f"{record.levelname.capitalize()}: {message}"
        return message


def configure_logging(debug: bool, quiet: bool = False):
    """
    Configures the gitpin logger for CLI output.

    Progress goes to the current stdout at INFO, or DEBUG with ``debug``;
    ``quiet`` only keeps warnings and errors.
    """
    if debug:
        log_level = logging.DEBUG
    elif quiet:
        log_level = logging.WARNING
    else:
        log_level = logging.INFO
    logger.setLevel(log_level)

    for handler in list(logger.handlers):
        if getattr(handler, "_gitpin_cli", False):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ProgressFormatter("%(message)s"))
    handler._gitpin_cli = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.propagate = False

    # Already reported through the logger by the override validator
    warnings.filterwarnings("ignore", category=OverrideRevisionMismatchWarning)
