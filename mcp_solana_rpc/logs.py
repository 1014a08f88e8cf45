"""
Logging setup.

Console logging goes to stderr (stdout is reserved for the stdio transport).
Tool handlers additionally write to the `diagnostics` logger, which appends to
a log file. That file is best effort: a failure to open or write it is
reported on stderr by `logging` and never reaches the caller.
"""

import logging

from mcp.server.fastmcp.utilities.logging import configure_logging as configure_console_logging
from mcp.server.fastmcp.utilities.logging import get_logger

from .config import Settings

DIAGNOSTICS_LOGGER = "mcp_solana_rpc.diagnostics"

diagnostics = get_logger(DIAGNOSTICS_LOGGER)


class BestEffortFileHandler(logging.FileHandler):
    """Append-only file handler that also swallows errors opening the file."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            super().emit(record)
        except Exception:
            self.handleError(record)


def configure_logging(settings: Settings) -> None:
    configure_console_logging(settings.log_level)

    # Replace a handler left over from a previous configure call
    for handler in list(diagnostics.handlers):
        if isinstance(handler, BestEffortFileHandler):
            diagnostics.removeHandler(handler)
            handler.close()

    file_handler = BestEffortFileHandler(settings.log_file, mode="a", encoding="utf-8", delay=True)
    file_handler.setFormatter(logging.Formatter("%(asctime)s: %(message)s"))
    diagnostics.addHandler(file_handler)
    diagnostics.setLevel(logging.DEBUG)
