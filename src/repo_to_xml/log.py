"""
Logging setup for repo-to-xml.

Modules log through `logging.getLogger(__name__)`; the CLI routes the package
logger to a rich console.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

PACKAGE_LOGGER = "repo_to_xml"

console = Console()


def setup_logging(verbose: bool = False, log_console: Console | None = None) -> logging.Logger:
    """Route the package's log records to the terminal through rich.

    Calling it again replaces the previously installed handler, so repeated CLI
    invocations in one process do not duplicate lines.

    Args:
        verbose: Show INFO records (exclusions, progress) in addition to warnings.
        log_console: Console to render to (defaults to the shared console).

    Returns:
        The package logger.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=log_console or console,
        show_time=False,
        show_path=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO if verbose else logging.WARNING)
    return logger
