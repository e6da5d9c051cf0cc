"""
Logging configuration for CLI runs.

Endpoint tables go to stdout through the rich console in ``javacli.cli``;
diagnostics go to stderr through logging. Library modules only call
``logging.getLogger(__name__)`` and never configure handlers themselves.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAMESPACE = "javacli"


def setup_cli_logging(*, verbose: bool = False, quiet: bool = False) -> None:
    """
    - quiet=True: only ERROR
    - verbose=True: DEBUG (per-file fallback decisions, cache keys)
    - default: INFO
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    root = logging.getLogger()

    # Remove existing handlers to avoid duplicate logs in pytest runs
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=False,
        show_path=verbose,
        rich_tracebacks=verbose,
    )
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root.addHandler(handler)
    root.setLevel(level)
    logging.getLogger(LOGGER_NAMESPACE).setLevel(level)
