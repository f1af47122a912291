import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(verbose: bool = False, console: Optional[Console] = None) -> None:
    """Route log records through rich; DEBUG when verbose, warnings otherwise"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
        force=True,
    )
