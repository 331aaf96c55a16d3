"""
Package logging (Rich console + plain-text file)

  - Console: RichHandler (colors, timestamps, markup)
  - File:    FileHandler (plain text, Rich markup stripped)

Usage:
    from .log import get_logger, literal, setup_logging

    logger = get_logger("paginator")     # es_pager.paginator
    setup_logging(log_file=Path("bench.log"))
    logger.info("[bold green]done[/bold green]")
    logger.error(f"***query1|{literal(err)}")    # server text, brackets kept
"""

import logging
import time
from pathlib import Path

from rich.errors import MarkupError
from rich.logging import RichHandler
from rich.markup import escape
from rich.text import Text

PKG = "es_pager"


class _PlainFormatter(logging.Formatter):
    """FileHandler formatter that strips Rich markup tags."""

    def format(self, record: logging.LogRecord) -> str:
        original_msg = record.msg
        try:
            record.msg = Text.from_markup(str(record.msg)).plain
        except (MarkupError, ValueError, KeyError, AttributeError):
            pass
        result = super().format(record)
        record.msg = original_msg
        return result


def setup_logging(
    log_file: Path = None,
    level: int = logging.INFO,
) -> logging.Logger:
    """
    Attach handlers to the package root logger.

    - RichHandler: added once
    - FileHandler: added on every call that passes log_file
    """
    logger = logging.getLogger(PKG)
    logger.setLevel(level)

    has_rich = any(isinstance(h, RichHandler) for h in logger.handlers)
    if not has_rich:
        console = RichHandler(
            rich_tracebacks=True,
            show_path=False,
            markup=True,
            log_time_format="[%H:%M:%S]",
        )
        console.setLevel(level)
        logger.addHandler(console)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setFormatter(_PlainFormatter("%(asctime)s  %(name)s  %(message)s"))
        fh.setLevel(level)
        logger.addHandler(fh)

    return logger


def run_log_file(log_dir: Path, prefix: str) -> Path:
    """logs/<prefix>_YYYYmmdd_HHMMSS.log"""
    return log_dir / f"{prefix}_{time.strftime('%Y%m%d_%H%M%S')}.log"


def get_logger(name: str) -> logging.Logger:
    """get_logger("fanout") -> logging.getLogger("es_pager.fanout")"""
    return logging.getLogger(f"{PKG}.{name}")


def literal(value) -> str:
    """
    Outside text (server error reasons, index names, predicate values) for a
    markup-enabled log line: brackets such as "[/idx/_pit]" print as-is
    instead of being read as Rich tags.
    """
    return escape(str(value))
