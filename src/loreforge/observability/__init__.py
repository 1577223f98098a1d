"""Observability for LoreForge: structured logging and exchange capture."""

from loreforge.observability.exchange_logger import ExchangeLogEntry, ExchangeLogger
from loreforge.observability.logging import (
    bind_run_context,
    clear_run_context,
    close_file_logging,
    configure_logging,
    get_logger,
    get_logs_dir,
)

__all__ = [
    "ExchangeLogEntry",
    "ExchangeLogger",
    "bind_run_context",
    "clear_run_context",
    "close_file_logging",
    "configure_logging",
    "get_logger",
    "get_logs_dir",
]
