"""
Observability features for keystore.
"""

from .metrics import KeyStoreMetrics, get_metrics_collector
from .logging import setup_logging, get_logger

__all__ = [
    "KeyStoreMetrics",
    "get_metrics_collector",
    "setup_logging",
    "get_logger",
]
