"""Utility modules."""

from src.utils.logger import get_logger
from src.utils.tasks import gather_settled
from src.utils.tracing import init_tracing

__all__ = [
    "get_logger",
    "gather_settled",
    "init_tracing",
]
