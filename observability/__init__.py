"""Observability package for the knowledgebase core."""

from .logging import (
    JSONFormatter,
    ColoredFormatter,
    setup_logging,
    get_logger,
    get_structured_logger,
    StructuredLogger,
    log_performance
)

__all__ = [
    'JSONFormatter',
    'ColoredFormatter',
    'setup_logging',
    'get_logger',
    'get_structured_logger',
    'StructuredLogger',
    'log_performance'
]
