# backend/cryptofolio/utils/__init__.py
"""
Cross-cutting utilities for the portfolio analytics engine.

- logging: Logging configuration with correlation ID support
- context: Correlation ID storage (contextvars)

Usage:
    from cryptofolio.utils import setup_logging, correlation_scope
"""

from cryptofolio.utils.context import (
    get_correlation_id,
    set_correlation_id,
    clear_correlation_id,
    new_correlation_id,
    correlation_scope,
    submit_with_context,
)
from cryptofolio.utils.logging import setup_logging

__all__ = [
    # Logging
    "setup_logging",
    # Context
    "get_correlation_id",
    "set_correlation_id",
    "clear_correlation_id",
    "new_correlation_id",
    "correlation_scope",
    "submit_with_context",
]
