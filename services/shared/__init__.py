"""
Shared utilities package.

This package contains database plumbing and resilience helpers used by
the presence service.
"""

from .utils.retry import CircuitBreaker, with_retry

__all__ = ["CircuitBreaker", "with_retry"]
