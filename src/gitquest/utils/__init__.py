"""Utility modules for gitquest."""

from gitquest.utils.pagination import build_page_params, collect_pages, is_last_page
from gitquest.utils.rate_limiter import (
    RateLimitExecutor,
    RateLimitState,
    format_reset_time,
    format_time_remaining,
)

__all__ = [
    "RateLimitExecutor",
    "RateLimitState",
    "format_time_remaining",
    "format_reset_time",
    "build_page_params",
    "collect_pages",
    "is_last_page",
]
