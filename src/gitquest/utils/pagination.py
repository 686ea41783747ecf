"""Pagination utilities for GitHub API."""

from collections.abc import Awaitable, Callable
from typing import Any


def build_page_params(page: int, per_page: int = 100, **params: Any) -> dict[str, Any]:
    """Build query parameters for a page-number paginated request.

    Args:
        page: Page number (1-indexed)
        per_page: Items per page (max 100 for most GitHub APIs)
        **params: Extra query parameters; ``None`` values are dropped

    Returns:
        Query parameter dict with page and per_page set
    """
    query = {key: value for key, value in params.items() if value is not None}
    query["page"] = page
    query["per_page"] = per_page
    return query


def is_last_page(items: list[Any], per_page: int) -> bool:
    """A short (or empty) page means GitHub has nothing more to return."""
    return len(items) < per_page


async def collect_pages(
    fetch_page: Callable[[int], Awaitable[list[dict[str, Any]]]],
    max_pages: int | None,
    per_page: int = 100,
) -> list[dict[str, Any]]:
    """Fetch consecutive pages until a short page or the page cap.

    Args:
        fetch_page: Coroutine function taking a 1-indexed page number
        max_pages: Maximum number of pages to fetch (None for all)
        per_page: Page size the fetcher requests

    Returns:
        Items from every fetched page, in page order
    """
    items: list[dict[str, Any]] = []
    page = 1
    while max_pages is None or page <= max_pages:
        batch = await fetch_page(page)
        items.extend(batch)
        if is_last_page(batch, per_page):
            break
        page += 1
    return items
