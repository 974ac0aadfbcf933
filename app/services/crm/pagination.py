"""
Cursor pagination over Rollout CRM list endpoints.
"""

from collections.abc import AsyncIterator
from typing import Any

from app.config import settings
from app.services.rollout.client import CrmConnection
from app.utils.items import next_cursor

PAGE_SIZE = 100


async def iterate_pages(
    connection: CrmConnection,
    path: str,
    search_params: dict[str, Any] | None = None,
    page_size: int = PAGE_SIZE,
    max_requests: int | None = None,
) -> AsyncIterator[Any]:
    """
    Yield raw list responses page by page.

    Pages are requested strictly in order, each with the cursor of the previous
    one. Iteration ends when `_metadata.next` is missing or after
    `max_requests` requests (MAX_PAGINATED_REQUESTS by default).
    """
    if max_requests is None:
        max_requests = settings.MAX_PAGINATED_REQUESTS

    cursor = None
    for _ in range(max_requests):
        params: dict[str, Any] = {"limit": page_size}
        params.update(search_params or {})
        if cursor:
            params["next"] = cursor

        data = await connection.request(path, search_params=params)
        yield data

        cursor = next_cursor(data)
        if not cursor:
            return
