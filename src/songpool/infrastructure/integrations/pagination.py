"""Pagination walker for Spotify list endpoints."""

import logging
from typing import Any

from songpool.domain.dtos import PageDTO
from songpool.infrastructure.integrations.request_executor import RequestExecutor
from songpool.infrastructure.rate_limiter import Priority

logger = logging.getLogger(__name__)


class PaginationWalker:
    """Follows Spotify `next` URLs until a list is exhausted.

    Hey future me - every page is a separate executor call, so every page pays a
    token and gets the full retry treatment. There is no page cap here; callers pass
    max_items when they want a guard against pathological responses (a "playlist"
    with a million entries, or a `next` that never turns null).
    """

    def __init__(self, executor: RequestExecutor) -> None:
        self.executor = executor

    async def fetch_all_pages(
        self,
        initial_url: str,
        identity: str,
        credential: str,
        priority: Priority = Priority.NORMAL,
        max_items: int | None = None,
    ) -> list[dict[str, Any]]:
        """Fetch every page starting at `initial_url` and concatenate the items.

        Args:
            initial_url: First page URL
            identity: User id for rate limiting
            credential: OAuth bearer token
            priority: Limiter priority used for every page
            max_items: Optional cap on accumulated items

        Returns:
            All items in page order
        """
        items: list[dict[str, Any]] = []
        next_url: str | None = initial_url
        pages = 0

        while next_url:
            payload = await self.executor.execute(next_url, credential, identity, priority)
            page = PageDTO.from_spotify(payload)
            items.extend(page.items)
            pages += 1

            if max_items is not None and len(items) >= max_items:
                if page.next:
                    logger.warning(
                        "Stopping pagination of %s at %d items (cap %d)",
                        initial_url,
                        len(items),
                        max_items,
                    )
                return items[:max_items]

            next_url = page.next

        logger.debug("Fetched %d items in %d pages from %s", len(items), pages, initial_url)
        return items
