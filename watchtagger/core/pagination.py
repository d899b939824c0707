"""Exhaustive fetch over paginated collaborators (Overseerr, Tautulli)."""
from typing import Any, Awaitable, Callable, Dict, Hashable, TypeVar

import structlog

from watchtagger.core.errors import FetchFailed
from watchtagger.core.models import DrainResult, Page

logger = structlog.get_logger(__name__)

T = TypeVar("T")

PAGINATION_MAX_SIZE = 100

FetchPage = Callable[[int, int], Awaitable[Page[T]]]


async def drain(
    fetch_page: FetchPage,
    key: Callable[[T], Hashable],
    page_size: int = PAGINATION_MAX_SIZE,
    source: str = "unknown",
) -> DrainResult[T]:
    """Fetch every page and merge the results by identity key.

    Offsets advance by the page size the server reports, not the one we asked
    for. Stops on a page whose offset does not advance, that comes back empty
    or that only repeats items already seen, and flags the result as partial.
    A failing page raises ``FetchFailed`` with the items collected so far.
    """
    collected: Dict[Hashable, T] = {}

    def merge(page: Page[T]) -> int:
        added = 0
        for item in page.items:
            item_key = key(item)
            if item_key not in collected:
                collected[item_key] = item
                added += 1
        return added

    page = await fetch_page(0, page_size)
    total = page.total_count
    if total <= 0:
        return DrainResult(items=[], total_count=0)
    merge(page)

    offset = page.current_offset
    step = page.page_size
    partial = False
    pages = 1

    while len(collected) < total:
        if step <= 0:
            partial = True
            break
        try:
            page = await fetch_page(offset + step, step)
        except FetchFailed as e:
            logger.error(
                "pagination_fetch_failed",
                source=source,
                offset=offset + step,
                collected=len(collected),
                total=total,
                error=str(e),
            )
            raise FetchFailed(str(e), partial=list(collected.values())) from e
        pages += 1

        if page.current_offset <= offset or not page.items:
            partial = True
            break
        # a page of already-seen items ends the drain
        if merge(page) == 0:
            partial = True
            break
        offset = page.current_offset
        step = page.page_size

    if partial:
        logger.warning(
            "pagination_partial",
            source=source,
            collected=len(collected),
            total=total,
            pages=pages,
        )
    else:
        logger.debug("pagination_drained", source=source, total=total, pages=pages)

    return DrainResult(items=list(collected.values()), total_count=total, partial=partial)


def page_from_overseerr(data: Dict[str, Any], parse: Callable[[Dict[str, Any]], T]) -> Page[T]:
    """Adapt an Overseerr ``{pageInfo, results}`` body to a Page."""
    data = data or {}
    page_info = data.get("pageInfo") or {}
    page_size = int(page_info.get("pageSize") or 0)
    current_page = int(page_info.get("page") or 1)
    return Page(
        items=[parse(raw) for raw in data.get("results") or []],
        total_count=int(page_info.get("results") or 0),
        page_size=page_size,
        current_offset=max(current_page - 1, 0) * page_size,
    )


def page_from_tautulli(data: Dict[str, Any], start: int, parse: Callable[[Dict[str, Any]], T]) -> Page[T]:
    """Adapt a Tautulli ``get_history`` body to a Page.

    Tautulli does not echo the page size, the row count stands in for it.
    """
    data = data or {}
    rows = data.get("data") or []
    total = data.get("recordsFiltered")
    if total is None:
        total = data.get("recordsTotal") or 0
    return Page(
        items=[parse(row) for row in rows],
        total_count=int(total),
        page_size=len(rows),
        current_offset=start,
    )
