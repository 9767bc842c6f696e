"""
Document Discovery

Walks paginated search results to enumerate the document ids of a group.
All-or-nothing: any search error propagates and no partial id set is returned.
"""

from confroad.common.config import SearchPattern
from confroad.common.logging_setup import get_service_logger

from .source import RemoteSource

logger = get_service_logger("config.discovery")


async def discover_ids(
    source: RemoteSource,
    group: str,
    pattern: SearchPattern,
    page_size: int,
    data_id: str = "",
) -> list[str]:
    """
    Enumerate document ids in a group.

    Pages are requested from 1 upward until page_no * page_size reaches the
    reported total count, so a total of 0 stops after the first page and a
    page beyond the total is never requested. If the remote count changes
    mid-walk the result is best-effort.

    Args:
        source: Remote source to search
        group: Group to enumerate
        pattern: Search mode (accurate or blur)
        page_size: Items per page (>= 1)
        data_id: Optional id filter passed to the search

    Returns:
        Unique document ids in first-seen order

    Raises:
        ValueError: page_size < 1
        RemoteUnavailableError: any search failure
    """
    if page_size < 1:
        raise ValueError(f"page_size must be >= 1, got {page_size}")

    ids: dict[str, None] = {}
    page_no = 1
    while True:
        page = await source.search(group, pattern, page_size, page_no, data_id)
        for item in page.items:
            ids.setdefault(item.document_id, None)

        logger.debug(
            f"Discovery page {page_no}: {len(page.items)} items (total {page.total_count})",
            extra={"group": group, "page_no": page_no, "total_count": page.total_count},
        )

        if page_no * page_size >= page.total_count:
            break
        page_no += 1

    logger.info(
        f"Discovered {len(ids)} documents in group {group} ({page_no} pages)",
        extra={"group": group, "document_count": len(ids), "pages": page_no},
    )
    return list(ids)
