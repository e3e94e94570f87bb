from __future__ import annotations

from typing import NamedTuple, Optional

from fastapi import Query

from flowdesk.config import get_settings


class Pagination(NamedTuple):
    limit: int
    offset: int


def _to_int(raw: Optional[str]) -> Optional[int]:
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_pagination(
    limit: Optional[str] = None,
    offset: Optional[str] = None,
    page: Optional[str] = None,
    *,
    default_limit: int = 20,
    max_limit: int = 100,
) -> Pagination:
    """Resolve ``limit``/``offset``/``page`` query values.

    Missing, unparsable or non-positive limits fall back to ``default_limit``;
    limits above ``max_limit`` are clamped to it. Negative or unparsable
    offsets become 0. A ``page`` of 1 or more replaces the offset with
    ``(page - 1) * limit``.
    """
    resolved_limit = _to_int(limit)
    if resolved_limit is None or resolved_limit < 1:
        resolved_limit = default_limit
    resolved_limit = max(1, min(resolved_limit, max_limit))

    resolved_offset = _to_int(offset)
    if resolved_offset is None or resolved_offset < 0:
        resolved_offset = 0

    resolved_page = _to_int(page)
    if resolved_page is not None and resolved_page >= 1:
        resolved_offset = (resolved_page - 1) * resolved_limit

    return Pagination(limit=resolved_limit, offset=resolved_offset)


class Paginate:
    """FastAPI dependency resolving pagination with a per-route default size."""

    def __init__(self, default_setting: str = "default_page_size") -> None:
        self.default_setting = default_setting

    def __call__(
        self,
        limit: Optional[str] = Query(None),
        offset: Optional[str] = Query(None),
        page: Optional[str] = Query(None),
    ) -> Pagination:
        settings = get_settings()
        return parse_pagination(
            limit,
            offset,
            page,
            default_limit=getattr(settings, self.default_setting),
            max_limit=settings.max_page_size,
        )


paginate = Paginate()
paginate_messages = Paginate("default_message_page_size")


def has_more(pagination: Pagination, returned: int, total: int) -> bool:
    return pagination.offset + returned < total
