"""
Pagination
Sort order, cursor validation and page selection for search requests.

Results are sorted by score, then by title keyword with missing titles last.
The sort values of the last hit on a full page form the cursor for the next
page; callers echo it back unmodified as ``search_after``.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from .errors import InvalidCursorError, InvalidSearchRequestError

MIN_PAGE_SIZE = 1
MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 20

# Hits with no title report a null sort value for the title key
Cursor = Tuple[Union[str, int, float, None], ...]

SORT_SPEC: Tuple[Dict[str, Any], ...] = (
    {"_score": {"order": "desc"}},
    {"title.keyword": {"order": "asc", "missing": "_last"}},
)


@dataclass(frozen=True)
class PageRequest:
    """Resolved page selection. A cursor, when present, replaces the offset."""

    size: int = DEFAULT_PAGE_SIZE
    offset: int = 0
    cursor: Optional[Cursor] = None

    @property
    def uses_cursor(self) -> bool:
        return self.cursor is not None


def validate_cursor(raw: Any) -> Optional[Cursor]:
    """
    Check a caller-supplied cursor.

    Args:
        raw: Decoded JSON value from the request (None or empty for first page)

    Returns:
        Cursor tuple, or None when no cursor was supplied

    Raises:
        InvalidCursorError: If the cursor is not a list of numbers, strings or nulls
    """
    if raw is None:
        return None

    if not isinstance(raw, (list, tuple)):
        raise InvalidCursorError(
            "Cursor must be a list of sort values", details={"cursor": raw}
        )

    if not raw:
        return None

    for value in raw:
        if value is None:
            continue
        # bool is an int subclass but never a valid sort value
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            raise InvalidCursorError(
                "Cursor values must be numbers, strings or null", details={"cursor": list(raw)}
            )
        if isinstance(value, float) and not math.isfinite(value):
            raise InvalidCursorError(
                "Cursor values must be finite numbers", details={"cursor": list(raw)}
            )

    return tuple(raw)


def resolve_page(
    size: int = DEFAULT_PAGE_SIZE, offset: Optional[int] = 0, cursor: Any = None
) -> PageRequest:
    """
    Build the page selection for one request.

    Args:
        size: Requested page size (1-100)
        offset: Offset for offset-based paging (ignored when a cursor is given)
        cursor: Raw cursor from a previous response

    Returns:
        PageRequest

    Raises:
        InvalidSearchRequestError: If size or offset are out of range
        InvalidCursorError: If the cursor is malformed
    """
    if not MIN_PAGE_SIZE <= size <= MAX_PAGE_SIZE:
        raise InvalidSearchRequestError(
            f"size must be between {MIN_PAGE_SIZE} and {MAX_PAGE_SIZE}", details={"size": size}
        )

    offset = offset or 0
    if offset < 0:
        raise InvalidSearchRequestError("from must be >= 0", details={"from": offset})

    validated = validate_cursor(cursor)
    if validated is not None:
        return PageRequest(size=size, offset=0, cursor=validated)

    return PageRequest(size=size, offset=offset)


def next_cursor(sort_keys: Sequence[Sequence[Any]], size: int) -> Optional[List[Any]]:
    """
    Cursor for the page after this one.

    Args:
        sort_keys: Sort values of each hit on the page, in order
        size: Requested page size

    Returns:
        Sort values of the last hit when the page was full, else None
    """
    if not sort_keys or len(sort_keys) != size:
        return None

    last = sort_keys[-1]
    return list(last) if last else None


def build_pagination(
    page: PageRequest, total: int, next_page_cursor: Optional[List[Any]]
) -> Dict[str, Any]:
    """
    Pagination block for the response.

    Cursor-style when the request carried a cursor or a next cursor exists,
    offset-style otherwise.
    """
    if page.uses_cursor or next_page_cursor is not None:
        return {
            "size": page.size,
            "next_cursor": next_page_cursor,
            "has_more": next_page_cursor is not None,
        }

    return {
        "size": page.size,
        "from": page.offset,
        "total_pages": math.ceil(total / page.size) if total else 0,
    }
