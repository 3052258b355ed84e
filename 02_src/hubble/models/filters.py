"""Listing filters and paged results."""

from dataclasses import dataclass, field

from .logs import DIAGNOSTIC_LABEL, GeneralLog

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 1000
STATUS_GROUPS = (100, 200, 300, 400, 500)
LOG_TYPE_HTTP = "HTTP"


def _coerce_positive_int(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        number = int(value)  # type: ignore[call-overload]
    except (TypeError, ValueError):
        return default
    return number if number >= 1 else default


@dataclass
class LogFilter:
    """Filter over envelope records. All set criteria are ANDed."""

    method: str | None = None
    url: str | None = None
    status_group: int | None = None
    log_type: str | None = None
    exclude_related: bool = True
    page: int = DEFAULT_PAGE
    page_size: int = DEFAULT_PAGE_SIZE

    @classmethod
    def from_params(
        cls,
        method: str | None = None,
        url: str | None = None,
        status_group: object = None,
        log_type: str | None = None,
        page: object = None,
        page_size: object = None,
        exclude_related: bool | None = None,
    ) -> "LogFilter":
        """Build a filter from loosely-typed input, substituting defaults."""
        group: int | None = None
        if status_group not in (None, ""):
            try:
                group = int(status_group)  # type: ignore[call-overload]
            except (TypeError, ValueError):
                group = None
            if group not in STATUS_GROUPS:
                group = None

        log_type = log_type or None
        if log_type not in (None, DIAGNOSTIC_LABEL, LOG_TYPE_HTTP):
            log_type = None

        if exclude_related is None:
            # Children are only listed when diagnostic records are requested
            exclude_related = log_type != DIAGNOSTIC_LABEL

        return cls(
            method=method.strip().upper() if method and method.strip() else None,
            url=url if url and url.strip() else None,
            status_group=group,
            log_type=log_type,
            exclude_related=exclude_related,
            page=_coerce_positive_int(page, DEFAULT_PAGE),
            page_size=min(
                _coerce_positive_int(page_size, DEFAULT_PAGE_SIZE), MAX_PAGE_SIZE
            ),
        )

    @property
    def url_words(self) -> list[str]:
        """Whitespace-separated words of the free-text URL filter."""
        return self.url.split() if self.url else []

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


@dataclass
class LogPage:
    """One page of a filtered listing."""

    logs: list[GeneralLog]
    page: int
    page_size: int
    total_count: int
    total_pages: int = field(init=False)

    def __post_init__(self) -> None:
        self.total_pages = max(1, -(-self.total_count // self.page_size))

    @property
    def has_next_page(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_previous_page(self) -> bool:
        return self.page > 1
