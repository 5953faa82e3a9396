"""Input normalization for entry mutations and queries."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import MAXYEAR, date, datetime
from typing import Any, Optional, Sequence

from ...config import EntriesConfig
from ..entrystore.errors import ValidationError
from ..entrystore.models import Visibility


@dataclass(frozen=True)
class EntryPayload:
    content: str
    tags: tuple[str, ...]
    visibility: Visibility


class EntryValidator:
    """Applies the configured content/tag limits."""

    def __init__(self, config: EntriesConfig | None = None) -> None:
        self._config = config or EntriesConfig()

    @property
    def config(self) -> EntriesConfig:
        return self._config

    def payload(
        self,
        *,
        content: Any,
        tags: Optional[Sequence[Any]],
        visibility: Any = None,
    ) -> EntryPayload:
        return EntryPayload(
            content=self.content(content),
            tags=self.tags(tags),
            visibility=parse_visibility(visibility, default=Visibility.PRIVATE),
        )

    def content(self, value: Any) -> str:
        if not isinstance(value, str) or not value.strip():
            raise _invalid("content is required", field="content")
        if len(value) > self._config.max_content_length:
            raise _invalid(
                f"content exceeds maximum length of {self._config.max_content_length} characters",
                field="content",
            )
        return value

    def tags(self, values: Optional[Sequence[Any]]) -> tuple[str, ...]:
        if values is None:
            return tuple()
        if isinstance(values, str):
            raise _invalid("tags must be a list of strings", field="tags")
        cleaned: list[str] = []
        for value in values:
            if not isinstance(value, str):
                raise _invalid("tags must be a list of strings", field="tags")
            tag = value.strip()
            if not tag:
                continue
            if len(tag) > self._config.max_tag_length:
                raise _invalid(
                    f"Tag exceeds maximum length of {self._config.max_tag_length} characters",
                    field="tags",
                )
            cleaned.append(tag)
        if len(cleaned) > self._config.max_tags:
            raise _invalid(
                f"Maximum {self._config.max_tags} tags allowed",
                field="tags",
            )
        return tuple(cleaned)

    def page_size(self, value: Optional[int]) -> int:
        if value is None:
            return self._config.default_page_size
        if not isinstance(value, int) or isinstance(value, bool) or value < 1:
            raise _invalid("page_size must be a positive integer", field="page_size")
        if value > self._config.max_page_size:
            raise _invalid(
                f"page_size must not exceed {self._config.max_page_size}",
                field="page_size",
            )
        return value


def parse_visibility(value: Any, *, default: Optional[Visibility] = None) -> Any:
    if value is None or value == "":
        return default
    if isinstance(value, Visibility):
        return value
    try:
        return Visibility(str(value).lower())
    except ValueError:
        raise _invalid(
            "visibility must be 'public' or 'private'", field="visibility"
        ) from None


def parse_date(value: Any, *, field: str = "entry_date") -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        # Full timestamps are accepted and truncated to their date.
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
    raise _invalid(f"{field} must be a YYYY-MM-DD date", field=field)


def require_page(value: Optional[int]) -> int:
    if value is None:
        return 1
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise _invalid("page must be a positive integer", field="page")
    return value


def require_ordinal(value: Optional[int]) -> int:
    if value is None:
        return 1
    if not isinstance(value, int) or isinstance(value, bool) or value < 1:
        raise _invalid("ordinal must be a positive integer", field="ordinal")
    return value


def require_year(value: Optional[int]) -> Optional[int]:
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool):
        raise _invalid("year must be an integer", field="year")
    if not 1 <= value < MAXYEAR:
        raise _invalid(f"year must be between 1 and {MAXYEAR - 1}", field="year")
    return value


def require_month(value: Optional[int]) -> Optional[int]:
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool) or not 1 <= value <= 12:
        raise _invalid("month must be between 1 and 12", field="month")
    return value


def _invalid(message: str, *, field: str) -> ValidationError:
    return ValidationError(message, details={"field": field})
