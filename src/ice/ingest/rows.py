"""
Parsed row shapes handed over by the spreadsheet parser.

The parser emits camelCase keys (fullName, articleId, publishedAt, ...).
Each row carries a ``kind`` tag so a mixed list validates into the right
model, and the one place that needs to tell them apart can match on it.
"""
from datetime import date as date_type, datetime, timezone
from typing import Annotated, Any, Dict, Iterable, List, Literal, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator
from pydantic.alias_generators import to_camel
from ice.models.employee import Source


class _Row(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    full_name: str
    employee_number: Optional[str] = None


class HoursRow(_Row):
    kind: Literal["hours"] = "hours"
    date: date_type
    # range is checked against settings at write time
    hours: float
    status: Optional[str] = None
    entry_time: Optional[str] = None
    exit_time: Optional[str] = None
    notes: Optional[str] = None


class ArticleRow(_Row):
    kind: Literal["articles"] = "articles"
    article_id: int
    title: str = ""
    views: int = Field(default=0, ge=0)
    published_at: datetime

    @field_validator("published_at")
    @classmethod
    def _as_utc(cls, v: datetime) -> datetime:
        # exports carry naive local stamps; they are stored as UTC
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)


ParsedRow = Annotated[Union[HoursRow, ArticleRow], Field(discriminator="kind")]

_row_adapter = TypeAdapter(ParsedRow)


def _format_validation_error(e: ValidationError) -> str:
    parts = []
    for err in e.errors():
        # Union errors are prefixed with the discriminator tag
        loc = err["loc"][1:] if len(err["loc"]) > 1 else err["loc"]
        field_path = ".".join(str(p) for p in loc)
        parts.append(f"{field_path}: {err['msg']}" if field_path else err["msg"])
    return "; ".join(parts)


def parse_row(data: Dict[str, Any], source: Source) -> ParsedRow:
    """Validate one raw mapping as a row of ``source``."""
    payload = dict(data)
    payload.setdefault("kind", Source(source).value)
    return _row_adapter.validate_python(payload)


def parse_rows(records: Iterable[Dict[str, Any]], source: Source) -> Tuple[List[ParsedRow], List[str]]:
    """Validate raw mappings, collecting a message per rejected row (1-based)."""
    rows: List[ParsedRow] = []
    errors: List[str] = []
    for i, record in enumerate(records, start=1):
        try:
            rows.append(parse_row(record, source))
        except ValidationError as e:
            errors.append(f"Row {i}: {_format_validation_error(e)}")
    return rows, errors
