import json
from typing import List, Optional
from sqlmodel import Field
from ice.models.base import TimestampMixin
from ice.models.employee import Source


class ImportLog(TimestampMixin, table=True):
    """One row per upload: the persisted copy of the upload receipt."""
    id: Optional[int] = Field(default=None, primary_key=True)

    file_type: Source
    file_name: Optional[str] = None
    rows_processed: int = 0
    rows_inserted: int = 0
    rows_updated: int = 0
    rows_skipped: int = 0
    errors_json: str = Field(default="[]", description="JSON list of error strings")

    @property
    def errors(self) -> List[str]:
        return json.loads(self.errors_json)

    def set_errors(self, value: List[str]):
        self.errors_json = json.dumps(value, ensure_ascii=False)
