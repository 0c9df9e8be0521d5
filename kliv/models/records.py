# kliv/models/records.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

SYSTEM_FIELDS = ("_row_id", "_created_at", "_updated_at", "_deleted", "_created_by")


class Record(BaseModel):
    """
    Typed view over a row returned by the database proxy.

    Only the server-managed system columns are declared; every other column
    rides along as an extra field, so the view stays schema-agnostic:

        rec = Record.model_validate(row)
        rec.row_id, rec.model_extra["title"]
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    # values stay as the server sent them; no coercion
    row_id: Optional[Any] = Field(default=None, alias="_row_id")
    created_at: Optional[Any] = Field(default=None, alias="_created_at")
    updated_at: Optional[Any] = Field(default=None, alias="_updated_at")
    deleted: Optional[Any] = Field(default=None, alias="_deleted")
    created_by: Optional[Any] = Field(default=None, alias="_created_by")

    def to_payload(self) -> Dict[str, Any]:
        # system fields are only echoed back when the server gave them to us
        out: Dict[str, Any] = {}
        for name, field in type(self).model_fields.items():
            if name in self.model_fields_set:
                out[field.alias or name] = getattr(self, name)
        out.update(self.model_extra or {})
        return out


@dataclass
class UploadProgress:
    loaded: int
    total: int

    @property
    def percentage(self) -> float:
        if not self.total:
            return 100.0
        return (self.loaded / self.total) * 100
