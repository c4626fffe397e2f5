from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional
from datetime import datetime

from app.schemas.form import new_id


class SubmissionFieldEntry(BaseModel):
    """A copy of one form field, with the visitor's answer, as submitted"""
    field_id: str
    title: str = ""
    field_type: str = "textfield"
    answer: Any = None
    tombstoned: bool = False

    class Config:
        extra = "allow"


class FormSubmissionDocument(BaseModel):
    id: str = Field(default_factory=new_id)
    form_id: str
    admin_id: str
    form_fields: List[SubmissionFieldEntry] = []
    time_elapsed: Optional[float] = None
    percentage_complete: Optional[float] = None
    created: Optional[datetime] = None

    def entry_index(self, field_id: str) -> int:
        for i, entry in enumerate(self.form_fields):
            if str(entry.field_id) == str(field_id):
                return i
        return -1


class SubmissionCreate(BaseModel):
    # Answers keyed by field id
    answers: Dict[str, Any] = {}
    time_elapsed: Optional[float] = None
    percentage_complete: Optional[float] = None
