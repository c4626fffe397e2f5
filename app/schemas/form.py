from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
from datetime import datetime
from enum import Enum
from uuid import uuid4


def new_id() -> str:
    return uuid4().hex


class DeviceType(str, Enum):
    DESKTOP = "desktop"
    PHONE = "phone"
    TABLET = "tablet"
    OTHER = "other"


class FormField(BaseModel):
    """A question on a form. Keys other than the ones below are kept as-is."""
    id: str = Field(default_factory=new_id)
    title: str = ""
    field_type: str = "textfield"
    required: bool = False
    # Removed from the editor but kept because submissions reference it
    tombstoned: bool = False

    class Config:
        extra = "allow"


class VisitorSession(BaseModel):
    id: str = Field(default_factory=new_id)
    referrer: Optional[str] = None
    last_active_field_id: Optional[str] = None
    time_elapsed: Optional[float] = None
    is_submitted: bool = False
    language: Optional[str] = None
    ip_addr: str = ""
    device_type: DeviceType = DeviceType.OTHER
    user_agent: Optional[str] = None


class Button(BaseModel):
    url: Optional[str] = None
    action: Optional[str] = None
    text: Optional[str] = None
    bg_color: str = "#5bc0de"
    color: str = "#ffffff"


class StartPage(BaseModel):
    show_start: bool = False
    intro_title: str = "Welcome to Form"
    intro_paragraph: Optional[str] = None
    intro_button_text: str = "Start"
    buttons: List[Button] = Field(default_factory=list)


class DesignColors(BaseModel):
    background_color: str = "#fff"
    question_color: str = "#333"
    answer_color: str = "#333"
    button_color: str = "#fff"
    button_text_color: str = "#333"


class Design(BaseModel):
    colors: DesignColors = Field(default_factory=DesignColors)
    font: Optional[str] = None


class FormAnalyticsData(BaseModel):
    ga_code: Optional[str] = None
    visitors: List[VisitorSession] = Field(default_factory=list)


class FormDocument(BaseModel):
    id: str = Field(default_factory=new_id)
    title: str
    language: str = "en"
    admin_id: str
    form_fields: List[FormField] = []
    submissions: List[str] = []
    analytics: FormAnalyticsData = Field(default_factory=FormAnalyticsData)
    start_page: StartPage = Field(default_factory=StartPage)
    hide_footer: bool = False
    is_live: bool = False
    design: Design = Field(default_factory=Design)
    created: Optional[datetime] = None
    last_modified: Optional[datetime] = None
    version: int = 1

    @field_validator("title")
    @classmethod
    def validate_title(cls, v):
        v = v.strip()
        if not v:
            raise ValueError("Form Title cannot be blank")
        return v

    @field_validator("form_fields")
    @classmethod
    def validate_unique_field_ids(cls, v):
        seen = set()
        for form_field in v:
            field_id = str(form_field.id)
            if field_id in seen:
                raise ValueError(f"Duplicate field id {field_id}")
            seen.add(field_id)
        return v

    def field_ids(self) -> List[str]:
        return [str(f.id) for f in self.form_fields]


class FormCreate(BaseModel):
    title: str
    admin_id: str
    language: str = "en"
    form_fields: List[FormField] = []
    start_page: StartPage = Field(default_factory=StartPage)
    hide_footer: bool = False
    is_live: bool = False
    design: Design = Field(default_factory=Design)
    ga_code: Optional[str] = None


class FormUpdate(BaseModel):
    """Partial update; omitted attributes keep their persisted value"""
    title: Optional[str] = None
    language: Optional[str] = None
    form_fields: Optional[List[FormField]] = None
    start_page: Optional[StartPage] = None
    hide_footer: Optional[bool] = None
    is_live: Optional[bool] = None
    design: Optional[Design] = None
    ga_code: Optional[str] = None


class VisitorSessionIn(BaseModel):
    id: Optional[str] = None
    referrer: Optional[str] = None
    last_active_field_id: Optional[str] = None
    time_elapsed: Optional[float] = None
    is_submitted: bool = False
    language: Optional[str] = None
    ip_addr: str = ""
    device_type: DeviceType = DeviceType.OTHER
    user_agent: Optional[str] = None


class FieldFunnelStats(BaseModel):
    index: int
    field: FormField
    dropoff_views: int
    continue_views: int
    responses: int
    total_views: int
    # None when the field has no views at all
    continue_rate: Optional[int] = None
    dropoff_rate: Optional[int] = None


class FormAnalyticsReport(BaseModel):
    views: int
    submissions: int
    conversion_rate: float
    fields: List[FieldFunnelStats] = []


class FormSummary(BaseModel):
    id: str
    title: str
    language: str
    admin_id: str
    is_live: bool
    field_count: int
    submission_count: int
    last_modified: Optional[datetime] = None
