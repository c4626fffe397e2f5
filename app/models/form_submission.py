from sqlalchemy import Column, String, ForeignKey, Float, DateTime, JSON
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from uuid import uuid4
from app.db.base import Base

class FormSubmission(Base):
    __tablename__ = "form_submissions"

    id = Column(String, primary_key=True, default=lambda: uuid4().hex)
    form_id = Column(String, ForeignKey("forms.id"), nullable=False, index=True)
    admin_id = Column(String, nullable=False, index=True)
    # Snapshot of the form's fields (with answers) at submission time
    form_fields = Column(JSON, nullable=False, default=list)
    time_elapsed = Column(Float, nullable=True)
    percentage_complete = Column(Float, nullable=True)
    created = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    form = relationship("Form", back_populates="submissions")
