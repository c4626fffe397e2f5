from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON
from sqlalchemy.orm import relationship
from datetime import datetime, timezone
from uuid import uuid4
from app.db.base import Base

class Form(Base):
    __tablename__ = "forms"
    id = Column(String, primary_key=True, default=lambda: uuid4().hex)
    title = Column(String, nullable=False)
    language = Column(String, nullable=False, default="en")
    admin_id = Column(String, nullable=False, index=True)
    hide_footer = Column(Boolean, nullable=False, default=False)
    is_live = Column(Boolean, nullable=False, default=False)

    # Embedded documents, stored as JSON
    form_fields = Column(JSON, nullable=False, default=list)
    analytics = Column(JSON, nullable=False, default=dict)
    start_page = Column(JSON, nullable=False, default=dict)
    design = Column(JSON, nullable=False, default=dict)

    created = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    last_modified = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    # Bumped on every save, compared against the version a save started from
    version = Column(Integer, nullable=False, default=1)

    submissions = relationship(
        "FormSubmission",
        back_populates="form",
        order_by="FormSubmission.created",
        cascade="all, delete-orphan",
    )
