from sqlalchemy.engine import Engine

from app.db.base import Base
# Register the tables on Base.metadata
from app.models import form, form_submission  # noqa: F401

def init_db(bind: Engine) -> None:
    """Create the document tables if they don't exist"""
    Base.metadata.create_all(bind=bind)
