import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config.settings import get_settings
from app.db.init_db import init_db
from app.schemas.form import FormCreate, FormField
from app.services.form_service import FormService
from app.utils.locks import FormLockRegistry


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = Session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def settings():
    return get_settings().model_copy()


@pytest.fixture
def service(db, settings):
    return FormService(db, settings=settings, locks=FormLockRegistry())


@pytest.fixture
def abc_form(service):
    """A live form with three fields A, B, C in that order"""
    return service.create_form(FormCreate(
        title="Customer survey",
        admin_id="admin-1",
        is_live=True,
        form_fields=[
            FormField(id="A", title="Name"),
            FormField(id="B", title="Email", field_type="email"),
            FormField(id="C", title="Rating", field_type="rating", max_rating=5),
        ],
    ))
