from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import List, Optional

from app.core.exceptions import ConcurrentSaveError, FormNotFound, FormSaveError, LookupFailure
from app.models.form import Form
from app.schemas.form import FormDocument, FormSummary, VisitorSession
from app.utils.helpers import get_utc_now


def to_document(row: Form) -> FormDocument:
    """Build a detached FormDocument from a forms row"""
    return FormDocument.model_validate({
        "id": row.id,
        "title": row.title,
        "language": row.language,
        "admin_id": row.admin_id,
        "form_fields": row.form_fields or [],
        "submissions": [s.id for s in row.submissions],
        "analytics": row.analytics or {},
        "start_page": row.start_page or {},
        "hide_footer": row.hide_footer,
        "is_live": row.is_live,
        "design": row.design or {},
        "created": row.created,
        "last_modified": row.last_modified,
        "version": row.version,
    })


class FormStore:
    """Reads and writes form documents"""

    def __init__(self, db: Session):
        self.db = db

    def _fetch(self, form_id: str, for_update: bool = False) -> Optional[Form]:
        stmt = select(Form).where(Form.id == form_id).execution_options(populate_existing=True)
        if for_update:
            stmt = stmt.with_for_update()
        return self.db.execute(stmt).scalars().first()

    def get_form(self, form_id: str) -> Optional[FormDocument]:
        try:
            row = self._fetch(form_id)
            return to_document(row) if row else None
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LookupFailure(f"Error retrieving form {form_id}: {str(e)}") from e

    def load_previous_version(self, form_id: str) -> Optional[FormDocument]:
        """
        Load the form as currently persisted

        The returned document never shares state with a document being edited.
        """
        return self.get_form(form_id)

    def list_forms(self, admin_id: Optional[str] = None) -> List[FormSummary]:
        try:
            query = self.db.query(Form)
            if admin_id:
                query = query.filter(Form.admin_id == admin_id)
            rows = query.order_by(Form.created).all()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LookupFailure(f"Error retrieving forms: {str(e)}") from e

        return [
            FormSummary(
                id=row.id,
                title=row.title,
                language=row.language,
                admin_id=row.admin_id,
                is_live=row.is_live,
                field_count=len([f for f in (row.form_fields or []) if not f.get("tombstoned")]),
                submission_count=len(row.submissions),
                last_modified=row.last_modified,
            )
            for row in rows
        ]

    def create_form(self, form: FormDocument) -> FormDocument:
        now = get_utc_now()
        row = Form(
            id=form.id,
            title=form.title,
            language=form.language,
            admin_id=form.admin_id,
            hide_footer=form.hide_footer,
            is_live=form.is_live,
            form_fields=[f.model_dump(mode="json") for f in form.form_fields],
            analytics=form.analytics.model_dump(mode="json"),
            start_page=form.start_page.model_dump(mode="json"),
            design=form.design.model_dump(mode="json"),
            created=now,
            last_modified=now,
            version=1,
        )
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise FormSaveError(f"Error creating form: {str(e)}") from e
        return to_document(row)

    def save_form(self, form: FormDocument, expected_version: int) -> FormDocument:
        """
        Write a form document in one transaction

        Raises ConcurrentSaveError when the stored version is no longer
        ``expected_version``, and FormNotFound when the form was deleted.
        Visitor sessions are never overwritten here, they are owned by
        ``upsert_visitor``.
        """
        try:
            row = self._fetch(form.id, for_update=True)
            if row is None:
                self.db.rollback()
                raise FormNotFound(form.id)
            if row.version != expected_version:
                self.db.rollback()
                raise ConcurrentSaveError(form.id, expected_version)

            analytics = dict(row.analytics or {})
            analytics["ga_code"] = form.analytics.ga_code

            row.title = form.title
            row.language = form.language
            row.hide_footer = form.hide_footer
            row.is_live = form.is_live
            row.form_fields = [f.model_dump(mode="json") for f in form.form_fields]
            row.analytics = analytics
            row.start_page = form.start_page.model_dump(mode="json")
            row.design = form.design.model_dump(mode="json")
            row.last_modified = get_utc_now()
            row.version = expected_version + 1

            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise FormSaveError(f"Error saving form {form.id}: {str(e)}") from e
        return to_document(row)

    def upsert_visitor(self, form_id: str, session: VisitorSession) -> Optional[VisitorSession]:
        """Add a visitor session, or replace the stored one with the same id"""
        try:
            row = self._fetch(form_id, for_update=True)
            if row is None:
                return None

            analytics = dict(row.analytics or {})
            visitors = list(analytics.get("visitors") or [])
            data = session.model_dump(mode="json")
            for i, visitor in enumerate(visitors):
                if visitor.get("id") == session.id:
                    visitors[i] = data
                    break
            else:
                visitors.append(data)
            analytics["visitors"] = visitors
            row.analytics = analytics

            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise FormSaveError(f"Error recording visitor for form {form_id}: {str(e)}") from e
        return session
