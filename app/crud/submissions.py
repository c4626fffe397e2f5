from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from typing import List, Optional, Sequence

from app.core.exceptions import LookupFailure, SubmissionSaveError
from app.models.form_submission import FormSubmission
from app.schemas.submission import FormSubmissionDocument
from app.utils.helpers import get_utc_now


def to_document(row: FormSubmission) -> FormSubmissionDocument:
    return FormSubmissionDocument.model_validate({
        "id": row.id,
        "form_id": row.form_id,
        "admin_id": row.admin_id,
        "form_fields": row.form_fields or [],
        "time_elapsed": row.time_elapsed,
        "percentage_complete": row.percentage_complete,
        "created": row.created,
    })


class SubmissionRepository:
    """Reads and writes form submissions"""

    def __init__(self, db: Session):
        self.db = db

    def find_submissions_referencing(
        self, form_id: str, admin_id: str, field_ids: Sequence[str]
    ) -> List[FormSubmissionDocument]:
        """
        Get the submissions of a form whose field entries include any of ``field_ids``

        The form's submissions are loaded once, in submission order, and
        matched against every id. Each call returns fresh documents.
        """
        try:
            rows = (
                self.db.query(FormSubmission)
                .filter(FormSubmission.form_id == form_id, FormSubmission.admin_id == admin_id)
                .order_by(FormSubmission.created)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LookupFailure(
                f"Error finding submissions of form {form_id} for fields {list(field_ids)}: {str(e)}"
            ) from e

        wanted = {str(field_id) for field_id in field_ids}
        matches = []
        for row in rows:
            if any(str(entry.get("field_id")) in wanted for entry in (row.form_fields or [])):
                matches.append(to_document(row))
        return matches

    def find_submissions(self, form_id: str, admin_id: str, field_id: str) -> List[FormSubmissionDocument]:
        """Get the submissions of a form whose field entries include ``field_id``"""
        return self.find_submissions_referencing(form_id, admin_id, [field_id])

    def get_submission(self, submission_id: str) -> Optional[FormSubmissionDocument]:
        try:
            row = self.db.get(FormSubmission, submission_id, populate_existing=True)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LookupFailure(f"Error retrieving submission {submission_id}: {str(e)}") from e
        return to_document(row) if row else None

    def list_for_form(self, form_id: str) -> List[FormSubmissionDocument]:
        try:
            rows = (
                self.db.query(FormSubmission)
                .filter(FormSubmission.form_id == form_id)
                .order_by(FormSubmission.created)
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise LookupFailure(f"Error retrieving submissions of form {form_id}: {str(e)}") from e
        return [to_document(row) for row in rows]

    def create_submission(self, submission: FormSubmissionDocument) -> FormSubmissionDocument:
        row = FormSubmission(
            id=submission.id,
            form_id=submission.form_id,
            admin_id=submission.admin_id,
            form_fields=[e.model_dump(mode="json") for e in submission.form_fields],
            time_elapsed=submission.time_elapsed,
            percentage_complete=submission.percentage_complete,
            created=submission.created or get_utc_now(),
        )
        try:
            self.db.add(row)
            self.db.commit()
            self.db.refresh(row)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise SubmissionSaveError(submission.id, str(e)) from e
        return to_document(row)

    def save_submission(self, submission: FormSubmissionDocument) -> None:
        """Persist the field entries of an existing submission"""
        try:
            row = self.db.get(FormSubmission, submission.id)
            if row is None:
                raise SubmissionSaveError(submission.id, "submission no longer exists")
            row.form_fields = [e.model_dump(mode="json") for e in submission.form_fields]
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise SubmissionSaveError(submission.id, str(e)) from e
