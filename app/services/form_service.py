import logging
from sqlalchemy.orm import Session
from typing import List, Optional

from app.core.config.settings import Settings, get_settings
from app.core.exceptions import FormBuilderError, FormNotFound
from app.crud.forms import FormStore
from app.crud.submissions import SubmissionRepository
from app.schemas.form import (
    FormAnalyticsReport,
    FormCreate,
    FormDocument,
    FormSummary,
    FormUpdate,
    VisitorSession,
    VisitorSessionIn,
    new_id,
)
from app.schemas.submission import FormSubmissionDocument, SubmissionCreate, SubmissionFieldEntry
from app.services.analytics import compute_form_analytics
from app.services.field_lifecycle import FieldLifecycleManager, SaveContext
from app.services.submission_rewriter import SubmissionRewriter
from app.utils.helpers import get_utc_now, normalize_language
from app.utils.locks import FORM_LOCKS, FormLockRegistry

logger = logging.getLogger("app.forms")
error_logger = logging.getLogger("app.errors")


class FormService:
    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        locks: FormLockRegistry = FORM_LOCKS,
        forms: Optional[FormStore] = None,
        submissions: Optional[SubmissionRepository] = None,
    ):
        self.settings = settings or get_settings()
        self.locks = locks
        self.forms = forms or FormStore(db)
        self.submissions = submissions or SubmissionRepository(db)
        self.rewriter = SubmissionRewriter(self.submissions, fail_fast=self.settings.REWRITE_FAIL_FAST)
        self.lifecycle = FieldLifecycleManager(self.submissions, self.rewriter)

    def create_form(self, form_data: FormCreate) -> FormDocument:
        data = form_data.model_dump(exclude={"ga_code"})
        data["language"] = normalize_language(data["language"])
        data["analytics"] = {"ga_code": form_data.ga_code, "visitors": []}
        form = self.forms.create_form(FormDocument.model_validate(data))
        logger.info(f"Created form {form.id} for admin {form.admin_id}")
        return form

    def get_form(self, form_id: str) -> FormDocument:
        form = self.forms.get_form(form_id)
        if form is None:
            raise FormNotFound(form_id)
        return form

    def list_forms(self, admin_id: Optional[str] = None) -> List[FormSummary]:
        return self.forms.list_forms(admin_id)

    @staticmethod
    def apply_changes(previous: FormDocument, changes: FormUpdate) -> FormDocument:
        """Build the edited form as a new document; ``previous`` is left untouched"""
        data = previous.model_dump()
        updates = changes.model_dump(exclude_unset=True)
        if "ga_code" in updates:
            data["analytics"]["ga_code"] = updates.pop("ga_code")
        data.update(updates)
        data["language"] = normalize_language(data["language"])
        return FormDocument.model_validate(data)

    def update_form(self, form_id: str, changes: FormUpdate) -> FormDocument:
        """
        Save an edited form

        Removed fields are checked against existing submissions before the
        form is written. Any lookup or rewrite error aborts the save and
        nothing is written for the form.
        """
        with self.locks.hold(form_id, timeout=self.settings.FORM_LOCK_TIMEOUT):
            previous = self.forms.load_previous_version(form_id)
            if previous is None:
                raise FormNotFound(form_id)

            ctx = SaveContext(form=self.apply_changes(previous, changes), previous=previous)
            self.lifecycle.apply(ctx)

            try:
                saved = self.forms.save_form(ctx.form, expected_version=previous.version)
            except FormBuilderError as e:
                if ctx.migrated_ids:
                    error_logger.error(
                        f"Form {form_id} not saved after tombstoning fields {ctx.removed_ids} "
                        f"in submissions {ctx.migrated_ids}: {str(e)}"
                    )
                raise
            logger.info(f"Saved form {form_id} at version {saved.version}")
            return saved

    def record_visit(self, form_id: str, visit: VisitorSessionIn) -> VisitorSession:
        data = visit.model_dump()
        data["id"] = data["id"] or new_id()
        session = VisitorSession.model_validate(data)
        if self.forms.upsert_visitor(form_id, session) is None:
            raise FormNotFound(form_id)
        return session

    def submit(self, form_id: str, submission_data: SubmissionCreate) -> FormSubmissionDocument:
        form = self.get_form(form_id)
        entries = []
        for form_field in form.form_fields:
            if form_field.tombstoned:
                continue
            entry = dict(form_field.model_extra or {})
            entry.update(
                field_id=str(form_field.id),
                title=form_field.title,
                field_type=form_field.field_type,
                answer=submission_data.answers.get(str(form_field.id)),
            )
            entries.append(SubmissionFieldEntry.model_validate(entry))

        submission = FormSubmissionDocument(
            form_id=form.id,
            admin_id=form.admin_id,
            form_fields=entries,
            time_elapsed=submission_data.time_elapsed,
            percentage_complete=submission_data.percentage_complete,
            created=get_utc_now(),
        )
        submission = self.submissions.create_submission(submission)
        logger.info(f"Recorded submission {submission.id} for form {form_id}")
        return submission

    def list_submissions(self, form_id: str) -> List[FormSubmissionDocument]:
        self.get_form(form_id)
        return self.submissions.list_for_form(form_id)

    def analytics(self, form_id: str) -> FormAnalyticsReport:
        form = self.get_form(form_id)
        return compute_form_analytics(
            form.form_fields,
            form.analytics.visitors,
            len(form.submissions),
        )

    def get_submission(self, form_id: str, submission_id: str) -> Optional[FormSubmissionDocument]:
        submission = self.submissions.get_submission(submission_id)
        if submission is None or submission.form_id != form_id:
            return None
        return submission
