from typing import List, Optional, Tuple


class FormBuilderError(Exception):
    """Base class for errors raised by the form data layer"""


class FormNotFound(FormBuilderError):
    def __init__(self, form_id: str):
        super().__init__(f"Form {form_id} not found")
        self.form_id = form_id


class LookupFailure(FormBuilderError):
    """A read needed by a save failed (previous version or submission query)"""


class FormSaveError(FormBuilderError):
    """The form document itself could not be written"""


class ConcurrentSaveError(FormSaveError):
    """The persisted form changed since it was loaded for this save"""

    def __init__(self, form_id: str, expected_version: int):
        super().__init__(
            f"Form {form_id} was modified by another save (expected version {expected_version})"
        )
        self.form_id = form_id
        self.expected_version = expected_version


class FormBusyError(ConcurrentSaveError):
    """Another save of the same form held its lock for too long"""

    def __init__(self, form_id: str):
        FormSaveError.__init__(self, f"Timed out waiting for another save of form {form_id}")
        self.form_id = form_id
        self.expected_version = None


class SubmissionSaveError(FormBuilderError):
    def __init__(self, submission_id: str, message: str):
        super().__init__(f"Could not save submission {submission_id}: {message}")
        self.submission_id = submission_id


class RewriteFailure(FormBuilderError):
    """
    One or more submissions failed to persist while tombstoning removed fields.

    Submissions listed in ``saved_ids`` were already written and are not
    rolled back.
    """

    def __init__(
        self,
        first_error: Exception,
        failures: List[Tuple[str, Exception]],
        saved_ids: Optional[List[str]] = None,
    ):
        super().__init__(
            f"{len(failures)} submission(s) failed to migrate; first error: {first_error}"
        )
        self.first_error = first_error
        self.failures = failures
        self.saved_ids = saved_ids or []
