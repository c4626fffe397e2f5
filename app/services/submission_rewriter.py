import logging
from typing import Iterable, List, Sequence, Tuple

from app.core.exceptions import RewriteFailure, SubmissionSaveError
from app.schemas.submission import FormSubmissionDocument

logger = logging.getLogger("app.lifecycle")
error_logger = logging.getLogger("app.errors")


def tombstone_entries(submission: FormSubmissionDocument, removed_ids: Sequence[str]) -> bool:
    """
    Move the entries of removed fields to the front of a submission, tombstoned

    ``removed_ids`` is walked in order and each match is inserted at the
    front, so after several removals the head holds them in reverse order.
    Entries that are already tombstoned are left where they are.

    Returns True if the submission changed.
    """
    changed = False
    for field_id in removed_ids:
        index = submission.entry_index(field_id)
        if index < 0:
            continue
        entry = submission.form_fields[index]
        if entry.tombstoned:
            continue
        del submission.form_fields[index]
        entry.tombstoned = True
        submission.form_fields.insert(0, entry)
        changed = True
    return changed


class SubmissionRewriter:
    """Tombstones removed fields in submissions and saves them one by one"""

    def __init__(self, repository, fail_fast: bool = True):
        self.repository = repository
        self.fail_fast = fail_fast

    def rewrite(self, submissions: Iterable[FormSubmissionDocument], removed_ids: Sequence[str]) -> List[str]:
        """
        Rewrite and persist each submission in turn

        Returns the ids of the submissions that were saved. Raises
        RewriteFailure if any save failed; with ``fail_fast`` the batch stops
        at the first failure, otherwise the remaining submissions are still
        processed and every failure is reported together.
        """
        saved: List[str] = []
        failures: List[Tuple[str, Exception]] = []

        for submission in submissions:
            if not tombstone_entries(submission, removed_ids):
                logger.debug(f"Submission {submission.id} already migrated, skipping")
                continue
            try:
                self.repository.save_submission(submission)
            except SubmissionSaveError as e:
                logger.error(f"Failed to save submission {submission.id}: {str(e)}")
                failures.append((submission.id, e))
                if self.fail_fast:
                    break
                continue
            saved.append(submission.id)

        if failures:
            first_error = failures[0][1]
            failed_ids = [submission_id for submission_id, _ in failures]
            error_logger.error(
                f"Inconsistent submissions after removing fields {list(removed_ids)}: "
                f"saved {saved}, failed {failed_ids}; first error: {str(first_error)}"
            )
            raise RewriteFailure(first_error, failures, saved) from first_error

        logger.info(f"Tombstoned fields {list(removed_ids)} in {len(saved)} submission(s)")
        return saved
