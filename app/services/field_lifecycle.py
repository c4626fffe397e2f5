import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Set, Tuple

from app.schemas.form import FormDocument, FormField
from app.schemas.submission import FormSubmissionDocument
from app.services.submission_rewriter import SubmissionRewriter

logger = logging.getLogger("app.lifecycle")


@dataclass
class SaveContext:
    """State of a single form save: the edited form and what was persisted before it"""
    form: FormDocument
    previous: Optional[FormDocument]
    removed_ids: List[str] = field(default_factory=list)
    # Submissions already rewritten and committed during this save
    migrated_ids: List[str] = field(default_factory=list)
    reinstated: List[FormField] = field(default_factory=list)

    def fields_modified(self) -> bool:
        if self.previous is None:
            return False
        new_fields = [f.model_dump(mode="json") for f in self.form.form_fields]
        old_fields = [f.model_dump(mode="json") for f in self.previous.form_fields]
        return new_fields != old_fields


def removed_field_ids(old_ids: Sequence[str], new_ids: Sequence[str]) -> List[str]:
    """Ids present in ``old_ids`` but not in ``new_ids``, in their old order"""
    remaining = set(new_ids)
    removed = []
    for field_id in old_ids:
        if field_id not in remaining and field_id not in removed:
            removed.append(field_id)
    return removed


class FieldLifecycleManager:
    """
    Keeps submissions valid when fields are removed from a form.

    Runs before a form is saved. A removed field that no submission
    references simply disappears. A removed field that some submission
    references is tombstoned in every such submission and put back at the
    front of the form's own field list, also tombstoned.
    """

    def __init__(self, submissions, rewriter: SubmissionRewriter):
        self.submissions = submissions
        self.rewriter = rewriter

    def find_referencing_submissions(
        self, form: FormDocument, removed_ids: Sequence[str]
    ) -> Tuple[List[FormSubmissionDocument], Set[str]]:
        """
        Look up the submissions referencing any removed field in one query

        Returns the matched submissions, each once, and the set of removed
        ids that at least one submission references.
        """
        matched = self.submissions.find_submissions_referencing(form.id, form.admin_id, removed_ids)
        referenced: Set[str] = set()
        for submission in matched:
            for field_id in removed_ids:
                if submission.entry_index(field_id) >= 0:
                    referenced.add(field_id)
        return matched, referenced

    def reinstate(self, ctx: SaveContext, field_ids: Sequence[str]) -> List[FormField]:
        old_fields: Dict[str, FormField] = {}
        for old_field in ctx.previous.form_fields:
            old_fields.setdefault(str(old_field.id), old_field)

        # Fields that were tombstones already keep their relative order
        kept = [old_fields[i].model_copy(deep=True) for i in field_ids if old_fields[i].tombstoned]
        ctx.form.form_fields[0:0] = kept

        reinstated = list(kept)
        for field_id in field_ids:
            if old_fields[field_id].tombstoned:
                continue
            restored = old_fields[field_id].model_copy(deep=True)
            restored.tombstoned = True
            ctx.form.form_fields.insert(0, restored)
            reinstated.append(restored)
        return reinstated

    def apply(self, ctx: SaveContext) -> List[FormField]:
        """
        Run the removal protocol for one save, mutating ``ctx.form``

        Lookup and rewrite errors propagate; the caller must not save the
        form when this raises. Returns the reinstated fields.
        """
        if ctx.previous is None or not ctx.fields_modified():
            return []

        removed = removed_field_ids(ctx.previous.field_ids(), ctx.form.field_ids())
        ctx.removed_ids = removed
        if not removed:
            return []
        logger.info(f"Form {ctx.form.id}: fields removed {removed}")

        submissions, referenced = self.find_referencing_submissions(ctx.form, removed)
        if submissions:
            ctx.migrated_ids = self.rewriter.rewrite(submissions, removed)

        ctx.reinstated = self.reinstate(ctx, [field_id for field_id in removed if field_id in referenced])
        if ctx.reinstated:
            logger.info(
                f"Form {ctx.form.id}: kept {[f.id for f in ctx.reinstated]} as tombstones "
                f"for {len(submissions)} submission(s)"
            )
        return ctx.reinstated
