from unittest.mock import MagicMock

import pytest

from app.core.exceptions import LookupFailure, RewriteFailure, SubmissionSaveError
from app.schemas.form import FormDocument, FormField
from app.schemas.submission import FormSubmissionDocument, SubmissionFieldEntry
from app.services.field_lifecycle import FieldLifecycleManager, SaveContext, removed_field_ids
from app.services.submission_rewriter import SubmissionRewriter


def make_form(field_ids, **field_kwargs):
    return FormDocument(
        id="form-1",
        title="Survey",
        admin_id="admin-1",
        form_fields=[FormField(id=f, title=f"Question {f}", **field_kwargs.get(f, {})) for f in field_ids],
    )


def make_submission(submission_id, field_ids):
    return FormSubmissionDocument(
        id=submission_id,
        form_id="form-1",
        admin_id="admin-1",
        form_fields=[SubmissionFieldEntry(field_id=f) for f in field_ids],
    )


class FakeSubmissions:
    """Submission repository keyed by id, returning fresh copies per query"""

    def __init__(self, submissions):
        self.store = {s.id: s for s in submissions}
        self.queries = []

    def find_submissions_referencing(self, form_id, admin_id, field_ids):
        self.queries.append(list(field_ids))
        return [
            s.model_copy(deep=True)
            for s in self.store.values()
            if s.form_id == form_id and s.admin_id == admin_id
            and any(s.entry_index(f) >= 0 for f in field_ids)
        ]

    def save_submission(self, submission):
        self.store[submission.id] = submission.model_copy(deep=True)


def manager_for(repository, fail_fast=True):
    return FieldLifecycleManager(repository, SubmissionRewriter(repository, fail_fast=fail_fast))


def ids(form):
    return [(f.id, f.tombstoned) for f in form.form_fields]


def test_removed_field_ids_keep_old_order():
    assert removed_field_ids(["A", "B", "C", "D"], ["C", "A"]) == ["B", "D"]
    assert removed_field_ids(["A", "B"], ["B", "A", "C"]) == []


def test_unmodified_fields_make_no_queries():
    repository = MagicMock()
    previous = make_form(["A", "B", "C"])
    ctx = SaveContext(form=previous.model_copy(deep=True), previous=previous)

    assert manager_for(repository).apply(ctx) == []

    repository.find_submissions_referencing.assert_not_called()
    repository.save_submission.assert_not_called()
    assert ids(ctx.form) == [("A", False), ("B", False), ("C", False)]


def test_no_previous_version_is_a_no_op():
    repository = MagicMock()
    ctx = SaveContext(form=make_form(["A"]), previous=None)

    assert manager_for(repository).apply(ctx) == []
    repository.find_submissions_referencing.assert_not_called()


def test_reordering_without_removal_makes_no_queries():
    repository = MagicMock()
    ctx = SaveContext(form=make_form(["C", "A", "B"]), previous=make_form(["A", "B", "C"]))

    manager_for(repository).apply(ctx)

    repository.find_submissions_referencing.assert_not_called()


def test_unreferenced_field_disappears():
    repository = FakeSubmissions([make_submission("s1", ["A", "C"])])
    ctx = SaveContext(form=make_form(["A", "C"]), previous=make_form(["A", "B", "C"]))

    assert manager_for(repository).apply(ctx) == []

    assert ids(ctx.form) == [("A", False), ("C", False)]
    assert repository.queries == [["B"]]


def test_referenced_field_is_tombstoned_in_form_and_submission():
    repository = FakeSubmissions([make_submission("s1", ["A", "B", "C"])])
    ctx = SaveContext(
        form=make_form(["A", "C"]),
        previous=make_form(["A", "B", "C"], B={"options": ["x", "y"]}),
    )

    reinstated = manager_for(repository).apply(ctx)

    assert [f.id for f in reinstated] == ["B"]
    assert ids(ctx.form) == [("B", True), ("A", False), ("C", False)]
    # Opaque attributes come back with the field
    assert ctx.form.form_fields[0].options == ["x", "y"]
    stored = repository.store["s1"]
    assert [(e.field_id, e.tombstoned) for e in stored.form_fields] == [("B", True), ("A", False), ("C", False)]


def test_submission_matching_several_removed_fields_is_processed_once():
    repository = FakeSubmissions([make_submission("s1", ["A", "B", "C", "D"])])
    repository.save_submission = MagicMock(wraps=repository.save_submission)
    ctx = SaveContext(form=make_form(["A", "C"]), previous=make_form(["A", "B", "C", "D"]))

    manager_for(repository).apply(ctx)

    assert repository.save_submission.call_count == 1
    assert ids(ctx.form) == [("D", True), ("B", True), ("A", False), ("C", False)]
    stored = repository.store["s1"]
    assert [(e.field_id, e.tombstoned) for e in stored.form_fields] == [
        ("D", True), ("B", True), ("A", False), ("C", False),
    ]


def test_only_referenced_fields_are_reinstated():
    repository = FakeSubmissions([make_submission("s1", ["A", "B"])])
    ctx = SaveContext(form=make_form(["A"]), previous=make_form(["A", "B", "C"]))

    manager_for(repository).apply(ctx)

    assert ids(ctx.form) == [("B", True), ("A", False)]


def test_dropping_existing_tombstones_again_is_stable():
    repository = FakeSubmissions([make_submission("s1", ["B", "D", "A"])])
    for field_id in ("D", "B"):
        entry = repository.store["s1"].form_fields[repository.store["s1"].entry_index(field_id)]
        entry.tombstoned = True
    repository.save_submission = MagicMock(wraps=repository.save_submission)
    previous = make_form(["D", "B", "A"], D={"tombstoned": True}, B={"tombstoned": True})
    # An editor that hides tombstones sends only the active fields
    ctx = SaveContext(form=make_form(["A", "E"]), previous=previous)

    manager_for(repository).apply(ctx)

    assert ids(ctx.form) == [("D", True), ("B", True), ("A", False), ("E", False)]
    repository.save_submission.assert_not_called()


def test_lookup_failure_propagates_before_any_rewrite():
    repository = MagicMock()
    repository.find_submissions_referencing.side_effect = LookupFailure("connection reset")
    ctx = SaveContext(form=make_form(["A"]), previous=make_form(["A", "B"]))

    with pytest.raises(LookupFailure):
        manager_for(repository).apply(ctx)

    repository.save_submission.assert_not_called()
    assert ids(ctx.form) == [("A", False)]


def test_rewrite_failure_propagates_without_reinstating():
    repository = FakeSubmissions([make_submission("s1", ["A", "B"])])
    repository.save_submission = MagicMock(side_effect=SubmissionSaveError("s1", "timeout"))
    ctx = SaveContext(form=make_form(["A"]), previous=make_form(["A", "B"]))

    with pytest.raises(RewriteFailure):
        manager_for(repository).apply(ctx)

    assert ids(ctx.form) == [("A", False)]


def test_several_removed_fields_are_looked_up_together():
    repository = FakeSubmissions([make_submission("s1", ["A", "B"]), make_submission("s2", ["C", "D"])])
    ctx = SaveContext(form=make_form(["A", "C"]), previous=make_form(["A", "B", "C", "D"]))

    manager_for(repository).apply(ctx)

    assert repository.queries == [["B", "D"]]
    assert ctx.removed_ids == ["B", "D"]
    assert ctx.migrated_ids == ["s1", "s2"]
    assert ids(ctx.form) == [("D", True), ("B", True), ("A", False), ("C", False)]
