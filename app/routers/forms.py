import logging
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import ValidationError
from sqlalchemy.orm import Session
from typing import List, Optional

from app.db.session import get_db
from app.core.exceptions import (
    ConcurrentSaveError,
    FormBuilderError,
    FormNotFound,
)
from app.schemas.form import (
    FormAnalyticsReport,
    FormCreate,
    FormDocument,
    FormSummary,
    FormUpdate,
    VisitorSession,
    VisitorSessionIn,
)
from app.schemas.submission import FormSubmissionDocument, SubmissionCreate
from app.services.form_service import FormService

router = APIRouter(prefix="/forms", tags=["forms"])

logger = logging.getLogger("app.forms")

def get_form_service(db: Session = Depends(get_db)) -> FormService:
    return FormService(db)

def to_http_exception(e: Exception) -> HTTPException:
    if isinstance(e, FormNotFound):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ConcurrentSaveError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=e.errors(include_url=False, include_context=False),
        )
    logger.error(f"Form operation failed: {str(e)}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

@router.post("", response_model=FormDocument, status_code=status.HTTP_201_CREATED)
def create_form(form_data: FormCreate, service: FormService = Depends(get_form_service)):
    """Create a new form"""
    try:
        return service.create_form(form_data)
    except (FormBuilderError, ValidationError) as e:
        raise to_http_exception(e)

@router.get("", response_model=List[FormSummary])
def list_forms(admin_id: Optional[str] = None, service: FormService = Depends(get_form_service)):
    """List forms, optionally only those of one admin"""
    try:
        return service.list_forms(admin_id)
    except FormBuilderError as e:
        raise to_http_exception(e)

@router.get("/{form_id}", response_model=FormDocument)
def get_form(form_id: str, service: FormService = Depends(get_form_service)):
    try:
        return service.get_form(form_id)
    except FormBuilderError as e:
        raise to_http_exception(e)

@router.put("/{form_id}", response_model=FormDocument)
def update_form(form_id: str, changes: FormUpdate, service: FormService = Depends(get_form_service)):
    """
    Save an edited form

    Fields removed while submissions still reference them come back as
    tombstones at the front of ``form_fields``.
    """
    try:
        return service.update_form(form_id, changes)
    except (FormBuilderError, ValidationError) as e:
        raise to_http_exception(e)

@router.get("/{form_id}/analytics", response_model=FormAnalyticsReport)
def get_form_analytics(form_id: str, service: FormService = Depends(get_form_service)):
    """Funnel statistics for a form"""
    try:
        return service.analytics(form_id)
    except FormBuilderError as e:
        raise to_http_exception(e)

@router.post("/{form_id}/visitors", response_model=VisitorSession)
def record_visit(form_id: str, visit: VisitorSessionIn, service: FormService = Depends(get_form_service)):
    """Record a visitor session, or update it as the visitor moves through the form"""
    try:
        return service.record_visit(form_id, visit)
    except FormBuilderError as e:
        raise to_http_exception(e)

@router.post("/{form_id}/submissions", response_model=FormSubmissionDocument, status_code=status.HTTP_201_CREATED)
def submit_form(form_id: str, submission_data: SubmissionCreate, service: FormService = Depends(get_form_service)):
    try:
        return service.submit(form_id, submission_data)
    except FormBuilderError as e:
        raise to_http_exception(e)

@router.get("/{form_id}/submissions", response_model=List[FormSubmissionDocument])
def list_submissions(form_id: str, service: FormService = Depends(get_form_service)):
    try:
        return service.list_submissions(form_id)
    except FormBuilderError as e:
        raise to_http_exception(e)

@router.get("/{form_id}/submissions/{submission_id}", response_model=FormSubmissionDocument)
def get_submission(form_id: str, submission_id: str, service: FormService = Depends(get_form_service)):
    try:
        submission = service.get_submission(form_id, submission_id)
    except FormBuilderError as e:
        raise to_http_exception(e)
    if submission is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Submission not found")
    return submission
