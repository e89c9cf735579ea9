"""Tutor API endpoints."""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query

from shared.utils.exceptions import AdaptiveTutorException
from tutor.models.content import InteractiveContent
from tutor.models.context import ConversationTurn, TutorContext
from tutor.models.messages import (
    AssessmentRequest,
    AssessmentResponse,
    ContextUpdateRequest,
    InteractionRequest,
    RespondRequest,
    RespondResponse,
)
from tutor.models.subject import Subject
from tutor.services.tutor_service import TutorService, get_tutor_service

logger = logging.getLogger("tutor.api")

router = APIRouter(prefix="/tutor", tags=["tutor"])


def _internal_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"Error {action}: {e}", exc_info=True)
    return HTTPException(
        status_code=500,
        detail={"message": f"Error {action}: {str(e)}", "type": type(e).__name__},
    )


@router.post("/respond", response_model=RespondResponse)
async def respond(request: RespondRequest, service: TutorService = Depends(get_tutor_service)):
    """Send a learner message and get the tutor's reply."""
    try:
        return await service.respond(request)
    except AdaptiveTutorException as e:
        raise e.to_http_exception()
    except Exception as e:
        raise _internal_error("processing message", e)


@router.post("/interaction", response_model=RespondResponse)
async def interaction(request: InteractionRequest, service: TutorService = Depends(get_tutor_service)):
    """Report an event from an interactive component."""
    try:
        return await service.handle_interaction(request)
    except AdaptiveTutorException as e:
        raise e.to_http_exception()
    except Exception as e:
        raise _internal_error("processing interaction", e)


@router.post("/assessment", response_model=AssessmentResponse)
async def assessment(request: AssessmentRequest, service: TutorService = Depends(get_tutor_service)):
    """Grade an assessment for a lesson."""
    if request.total <= 0:
        raise HTTPException(status_code=422, detail="total must be positive")
    try:
        return await service.process_assessment(request)
    except AdaptiveTutorException as e:
        raise e.to_http_exception()
    except Exception as e:
        raise _internal_error("processing assessment", e)


@router.get("/context", response_model=TutorContext)
async def get_context(
    user_id: str = Query(..., min_length=1),
    subject_id: str = Query(..., min_length=1),
    service: TutorService = Depends(get_tutor_service),
):
    try:
        return await service.get_context(user_id, subject_id)
    except AdaptiveTutorException as e:
        raise e.to_http_exception()


@router.put("/context", response_model=TutorContext)
async def put_context(request: ContextUpdateRequest, service: TutorService = Depends(get_tutor_service)):
    try:
        return await service.save_context(request)
    except AdaptiveTutorException as e:
        raise e.to_http_exception()


@router.get("/subjects", response_model=List[Subject])
async def list_subjects(
    user_id: str = Query(..., min_length=1),
    service: TutorService = Depends(get_tutor_service),
):
    try:
        return await service.list_subjects(user_id)
    except AdaptiveTutorException as e:
        raise e.to_http_exception()


@router.delete("/subjects/{subject_id}")
async def delete_subject(
    subject_id: str,
    user_id: str = Query(..., min_length=1),
    service: TutorService = Depends(get_tutor_service),
):
    """Delete a subject with its messages, content and session."""
    try:
        await service.delete_subject(user_id, subject_id)
    except AdaptiveTutorException as e:
        raise e.to_http_exception()
    return {"status": "deleted", "subject_id": subject_id}


@router.delete("/users/{user_id}/data")
async def clear_user_data(user_id: str, service: TutorService = Depends(get_tutor_service)):
    """Delete all of a user's subjects, conversations and sessions."""
    try:
        deleted = await service.clear_user_data(user_id)
    except AdaptiveTutorException as e:
        raise e.to_http_exception()
    return {"status": "cleared", "user_id": user_id, "subjects_deleted": deleted}


@router.get("/subjects/{subject_id}/messages", response_model=List[ConversationTurn])
async def get_messages(
    subject_id: str,
    user_id: str = Query(..., min_length=1),
    service: TutorService = Depends(get_tutor_service),
):
    try:
        return await service.get_messages(user_id, subject_id)
    except AdaptiveTutorException as e:
        raise e.to_http_exception()


@router.get("/subjects/{subject_id}/content", response_model=List[InteractiveContent])
async def get_content(
    subject_id: str,
    user_id: str = Query(..., min_length=1),
    service: TutorService = Depends(get_tutor_service),
):
    try:
        return await service.get_content_feed(user_id, subject_id)
    except AdaptiveTutorException as e:
        raise e.to_http_exception()


@router.get("/subjects/{subject_id}/logs")
async def get_logs(
    subject_id: str,
    limit: int = Query(50, ge=1, le=200),
    service: TutorService = Depends(get_tutor_service),
):
    """Recent orchestration events for a subject."""
    return service.get_logs(subject_id, limit)
