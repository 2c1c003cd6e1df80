from datetime import timezone
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from clicknps_webhooks.api.routes.businesses import get_business_or_404
from clicknps_webhooks.api.schemas import (
    CommentIn,
    CommentOut,
    EnqueueOut,
    SurveyResponseIn,
)
from clicknps_webhooks.clock import utcnow
from clicknps_webhooks.db.session import get_async_db
from clicknps_webhooks.queue.delivery_queue import (
    SurveyResponseEvent,
    enqueue,
    update_pending_comment,
)

router = APIRouter()

@router.post(
    "/responses",
    response_model=EnqueueOut,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Record a survey response event and queue its webhook",
)
async def ingest_response(
    response_in: SurveyResponseIn,
    db: AsyncSession = Depends(get_async_db),
):
    await get_business_or_404(response_in.business_id, db)

    created_at = response_in.created_at or utcnow()
    if created_at.tzinfo is not None:
        created_at = created_at.astimezone(timezone.utc).replace(tzinfo=None)

    delivery = await enqueue(
        db,
        SurveyResponseEvent(
            business_id=response_in.business_id,
            survey_id=response_in.survey_id,
            subject_id=response_in.subject_id,
            score=response_in.score,
            comment=response_in.comment,
            created_at=created_at,
        ),
    )

    # Webhooks are opt-in; nothing queued is not an error
    if delivery is None:
        return {"queued": False, "delivery_id": None}
    return {"queued": True, "delivery_id": delivery.id}

@router.patch(
    "/responses/{business_id}/{survey_id}/{subject_id}/comment",
    response_model=CommentOut,
    summary="Attach a late comment to a queued webhook",
)
async def update_response_comment(
    business_id: UUID,
    survey_id: str,
    subject_id: str,
    comment_in: CommentIn,
    db: AsyncSession = Depends(get_async_db),
):
    await get_business_or_404(business_id, db)
    updated = await update_pending_comment(
        db, business_id, survey_id, subject_id, comment_in.comment
    )
    return {"updated": updated}
