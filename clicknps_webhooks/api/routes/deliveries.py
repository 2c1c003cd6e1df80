from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID

from clicknps_webhooks.api.schemas import DeliveryOut
from clicknps_webhooks.db.session import get_async_db
from clicknps_webhooks.queue.delivery_queue import get_delivery

router = APIRouter()

@router.get(
    "/deliveries/{delivery_id}",
    response_model=DeliveryOut,
    summary="Get the state of a single webhook delivery",
)
async def read_delivery(
    delivery_id: UUID,
    db: AsyncSession = Depends(get_async_db),
):
    delivery = await get_delivery(db, delivery_id)
    if delivery is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Delivery not found",
        )
    return delivery
