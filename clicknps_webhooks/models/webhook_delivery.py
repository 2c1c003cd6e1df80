import uuid
from sqlalchemy import (
    Column,
    Text,
    String,
    Integer,
    DateTime,
    ForeignKey,
    CheckConstraint,
    UniqueConstraint,
    Uuid,
)
from clicknps_webhooks.clock import utcnow
from clicknps_webhooks.db.session import Base

PENDING = "pending"
PROCESSING = "processing"
DELIVERED = "delivered"
FAILED = "failed"

STATUSES = (PENDING, PROCESSING, DELIVERED, FAILED)
TERMINAL_STATUSES = (DELIVERED, FAILED)


class WebhookDelivery(Base):
    __tablename__ = "webhook_deliveries"
    __table_args__ = (
        # one delivery per survey response
        UniqueConstraint(
            "business_id", "survey_id", "subject_id",
            name="uq_webhook_deliveries_response",
        ),
        CheckConstraint("score >= 0 AND score <= 10", name="ck_webhook_deliveries_score"),
        CheckConstraint("attempts >= 0", name="ck_webhook_deliveries_attempts"),
        CheckConstraint(
            "status IN ('pending', 'processing', 'delivered', 'failed')",
            name="ck_webhook_deliveries_status",
        ),
    )

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    business_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("businesses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    survey_id = Column(String(255), nullable=False)
    subject_id = Column(String(255), nullable=False)
    score = Column(Integer, nullable=False)
    comment = Column(Text, nullable=True)

    status = Column(String(20), nullable=False, default=PENDING, index=True)
    attempts = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=False), default=utcnow, nullable=False)
    # eligible time; cleared once the delivery is terminal
    next_attempt_at = Column(DateTime(timezone=False), nullable=True, index=True)
    claimed_at = Column(DateTime(timezone=False), nullable=True)
    last_attempt_at = Column(DateTime(timezone=False), nullable=True)

    response_status_code = Column(Integer, nullable=True)
    # endpoint body (truncated) or the network error message
    response_body = Column(Text, nullable=True)

    updated_at = Column(
        DateTime(timezone=False),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<WebhookDelivery {self.id} business={self.business_id} "
            f"status={self.status} attempts={self.attempts}>"
        )
