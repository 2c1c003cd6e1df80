import uuid
from sqlalchemy import Column, Text, DateTime, Uuid
from clicknps_webhooks.clock import utcnow
from clicknps_webhooks.db.session import Base


class Business(Base):
    __tablename__ = "businesses"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    name = Column(Text, nullable=False)
    webhook_url = Column(Text, nullable=True)
    webhook_secret = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=False), default=utcnow, nullable=False)
    updated_at = Column(
        DateTime(timezone=False),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
