import uuid
import enum
from sqlalchemy import Column, DateTime, Enum, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from config.database import Base

class EmailStatusEnum(enum.Enum):
    sent = "sent"
    pending = "pending"   # Every channel failed, waiting for the requeue job
    failed = "failed"     # Gave up after EMAIL_MAX_QUEUE_ATTEMPTS

class EmailOutbox(Base):
    __tablename__ = "email_outbox"
    __table_args__ = (UniqueConstraint("recipient", "idempotency_key"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    recipient = Column(String, nullable=False)
    subject = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    idempotency_key = Column(String, nullable=False)
    status = Column(Enum(EmailStatusEnum), nullable=False, default=EmailStatusEnum.pending)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(String, nullable=True)
    created_at = Column(DateTime, default=func.now())
    sent_at = Column(DateTime, nullable=True)
