from sqlalchemy import Column, ForeignKey, DateTime, Numeric, String
from sqlalchemy.dialects.postgresql import UUID
from config.database import Base
import uuid
from sqlalchemy.sql import func


class EarningsTransactions(Base):
    """Append-only commission ledger. Rows are never updated."""
    __tablename__ = "earnings"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("affiliates.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    status = Column(String, nullable=False, default="pending")
    source = Column(String, default="Referral")
    description = Column(String, default="Commission on booking")
    package_name = Column(String, default="Safari Package")
    reference_id = Column(String, nullable=False)
    conversion_id = Column(UUID(as_uuid=True), ForeignKey("conversions.id"), nullable=True)
    created_at = Column(DateTime, default=func.now())
