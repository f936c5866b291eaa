import uuid
import enum
from sqlalchemy import Column, String, DateTime, ForeignKey, Numeric, Enum
from sqlalchemy.dialects.postgresql import UUID
from config.database import Base
from utils import utc_now

class ConversionStatusEnum(enum.Enum):
    pending = "pending"      # Initial status, waiting for the booking to be confirmed
    approved = "approved"
    rejected = "rejected"

class Conversions(Base):
    """A recorded purchase. Written once, with its click already resolved."""
    __tablename__ = "conversions"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    affiliate_id = Column(UUID(as_uuid=True), ForeignKey("affiliates.id"), nullable=False, index=True)
    link_id = Column(UUID(as_uuid=True), ForeignKey("referral_links.id"), nullable=False)
    ref_code = Column(String, nullable=False)
    purchase_amount = Column(Numeric(12, 2), nullable=False)
    commission_amount = Column(Numeric(12, 2), nullable=False)
    package_id = Column(String, default="")
    package_name = Column(String, default="Unknown Package")
    booking_id = Column(String, default="")
    session_id = Column(String, default="")
    status = Column(Enum(ConversionStatusEnum), default=ConversionStatusEnum.pending, nullable=False)
    currency = Column(String, default="gbp")
    customer_email = Column(String, nullable=True)
    customer_name = Column(String, default="")
    click_id = Column(UUID(as_uuid=True), ForeignKey("clicks.id"), nullable=True)
    # Python-side so conversions in the same second still sort newest first
    created_at = Column(DateTime, default=utc_now)
