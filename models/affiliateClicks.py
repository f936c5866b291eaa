from sqlalchemy import Column, ForeignKey, DateTime, String, Boolean, Numeric
from sqlalchemy.dialects.postgresql import UUID
from config.database import Base
import uuid
from sqlalchemy.sql import func

class Clicks(Base):
    __tablename__ = "clicks"
    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    affiliate_id = Column(UUID(as_uuid=True), ForeignKey("affiliates.id"), nullable=False, index=True)
    link_id = Column(UUID(as_uuid=True), ForeignKey("referral_links.id"), nullable=False)
    ref_code = Column(String, nullable=False)
    clicked_at = Column(DateTime,  default=func.now())
    url = Column(String, nullable=True)
    path = Column(String, nullable=True)
    user_agent = Column(String, nullable=True)
    device_type = Column(String, nullable=True)
    source = Column(String, nullable=True)
    # Set once, when a conversion claims this click
    converted = Column(Boolean, nullable=False, default=False)
    conversion_timestamp = Column(DateTime, nullable=True)
    purchase_amount = Column(Numeric(12, 2), nullable=True)
    commission_amount = Column(Numeric(12, 2), nullable=True)
