from sqlalchemy import Column, ForeignKey, DateTime, String, Enum, Integer, Numeric
from sqlalchemy.dialects.postgresql import UUID
from config.database import Base
import uuid
from sqlalchemy.sql import func
import enum

class LinkTypeEnum(enum.Enum):
    general = "general"
    facebook = "facebook"
    twitter = "twitter"
    instagram = "instagram"
    tiktok = "tiktok"


class ReferralLinks(Base):
    __tablename__ = "referral_links"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    affiliate_id = Column(UUID(as_uuid=True), ForeignKey("affiliates.id"), nullable=False, index=True)
    link_type = Column(Enum(LinkTypeEnum), nullable=False)
    ref_code = Column(String, unique=True, nullable=False)
    target_page = Column(String, default="/")
    clicks = Column(Integer, nullable=False, default=0)
    conversions = Column(Integer, nullable=False, default=0)
    earnings = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime,  default=func.now())
