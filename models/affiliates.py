from sqlalchemy import Column, ForeignKey, DateTime, Integer, String, Numeric, Float
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from config.database import Base
from sqlalchemy.sql import func

class Affiliates(Base):
    __tablename__ = "affiliates"
    id = Column(UUID(as_uuid=True), ForeignKey("users.user_id"), primary_key=True)  # Same id as the identity
    name = Column(String, nullable=False)
    email = Column(String, nullable=False)
    phone = Column(String, default="")
    website = Column(String, default="")
    bio = Column(String, default="")
    role = Column(String, default="Travel Affiliate")
    total_referrals = Column(Integer, default=0)
    monthly_earnings = Column(Numeric(12, 2), default=0)
    total_earnings = Column(Numeric(12, 2), default=0)
    conversion_rate = Column(Float, default=0)
    created_at = Column(DateTime,  default=func.now())

    user = relationship("User", back_populates="affiliate")
