import uuid
from config.database import Base
from sqlalchemy import Column, String, DateTime
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

class User(Base):
    __tablename__ = "users"
    user_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String, unique=True, nullable=False)
    password = Column(String, nullable=False)  # bcrypt hash
    display_name = Column(String, default="")
    role = Column(String, default="affiliate")
    created_at = Column(DateTime, default=func.now())

    affiliate = relationship("Affiliates", back_populates="user", uselist=False)
