"""Denormalized counters. Each row is re-derivable from clicks and conversions."""
import uuid
from sqlalchemy import Column, Date, DateTime, Integer, Numeric, String, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from config.database import Base


class DailyStats(Base):
    __tablename__ = "daily_stats"
    __table_args__ = (UniqueConstraint("affiliate_id", "date"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    affiliate_id = Column(UUID(as_uuid=True), nullable=False)
    date = Column(Date, nullable=False)
    clicks = Column(Integer, nullable=False, default=0)
    conversions = Column(Integer, nullable=False, default=0)
    earnings = Column(Numeric(12, 2), nullable=False, default=0)


class DeviceStats(Base):
    __tablename__ = "device_stats"
    __table_args__ = (UniqueConstraint("affiliate_id", "date", "device"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    affiliate_id = Column(UUID(as_uuid=True), nullable=False)
    date = Column(Date, nullable=False)
    device = Column(String, nullable=False)
    clicks = Column(Integer, nullable=False, default=0)


class SourceStats(Base):
    __tablename__ = "source_stats"
    __table_args__ = (UniqueConstraint("affiliate_id", "date", "source"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    affiliate_id = Column(UUID(as_uuid=True), nullable=False)
    date = Column(Date, nullable=False)
    source = Column(String, nullable=False)
    clicks = Column(Integer, nullable=False, default=0)


class AffiliateStats(Base):
    __tablename__ = "affiliate_stats"
    __table_args__ = (UniqueConstraint("user_id", "date"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    date = Column(Date, nullable=False)
    impressions = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    conversions = Column(Integer, nullable=False, default=0)
    earnings = Column(Numeric(12, 2), nullable=False, default=0)


class LinkPerformance(Base):
    __tablename__ = "link_performance"
    __table_args__ = (UniqueConstraint("link_id", "date"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    link_id = Column(UUID(as_uuid=True), nullable=False)
    affiliate_id = Column(UUID(as_uuid=True), nullable=False)
    date = Column(Date, nullable=False)
    clicks = Column(Integer, nullable=False, default=0)
    conversions = Column(Integer, nullable=False, default=0)
    earnings = Column(Numeric(12, 2), nullable=False, default=0)


class MonthlyEarnings(Base):
    __tablename__ = "monthly_earnings"
    __table_args__ = (UniqueConstraint("user_id", "month"),)

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False)
    month = Column(Date, nullable=False)  # first day of the month
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=func.now())
