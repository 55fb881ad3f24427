"""
Notification Delivery Model

Tracks channel messages posted for scan job outcomes.
"""
import uuid
from datetime import datetime
from sqlalchemy import Column, String, Integer, DateTime, Text
from clanwins.models.base import Base, utcnow


class NotificationDelivery(Base):
    """Channel notification delivery tracking."""
    __tablename__ = "notification_deliveries"
    
    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    community_id = Column(String(32), nullable=True, index=True)
    job_id = Column(Integer, nullable=True, index=True)
    channel_id = Column(String(32), nullable=False)
    status = Column(String(20), nullable=False, default="pending")  # pending, delivered, failed
    attempts = Column(Integer, default=0)
    response_code = Column(Integer, nullable=True)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
