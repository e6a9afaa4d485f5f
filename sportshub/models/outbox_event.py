from sqlalchemy import JSON, Boolean, Column, String

from sportshub.models.base import BaseModel, UTCDateTime


class OutboxEvent(BaseModel):
    __tablename__ = "outbox_events"

    event_type = Column(String(50), nullable=False, index=True)
    event_data = Column(JSON, nullable=False)
    processed = Column(Boolean, nullable=False, default=False, index=True)
    processed_at = Column(UTCDateTime)
