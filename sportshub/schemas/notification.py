from datetime import datetime

from pydantic import BaseModel


class NotificationResponse(BaseModel):
    id: int
    user_id: int
    title: str
    message: str
    category: str
    read: bool
    created_at: datetime

    class Config:
        from_attributes = True


class OutboxRunResponse(BaseModel):
    processed: int
    notifications: int
    failed: list = []
