from typing import Optional
from pydantic import BaseModel, ConfigDict, UUID4
from datetime import datetime


class Notification(BaseModel):
    id: UUID4
    user_id: Optional[str] = None
    title: str
    message: str
    type: str
    reference_id: Optional[UUID4] = None
    is_read: bool = False
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)
