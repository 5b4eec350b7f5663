from pydantic import BaseModel, validator
from typing import List, Optional
from datetime import datetime

class ModeratorResponse(BaseModel):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None
    granted_at: Optional[datetime] = None

class ModeratorListResponse(BaseModel):
    moderators: List[ModeratorResponse]

# Bulk SMS
class BulkSmsRequest(BaseModel):
    recipients: List[str]
    message: str

    @validator('message')
    def validate_message(cls, v):
        if not v or not v.strip():
            raise ValueError('Message is required')
        return v

class BulkSmsResponse(BaseModel):
    success: bool
    message: str
    sent: int
    failed: int
