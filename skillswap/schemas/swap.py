from pydantic import Field, field_validator
from typing import Optional
from datetime import datetime
from enum import Enum

from .base import CamelModel
from .user import UserSummary

class SwapStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"

class SwapListType(str, Enum):
    ALL = "all"
    SENT = "sent"
    RECEIVED = "received"

class SwapCreate(CamelModel):
    receiver: str = Field(..., min_length=1)
    skill_offered: str = Field(..., max_length=100)
    skill_requested: str = Field(..., max_length=100)
    message: Optional[str] = Field(None, max_length=500)

    @field_validator("receiver", "skill_offered", "skill_requested")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Field is required")
        return v

    @field_validator("message")
    @classmethod
    def strip_message(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return v.strip() or None

class SwapUpdate(CamelModel):
    # Checked against the allowed transitions by the swap service
    status: str = Field(..., min_length=1)

class SwapResponse(CamelModel):
    id: str
    requester: Optional[UserSummary] = None
    receiver: Optional[UserSummary] = None
    skill_offered: str
    skill_requested: str
    status: SwapStatus = SwapStatus.PENDING
    message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

class MessageResponse(CamelModel):
    message: str
