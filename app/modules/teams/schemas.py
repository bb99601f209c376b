from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class TeamStatus(str, Enum):
    CREATING = "creating"
    READY = "ready"
    FAILED = "failed"


class TeamCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=63)


class TeamResponse(BaseModel):
    id: str
    name: str
    environment_id: str
    status: TeamStatus
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
