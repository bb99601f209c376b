from enum import Enum
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime


class EnvironmentStatus(str, Enum):
    CREATING = "creating"
    PROVISIONING = "provisioning"
    READY = "ready"
    FAILED = "failed"
    CANCELLED = "cancelled"
    DELETING = "deleting"


CANCELLABLE_STATUSES = (EnvironmentStatus.CREATING, EnvironmentStatus.PROVISIONING)


class EnvironmentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=63)
    description: Optional[str] = None


class EnvironmentResponse(BaseModel):
    id: str
    name: str
    status: EnvironmentStatus
    description: Optional[str] = None
    kubeconfig_ref: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True
