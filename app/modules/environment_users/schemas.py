from enum import Enum
from pydantic import BaseModel
from typing import Optional
from datetime import datetime


class EnvironmentRole(str, Enum):
    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


class EnvironmentUserResponse(BaseModel):
    id: str
    environment_id: str
    user_id: str
    role: EnvironmentRole
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True
