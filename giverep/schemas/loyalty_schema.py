from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class MembershipRequest(BaseModel):
    twitter_handle: Optional[str] = Field(None, alias="twitterHandle")

    model_config = {"populate_by_name": True}


class TagCreate(BaseModel):
    name: str = Field(..., description="Tag name")
    description: Optional[str] = None
    visible: bool = True


class TagUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    visible: Optional[bool] = None


class TagOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    visible: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}
