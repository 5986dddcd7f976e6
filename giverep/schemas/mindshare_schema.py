from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class MindshareProjectCreate(BaseModel):
    name: str = Field(..., description="Project name")
    description: Optional[str] = None
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    website_url: Optional[str] = None
    twitter_handle: Optional[str] = None
    is_active: bool = True
    tag_ids: List[int] = Field(default_factory=list)


class MindshareProjectUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    logo_url: Optional[str] = None
    banner_url: Optional[str] = None
    website_url: Optional[str] = None
    twitter_handle: Optional[str] = None
    is_active: Optional[bool] = None
    tag_ids: Optional[List[int]] = None


class KeywordCreate(BaseModel):
    keyword: str


class KeywordUpdate(BaseModel):
    keyword: Optional[str] = None
    is_active: Optional[bool] = None


class KeywordOut(BaseModel):
    id: int
    project_id: int
    keyword: str
    is_active: bool
    created_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class CalculateMetricsRequest(BaseModel):
    start_date: Optional[datetime] = Field(None, alias="startDate")
    end_date: Optional[datetime] = Field(None, alias="endDate")

    model_config = {"populate_by_name": True}
