from typing import Optional
from pydantic import BaseModel, Field


class GiveReputationRequest(BaseModel):
    from_handle: Optional[str] = Field(None, alias="fromHandle")
    to_handle: Optional[str] = Field(None, alias="toHandle")
    tweet_id: Optional[str] = Field(None, alias="tweetId")
    tweet_url: Optional[str] = Field(None, alias="tweetUrl")

    model_config = {"populate_by_name": True}
