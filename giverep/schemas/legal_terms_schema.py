from typing import Optional
from pydantic import BaseModel, Field


class AgreeRequest(BaseModel):
    user_handle: Optional[str] = Field(None, alias="userHandle")
    wallet_address: Optional[str] = Field(None, alias="walletAddress")

    model_config = {"populate_by_name": True}
