from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class CamelModel(BaseModel):
    model_config = {"populate_by_name": True}


class ImportRewardsRequest(CamelModel):
    token_type: Optional[str] = Field(None, alias="tokenType")
    total_rewards: Optional[float] = Field(None, alias="totalRewards", description="Budget in raw units")
    decimals: Optional[int] = None
    start_date: Optional[str] = Field(None, alias="startDate", description="YYYY-MM-DD")
    end_date: Optional[str] = Field(None, alias="endDate", description="YYYY-MM-DD")


class UserRewardsRequest(CamelModel):
    twitter_handle: Optional[str] = Field(None, alias="twitterHandle")


class UpdateRewardRequest(CamelModel):
    id: Optional[int] = None
    adjust_amount: Optional[int] = Field(None, alias="adjustAmount")
    notes: Optional[str] = None
    tags: Optional[List[str]] = None
    claimed: Optional[bool] = None


class AddRewardRequest(CamelModel):
    twitter_handle: Optional[str] = Field(None, alias="twitterHandle")
    token_type: Optional[str] = Field(None, alias="tokenType")
    initial_amount: Optional[int] = Field(None, alias="initialAmount")
    adjust_amount: Optional[int] = Field(None, alias="adjustAmount")
    notes: Optional[str] = None


class NormalizeRewardsRequest(CamelModel):
    target_total: Optional[float] = Field(None, alias="targetTotal")


class RelevanceTier(BaseModel):
    min_score: int = Field(..., alias="minScore")
    multiplier: float

    model_config = {"populate_by_name": True}


class AdjustByRelevanceRequest(CamelModel):
    method: Optional[str] = None
    maintain_budget: bool = Field(False, alias="maintainBudget")
    tiers: Optional[Dict[str, RelevanceTier]] = None


class ContractRequest(CamelModel):
    amount: Optional[int] = None
    coin_type: Optional[str] = Field(None, alias="coinType")
    decimals: Optional[int] = None
    pool_object_id: Optional[str] = Field(None, alias="poolObjectId")
    is_available: Optional[bool] = Field(None, alias="isAvailable")


class AvailabilityRequest(CamelModel):
    # Left untyped so a non-boolean reaches the handler and gets a 400
    is_available: Any = Field(None, alias="isAvailable")


class FundingRequest(CamelModel):
    amount: Optional[int] = None
    action: Optional[str] = None


class ClaimRewardRequest(CamelModel):
    transaction_bytes: Optional[str] = Field(None, alias="transactionBytes")
    user_signature: Optional[str] = Field(None, alias="userSignature")
    twitter_handle: Optional[str] = Field(None, alias="twitterHandle")
