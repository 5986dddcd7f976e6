from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from giverep.auth.admin import require_admin_or_loyalty_manager
from giverep.auth.twitter_identity import verify_twitter_identity
from giverep.core.logging import get_logger
from giverep.database import get_db
from giverep.models.project import LoyaltyProject
from giverep.schemas.reward_schema import (
    AddRewardRequest,
    AdjustByRelevanceRequest,
    AvailabilityRequest,
    ClaimRewardRequest,
    ContractRequest,
    FundingRequest,
    ImportRewardsRequest,
    NormalizeRewardsRequest,
    UpdateRewardRequest,
    UserRewardsRequest,
)
from giverep.services import rewards as reward_service
from giverep.services.claim import ClaimError, claim_reward
from giverep.services.loyalty import get_user_project_tweets, parse_date_range


logger = get_logger(__name__)

router = APIRouter(prefix="/api/loyalty-rewards", tags=["Loyalty Rewards"])

manager_only = [Depends(require_admin_or_loyalty_manager)]


def _get_project(db: Session, project_id: int) -> LoyaltyProject:
    project = db.query(LoyaltyProject).get(project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


# ---------- User rewards ----------

@router.get("/user-rewards/{handle}")
def get_user_rewards(handle: str, db: Session = Depends(get_db)):
    return reward_service.get_user_rewards(db, handle)


# POST variant exists so edge caches never serve a stale reward list
@router.post("/user-rewards")
def post_user_rewards(payload: UserRewardsRequest, db: Session = Depends(get_db)):
    if not payload.twitter_handle:
        raise HTTPException(status_code=400, detail="Twitter handle is required")
    return reward_service.get_user_rewards(db, payload.twitter_handle)


@router.get("/admin/user-rewards/{handle}", dependencies=manager_only)
def get_user_rewards_admin(handle: str, db: Session = Depends(get_db)):
    return reward_service.get_user_rewards(db, handle, include_details=True)


# ---------- Project rewards ----------

@router.get("/projects/{project_id}/rewards", dependencies=manager_only)
def list_rewards(
    project_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1),
    sortField: str = "total_amount",
    sortDirection: str = "desc",
    db: Session = Depends(get_db),
):
    _get_project(db, project_id)
    return reward_service.list_project_rewards(
        db, project_id, page, min(limit, 50000), sortField, "asc" if sortDirection == "asc" else "desc"
    )


@router.get("/projects/{project_id}/rewards/search", dependencies=manager_only)
def search_rewards(
    project_id: int,
    twitter_handle: Optional[str] = None,
    claimed: Optional[str] = None,
    tags: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1),
    sortField: str = "total_amount",
    sortDirection: str = "desc",
    db: Session = Depends(get_db),
):
    claimed_filter = None if claimed is None else claimed == "true"
    tag_list = [t.strip() for t in tags.split(",") if t.strip()] if tags else None
    return reward_service.search_project_rewards(
        db,
        project_id,
        twitter_handle=twitter_handle,
        claimed=claimed_filter,
        tags=tag_list,
        page=page,
        limit=min(limit, 500),
        sort_field=sortField,
        sort_direction="asc" if sortDirection == "asc" else "desc",
    )


@router.get("/projects/{project_id}/rewards/summary", dependencies=manager_only)
def rewards_summary(project_id: int, db: Session = Depends(get_db)):
    return reward_service.get_rewards_summary(db, project_id)


@router.post("/projects/{project_id}/import-rewards", status_code=201, dependencies=manager_only)
def import_rewards(project_id: int, payload: ImportRewardsRequest, db: Session = Depends(get_db)):
    if not payload.token_type:
        raise HTTPException(status_code=400, detail="Token type is required")
    if not payload.total_rewards or payload.total_rewards <= 0:
        raise HTTPException(status_code=400, detail="Total rewards amount is required and must be positive")

    project = _get_project(db, project_id)
    try:
        start, end = parse_date_range(payload.start_date, payload.end_date)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    result = reward_service.import_rewards(
        db,
        project,
        payload.token_type,
        payload.total_rewards,
        decimals=payload.decimals,
        start=start,
        end=end,
        start_date=payload.start_date,
        end_date=payload.end_date,
    )
    logger.info("Imported rewards", extra={"project_id": project_id, "count": result["count"]})
    return result


@router.post("/projects/{project_id}/update-reward", dependencies=manager_only)
def update_reward(project_id: int, payload: UpdateRewardRequest, db: Session = Depends(get_db)):
    if not payload.id:
        raise HTTPException(status_code=400, detail="Reward ID is required")
    data = payload.model_dump(exclude_unset=True, exclude={"id"})
    reward_service.update_reward(db, project_id, payload.id, data)
    return {"success": True, "message": "Reward updated successfully"}


@router.post("/projects/{project_id}/add-reward", dependencies=manager_only)
def add_reward(project_id: int, payload: AddRewardRequest, db: Session = Depends(get_db)):
    if not payload.twitter_handle or not payload.token_type or payload.initial_amount is None or payload.notes is None:
        raise HTTPException(
            status_code=400,
            detail="Twitter handle, token type, initial amount, and notes are required",
        )
    project = _get_project(db, project_id)
    reward = reward_service.add_reward(
        db,
        project,
        payload.twitter_handle,
        payload.token_type,
        payload.initial_amount,
        payload.notes,
        payload.adjust_amount,
    )
    return {"success": True, "message": "Reward added successfully", "reward": reward_service.reward_to_dict(reward)}


@router.post("/projects/{project_id}/normalize-rewards", dependencies=manager_only)
def normalize_rewards(project_id: int, payload: NormalizeRewardsRequest, db: Session = Depends(get_db)):
    if not payload.target_total or payload.target_total <= 0:
        raise HTTPException(status_code=400, detail="Target total amount is required and must be positive")
    return reward_service.normalize_rewards(db, project_id, payload.target_total)


@router.post("/projects/{project_id}/adjust-by-relevance", dependencies=manager_only)
def adjust_by_relevance(project_id: int, payload: AdjustByRelevanceRequest, db: Session = Depends(get_db)):
    tiers = None
    if payload.tiers:
        tiers = {name: tier.model_dump(by_alias=True) for name, tier in payload.tiers.items()}
    return reward_service.adjust_by_relevance(db, project_id, payload.method, payload.maintain_budget, tiers)


@router.delete("/projects/{project_id}/rewards/{reward_id}", dependencies=manager_only)
def delete_reward(project_id: int, reward_id: int, db: Session = Depends(get_db)):
    reward_service.delete_reward(db, project_id, reward_id)
    return {"success": True, "message": "Reward deleted successfully"}


@router.delete("/projects/{project_id}/reset-rewards", dependencies=manager_only)
def reset_rewards(project_id: int, db: Session = Depends(get_db)):
    project = _get_project(db, project_id)
    deleted = reward_service.reset_rewards(db, project)
    return {
        "success": True,
        "message": f"All rewards for project {project.name} have been deleted",
        "projectId": project.id,
        "projectName": project.name,
        "deleted": deleted,
    }


@router.get("/projects/{project_id}/user-tweets/{handle}", dependencies=manager_only)
def get_user_tweets(project_id: int, handle: str, db: Session = Depends(get_db)):
    project = db.query(LoyaltyProject).get(project_id)
    if not project:
        raise HTTPException(status_code=404, detail="Loyalty project not found")
    return get_user_project_tweets(db, project, handle)


# ---------- Contract ----------

@router.get("/{project_id}/contract/stats")
def contract_stats(project_id: int, db: Session = Depends(get_db)):
    return reward_service.get_contract_stats(db, project_id)


@router.get("/{project_id}/contract")
def get_contract(project_id: int, db: Session = Depends(get_db)):
    config = reward_service.get_config(db, project_id)
    return {"contract": reward_service.config_to_dict(config) if config else None}


@router.post("/{project_id}/contract", dependencies=manager_only)
def upsert_contract(project_id: int, payload: ContractRequest, db: Session = Depends(get_db)):
    if not payload.amount or not payload.coin_type or not payload.decimals or not payload.pool_object_id:
        raise HTTPException(
            status_code=400,
            detail="Amount, coinType, decimals, and poolObjectId are required",
        )
    config, created = reward_service.upsert_config(
        db,
        project_id,
        payload.amount,
        payload.coin_type,
        payload.decimals,
        payload.pool_object_id,
        payload.is_available,
    )
    return {
        "contract": reward_service.config_to_dict(config),
        "message": "Contract created successfully" if created else "Contract updated successfully",
    }


@router.patch("/{project_id}/contract/availability", dependencies=manager_only)
def update_availability(project_id: int, payload: AvailabilityRequest, db: Session = Depends(get_db)):
    if not isinstance(payload.is_available, bool):
        raise HTTPException(status_code=400, detail="isAvailable must be a boolean")
    config = reward_service.set_availability(db, project_id, payload.is_available)
    return {
        "contract": reward_service.config_to_dict(config),
        "message": "Contract availability updated successfully",
    }


@router.patch("/{project_id}/contract/funding", dependencies=manager_only)
def update_funding(project_id: int, payload: FundingRequest, db: Session = Depends(get_db)):
    if not payload.amount or not payload.action:
        raise HTTPException(status_code=400, detail="Amount and action are required")
    return reward_service.update_funding(db, project_id, payload.amount, payload.action)


@router.delete("/{project_id}/contract", dependencies=manager_only)
def delete_contract(project_id: int, db: Session = Depends(get_db)):
    reward_service.delete_config(db, project_id)
    return {"success": True, "message": "Contract deleted successfully"}


@router.post("/{project_id}/contract/claim-reward")
def claim(project_id: int, payload: ClaimRewardRequest, request: Request, db: Session = Depends(get_db)):
    if not payload.transaction_bytes or not payload.user_signature:
        raise HTTPException(status_code=400, detail="transactionBytes and userSignature are required")

    verification = verify_twitter_identity(request, db, payload.twitter_handle)
    if not verification.success:
        return JSONResponse(status_code=400, content={"error": "Twitter handle not verified"})

    try:
        return claim_reward(
            db,
            project_id,
            payload.twitter_handle.lstrip("@"),
            payload.transaction_bytes,
            payload.user_signature,
        )
    except ClaimError:
        raise
    except Exception:
        logger.exception("Unexpected error while claiming reward for project %s", project_id)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})
