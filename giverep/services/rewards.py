"""
Reward bookkeeping for loyalty projects.

Amounts are stored in raw on-chain units (``10 ** decimals`` per token).
A reward's payout is ``initial_amount + adjust_amount + manual_adjustment``:
imports fill the first two, relevance adjustments go into the third.
"""

from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session

from giverep.core.errors import ServiceError
from giverep.core.logging import get_logger
from giverep.models.project import LoyaltyProject
from giverep.models.reputation import RepUser, TrustUser
from giverep.models.reward import LoyaltyReward, LoyaltyRewardConfig, ProjectCreatorScore
from giverep.services.loyalty import get_project_leaderboard
from giverep.services.sui import SuiClient

logger = get_logger(__name__)

DEFAULT_PRICE_PER_VIEW = 0.0004
DEFAULT_DECIMALS = 9
IMPORT_BATCH_SIZE = 5000
MIN_IMPORT_AMOUNT = 0.1
TRUSTED_FOLLOWER_THRESHOLD = 50
DEFAULT_RELEVANCE_SCORE = 500
INFLUENCER_MULTIPLIER = Decimal("1.2")
MAX_NORMALIZE_FACTOR = 1000

STATUS_ORDER = {"available": 0, "not_available": 1, "claimed": 2}
TIER_ORDER = ("excellent", "good", "standard", "poor")


class RewardImportError(ServiceError):
    pass


class RewardError(ServiceError):
    pass


def round_half_up(value: float) -> int:
    """Nearest integer, halves rounded towards +inf."""
    return int(math.floor(value + 0.5))


def _total_expr():
    return (
        LoyaltyReward.initial_amount
        + func.coalesce(LoyaltyReward.adjust_amount, 0)
        + func.coalesce(LoyaltyReward.manual_adjustment, 0)
    )


# ---------- Import ----------

def _trusted_follower_map(db: Session, handles: list[str]) -> dict[str, int]:
    lowered = list({h.lower() for h in handles})
    result: dict[str, int] = {}
    for start in range(0, len(lowered), IMPORT_BATCH_SIZE):
        batch = lowered[start:start + IMPORT_BATCH_SIZE]
        rows = (
            db.query(TrustUser.twitter_handle, TrustUser.trusted_follower_count)
            .filter(func.lower(TrustUser.twitter_handle).in_(batch))
            .all()
        )
        for handle, count in rows:
            result[handle.lower()] = count or 0
    return result


def calculate_import_rewards(
    leaderboard: list[dict],
    trusted: dict[str, int],
    total_rewards: float,
    price_per_view: float,
    decimals: int = DEFAULT_DECIMALS,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
):
    """Price-per-view payouts, trust-adjusted, then scaled so they sum to ``total_rewards``.

    Returns ``(rows, total_calculated, scaling_factor)``; rows below 0.1 tokens
    after scaling are dropped.
    """
    unit = 10 ** decimals
    entries = []
    total_calculated = 0
    for entry in leaderboard:
        views = entry.get("views") or 0
        base_raw = round_half_up(views * price_per_view * unit)
        trusted_followers = trusted.get(entry["twitter_handle"].lower(), 0)
        if trusted_followers < TRUSTED_FOLLOWER_THRESHOLD:
            adjusted = round_half_up(base_raw * 0.7)
            note = f" (-30% for {trusted_followers} trusted followers)"
        else:
            adjusted = round_half_up(base_raw * 1.3)
            note = f" (+30% for {trusted_followers} trusted followers)"
        total_calculated += adjusted
        entries.append((entry, views, base_raw, adjusted, note))

    scaling = total_rewards / total_calculated if total_calculated > 0 else 0
    date_note = f" from {start_date} to {end_date}" if start_date and end_date else ""

    rows = []
    for entry, views, base_raw, adjusted, note in entries:
        scaled = round_half_up(adjusted * scaling)
        if scaled / unit < MIN_IMPORT_AMOUNT:
            continue
        rows.append({
            "twitter_handle": entry["twitter_handle"],
            "twitter_id": entry.get("twitter_id"),
            "initial_amount": base_raw,
            "adjust_amount": scaled - base_raw,
            "notes": (
                f"Imported from leaderboard{date_note}. Views: {views}, "
                f"Scaled by {price_per_view * scaling:.9f} per view{note}."
            ),
        })
    return rows, total_calculated, scaling


def import_rewards(
    db: Session,
    project: LoyaltyProject,
    token_type: str,
    total_rewards: float,
    decimals: Optional[int] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> dict:
    leaderboard = get_project_leaderboard(db, project, start, end)
    if not leaderboard:
        raise RewardImportError(404, "No leaderboard data found for import")

    decimals = decimals or DEFAULT_DECIMALS
    price = float(project.price_per_view or 0) or DEFAULT_PRICE_PER_VIEW
    trusted = _trusted_follower_map(db, [e["twitter_handle"] for e in leaderboard])
    rows, total_calculated, scaling = calculate_import_rewards(
        leaderboard, trusted, total_rewards, price, decimals, start_date, end_date
    )
    filtered_out = len(leaderboard) - len(rows)

    existing = {
        handle.lower()
        for (handle,) in db.query(LoyaltyReward.twitter_handle).filter(LoyaltyReward.project_id == project.id).all()
    }
    if existing:
        logger.info("Project %s already has %s rewards, adding new handles only", project.id, len(existing))
    rows = [r for r in rows if r["twitter_handle"].lower() not in existing]
    if not rows:
        raise RewardImportError(400, "No rewards to import")

    total_batches = math.ceil(len(rows) / IMPORT_BATCH_SIZE)
    inserted = 0
    for start_index in range(0, len(rows), IMPORT_BATCH_SIZE):
        batch = rows[start_index:start_index + IMPORT_BATCH_SIZE]
        try:
            db.add_all([
                LoyaltyReward(
                    project_id=project.id,
                    token_type=token_type,
                    tags=["auto-imported"],
                    claimed=False,
                    manual_adjustment=0,
                    **row,
                )
                for row in batch
            ])
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Failed inserting reward batch at index %s", start_index)
            raise RewardImportError(
                500,
                "Failed to import rewards",
                message=f"Successfully imported {inserted} rewards before encountering an error",
                totalAttempted=len(rows),
            )
        inserted += len(batch)
        logger.info(
            "Inserted reward batch %s/%s (%s/%s rewards)",
            start_index // IMPORT_BATCH_SIZE + 1, total_batches, inserted, len(rows),
        )

    filtered_note = f" (filtered out {filtered_out} small rewards)" if filtered_out else ""
    return {
        "success": True,
        "count": inserted,
        "message": f"Imported {inserted} rewards in {total_batches} batches{filtered_note}.",
        "summary": {
            "totalRewardsAmount": total_rewards,
            "totalCalculatedBeforeScaling": total_calculated,
            "scalingFactor": scaling,
            "batchSize": IMPORT_BATCH_SIZE,
            "totalBatches": total_batches,
            "totalProcessed": len(leaderboard),
            "filteredOut": filtered_out,
            "imported": inserted,
        },
    }


# ---------- Queries ----------

def reward_status(reward: LoyaltyReward, config: Optional[LoyaltyRewardConfig]):
    if reward.claimed:
        return "claimed", "Already claimed"
    if config is None:
        return "not_available", "No contract configured for this project"
    if not config.is_available:
        return "not_available", "Contract is not available for claims"
    return "available", None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def get_user_rewards(db: Session, twitter_handle: str, include_details: bool = False) -> dict:
    rows = (
        db.query(LoyaltyReward, LoyaltyProject, LoyaltyRewardConfig)
        .join(LoyaltyProject, LoyaltyProject.id == LoyaltyReward.project_id)
        .outerjoin(LoyaltyRewardConfig, LoyaltyRewardConfig.project_id == LoyaltyReward.project_id)
        .filter(func.lower(LoyaltyReward.twitter_handle) == twitter_handle.strip().lstrip("@").lower())
        .all()
    )

    rewards = []
    for reward, project, config in rows:
        status, reason = reward_status(reward, config)
        item = {
            "id": reward.id,
            "project_id": reward.project_id,
            "project_name": project.name,
            "project_logo": project.logo_url,
            "twitter_handle": reward.twitter_handle,
            "twitter_id": reward.twitter_id,
            "token_type": reward.token_type or (config.coin_type if config else None) or "Unknown",
            "claimed": reward.claimed,
            "claimer": reward.claimer,
            "claimed_at": _iso(reward.claimed_at),
            "claim_transaction_digest": reward.claim_transaction_digest,
            "created_at": _iso(reward.created_at),
            "updated_at": _iso(reward.updated_at),
            "status": status,
            "reason": reason,
            "contract_available": bool(config and config.is_available),
            "pool_object_id": config.pool_object_id if config else None,
        }
        if include_details:
            item.update({
                "initial_amount": reward.initial_amount,
                "adjust_amount": reward.adjust_amount,
                "manual_adjustment": reward.manual_adjustment,
                "total_amount": reward.total_amount,
                "notes": reward.notes,
                "tags": reward.tags or [],
            })
        else:
            item["amount"] = reward.total_amount
        rewards.append(item)

    rewards.sort(key=lambda r: STATUS_ORDER[r["status"]])
    return {
        "success": True,
        "rewards": rewards,
        "summary": {
            "total": len(rewards),
            "available": sum(1 for r in rewards if r["status"] == "available"),
            "not_available": sum(1 for r in rewards if r["status"] == "not_available"),
            "claimed": sum(1 for r in rewards if r["status"] == "claimed"),
        },
    }


SORT_FIELDS = {
    "twitter_handle": LoyaltyReward.twitter_handle,
    "initial_amount": LoyaltyReward.initial_amount,
    "adjust_amount": LoyaltyReward.adjust_amount,
    "token_type": LoyaltyReward.token_type,
    "created_at": LoyaltyReward.created_at,
    "claimed": LoyaltyReward.claimed,
}


def _order_by(sort_field: str, sort_direction: str):
    column = SORT_FIELDS.get(sort_field)
    if column is None:
        column = _total_expr()
    return column.asc() if sort_direction == "asc" else column.desc()


def reward_to_dict(reward: LoyaltyReward) -> dict:
    return {
        "id": reward.id,
        "project_id": reward.project_id,
        "twitter_handle": reward.twitter_handle,
        "twitter_id": reward.twitter_id,
        "token_type": reward.token_type,
        "initial_amount": reward.initial_amount or 0,
        "adjust_amount": reward.adjust_amount or 0,
        "manual_adjustment": reward.manual_adjustment or 0,
        "total_amount": reward.total_amount,
        "notes": reward.notes,
        "tags": reward.tags or [],
        "claimed": reward.claimed,
        "claimer": reward.claimer,
        "claimed_at": _iso(reward.claimed_at),
        "claim_transaction_digest": reward.claim_transaction_digest,
        "created_at": _iso(reward.created_at),
        "updated_at": _iso(reward.updated_at),
    }


def _paginated(db: Session, query, page: int, limit: int, sort_field: str, sort_direction: str) -> dict:
    total_count = query.count()
    rows = (
        query.add_columns(
            func.coalesce(RepUser.is_influencer, False).label("is_influencer"),
            func.coalesce(TrustUser.trusted_follower_count, 0).label("trusted_follower_count"),
        )
        .outerjoin(RepUser, func.lower(RepUser.twitter_handle) == func.lower(LoyaltyReward.twitter_handle))
        .outerjoin(TrustUser, func.lower(TrustUser.twitter_handle) == func.lower(LoyaltyReward.twitter_handle))
        .order_by(_order_by(sort_field, sort_direction), LoyaltyReward.id.asc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    rewards = []
    for reward, is_influencer, trusted_follower_count in rows:
        item = reward_to_dict(reward)
        item["is_influencer"] = bool(is_influencer)
        item["trusted_follower_count"] = int(trusted_follower_count or 0)
        rewards.append(item)

    return {
        "rewards": rewards,
        "pagination": {
            "page": page,
            "limit": limit,
            "totalCount": total_count,
            "totalPages": math.ceil(total_count / limit) if limit else 0,
            "hasNext": page * limit < total_count,
            "hasPrev": page > 1,
        },
    }


def list_project_rewards(
    db: Session,
    project_id: int,
    page: int = 1,
    limit: int = 100,
    sort_field: str = "total_amount",
    sort_direction: str = "desc",
) -> dict:
    query = db.query(LoyaltyReward).filter(LoyaltyReward.project_id == project_id)
    return _paginated(db, query, page, limit, sort_field, sort_direction)


def search_project_rewards(
    db: Session,
    project_id: int,
    twitter_handle: Optional[str] = None,
    claimed: Optional[bool] = None,
    tags: Optional[list[str]] = None,
    page: int = 1,
    limit: int = 100,
    sort_field: str = "total_amount",
    sort_direction: str = "desc",
) -> dict:
    query = db.query(LoyaltyReward).filter(LoyaltyReward.project_id == project_id)
    if twitter_handle:
        query = query.filter(func.lower(LoyaltyReward.twitter_handle).contains(twitter_handle.lower()))
    if claimed is not None:
        query = query.filter(LoyaltyReward.claimed.is_(claimed))
    if tags:
        wanted = set(tags)
        ids = [
            reward_id
            for reward_id, reward_tags in query.with_entities(LoyaltyReward.id, LoyaltyReward.tags).all()
            if wanted.intersection(reward_tags or [])
        ]
        query = db.query(LoyaltyReward).filter(LoyaltyReward.id.in_(ids))
    return _paginated(db, query, page, limit, sort_field, sort_direction)


def get_rewards_summary(db: Session, project_id: int) -> dict:
    total = _total_expr()
    row = (
        db.query(
            func.count(LoyaltyReward.id).label("total_count"),
            func.coalesce(func.sum(case((LoyaltyReward.claimed.is_(True), 1), else_=0)), 0).label("claimed_count"),
            func.coalesce(func.sum(LoyaltyReward.initial_amount), 0).label("initial_amount"),
            func.coalesce(func.sum(func.coalesce(LoyaltyReward.adjust_amount, 0)), 0).label("adjust_amount"),
            func.coalesce(func.sum(func.coalesce(LoyaltyReward.manual_adjustment, 0)), 0).label("manual_adjustment"),
            func.coalesce(func.sum(total), 0).label("total_amount"),
            func.coalesce(func.sum(case((LoyaltyReward.claimed.is_(True), total), else_=0)), 0).label("claimed_amount"),
            func.count(func.distinct(LoyaltyReward.claimer)).label("unique_claimers"),
            func.count(func.distinct(LoyaltyReward.token_type)).label("token_types"),
        )
        .filter(LoyaltyReward.project_id == project_id)
        .one()
    )
    token_rows = (
        db.query(
            LoyaltyReward.token_type,
            func.count(LoyaltyReward.id).label("count"),
            func.coalesce(func.sum(LoyaltyReward.initial_amount), 0).label("initial_amount"),
            func.coalesce(func.sum(func.coalesce(LoyaltyReward.adjust_amount, 0)), 0).label("adjust_amount"),
            func.coalesce(func.sum(func.coalesce(LoyaltyReward.manual_adjustment, 0)), 0).label("manual_adjustment"),
            func.coalesce(func.sum(total), 0).label("total_amount"),
        )
        .filter(LoyaltyReward.project_id == project_id)
        .group_by(LoyaltyReward.token_type)
        .order_by(func.sum(total).desc())
        .all()
    )

    total_count = int(row.total_count)
    claimed_count = int(row.claimed_count)
    return {
        "totalRewards": total_count,
        "claimedRewards": claimed_count,
        "unclaimedRewards": total_count - claimed_count,
        "totalInitialAmount": int(row.initial_amount),
        "totalAdjustAmount": int(row.adjust_amount),
        "totalManualAdjustment": int(row.manual_adjustment),
        "totalAmount": int(row.total_amount),
        "claimedAmount": int(row.claimed_amount),
        "unclaimedAmount": int(row.total_amount) - int(row.claimed_amount),
        "uniqueClaimers": int(row.unique_claimers),
        "tokenTypes": int(row.token_types),
        "claimRate": claimed_count / total_count * 100 if total_count else 0,
        "tokenSummaries": [
            {
                "tokenType": t.token_type,
                "count": int(t.count),
                "initialAmount": int(t.initial_amount),
                "adjustAmount": int(t.adjust_amount),
                "manualAdjustment": int(t.manual_adjustment),
                "totalAmount": int(t.total_amount),
            }
            for t in token_rows
        ],
    }


def get_contract_stats(db: Session, project_id: int) -> dict:
    rewards = db.query(LoyaltyReward).filter(LoyaltyReward.project_id == project_id).all()
    claimed = [r for r in rewards if r.claimed]
    total_amount = sum(r.total_amount for r in rewards)
    claimed_amount = sum(r.total_amount for r in claimed)
    return {
        "totalRewards": len(rewards),
        "claimedRewards": len(claimed),
        "unclaimedRewards": len(rewards) - len(claimed),
        "totalAmount": total_amount,
        "claimedAmount": claimed_amount,
        "unclaimedAmount": total_amount - claimed_amount,
        "uniqueClaimers": len({r.claimer for r in claimed if r.claimer}),
        "claimRate": len(claimed) / len(rewards) * 100 if rewards else 0,
    }


# ---------- Mutations ----------

def _get_project_reward(db: Session, project_id: int, reward_id: int) -> LoyaltyReward:
    reward = (
        db.query(LoyaltyReward)
        .filter(LoyaltyReward.id == reward_id, LoyaltyReward.project_id == project_id)
        .first()
    )
    if not reward:
        raise RewardError(404, "Reward not found")
    return reward


def update_reward(db: Session, project_id: int, reward_id: int, data: dict) -> LoyaltyReward:
    reward = _get_project_reward(db, project_id, reward_id)
    if "adjust_amount" in data:
        reward.adjust_amount = data["adjust_amount"] or 0
    if "notes" in data:
        reward.notes = data["notes"]
    if "tags" in data:
        reward.tags = data["tags"] or []
    if isinstance(data.get("claimed"), bool):
        reward.claimed = data["claimed"]
    reward.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(reward)
    return reward


def add_reward(
    db: Session,
    project: LoyaltyProject,
    twitter_handle: str,
    token_type: str,
    initial_amount: int,
    notes: str,
    adjust_amount: Optional[int] = None,
) -> LoyaltyReward:
    handle = twitter_handle.strip().lstrip("@").lower()
    existing = (
        db.query(LoyaltyReward)
        .filter(LoyaltyReward.project_id == project.id, func.lower(LoyaltyReward.twitter_handle) == handle)
        .first()
    )
    if existing:
        raise RewardError(
            409,
            "User already exists",
            message=f"A reward for @{handle} already exists in this project",
        )

    reward = LoyaltyReward(
        project_id=project.id,
        twitter_handle=handle,
        token_type=token_type,
        initial_amount=int(initial_amount),
        adjust_amount=int(adjust_amount or 0),
        manual_adjustment=0,
        notes=notes,
        tags=["manual-entry"],
        claimed=False,
    )
    db.add(reward)
    db.commit()
    db.refresh(reward)
    return reward


def normalize_rewards(db: Session, project_id: int, target_total: float, sui_client: Optional[SuiClient] = None) -> dict:
    unclaimed = (
        db.query(LoyaltyReward)
        .filter(
            LoyaltyReward.project_id == project_id,
            LoyaltyReward.claimed.is_(False),
            LoyaltyReward.token_type.isnot(None),
        )
        .all()
    )
    if not unclaimed:
        raise RewardError(400, "No unclaimed rewards to normalize")
    token_types = {r.token_type for r in unclaimed}
    if len(token_types) > 1:
        raise RewardError(
            400, "Cannot normalize rewards with multiple token types. Please filter by token type first."
        )
    token_type = token_types.pop()

    current_total = sum(r.total_amount for r in unclaimed)
    if current_total == 0:
        raise RewardError(400, "Current total is zero, cannot normalize")

    decimals = (sui_client or SuiClient()).get_coin_decimals(token_type, DEFAULT_DECIMALS)
    target_raw = math.floor(target_total * 10 ** decimals)
    factor = target_raw / current_total
    if not math.isfinite(factor) or factor <= 0 or factor > MAX_NORMALIZE_FACTOR:
        raise RewardError(400, "Invalid scaling factor")

    places = min(decimals, 2)
    note = f" | Normalized to {target_total:.{places}f} {token_type} total (factor: {factor:.4f})"
    now = datetime.utcnow()
    for reward in unclaimed:
        manual = reward.manual_adjustment or 0
        reward.adjust_amount = round_half_up(reward.total_amount * factor) - reward.initial_amount - manual
        reward.notes = f"{reward.notes}{note}" if reward.notes else note
        reward.updated_at = now
    db.commit()

    new_total = sum(r.total_amount for r in unclaimed)
    unit = 10 ** decimals
    logger.info(
        "Normalized rewards",
        extra={"project_id": project_id, "rewards": len(unclaimed), "factor": factor},
    )
    return {
        "success": True,
        "message": f"Normalized {len(unclaimed)} rewards to total {target_total} {token_type}",
        "summary": {
            "rewardsNormalized": len(unclaimed),
            "tokenType": token_type,
            "previousTotal": f"{current_total / unit:.{places}f}",
            "newTotal": f"{new_total / unit:.{places}f}",
            "scalingFactor": f"{factor:.4f}",
        },
    }


def tier_multiplier(score: int, tiers: dict) -> Decimal:
    for name in TIER_ORDER:
        tier = tiers[name]
        if score >= tier["minScore"]:
            return Decimal(str(tier["multiplier"]))
    return Decimal(str(tiers["spam"]["multiplier"]))


def adjust_by_relevance(
    db: Session,
    project_id: int,
    method: str,
    maintain_budget: bool = False,
    tiers: Optional[dict] = None,
) -> dict:
    if method == "tiered":
        if not tiers:
            raise RewardError(400, "Tiers configuration is required for tiered method")
        missing = [name for name in (*TIER_ORDER, "spam") if name not in tiers]
        if missing:
            raise RewardError(400, f"Missing tiers: {', '.join(missing)}")
    elif method != "linear":
        raise RewardError(400, f"Unsupported adjustment method: {method}")

    rows = (
        db.query(
            LoyaltyReward,
            func.coalesce(ProjectCreatorScore.relevance_score, DEFAULT_RELEVANCE_SCORE).label("score"),
            func.coalesce(RepUser.is_influencer, False).label("is_influencer"),
        )
        .outerjoin(
            ProjectCreatorScore,
            (ProjectCreatorScore.project_id == LoyaltyReward.project_id)
            & (func.lower(ProjectCreatorScore.twitter_handle) == func.lower(LoyaltyReward.twitter_handle)),
        )
        .outerjoin(RepUser, func.lower(RepUser.twitter_handle) == func.lower(LoyaltyReward.twitter_handle))
        .filter(
            LoyaltyReward.project_id == project_id,
            LoyaltyReward.claimed.is_(False),
            LoyaltyReward.token_type.isnot(None),
        )
        .all()
    )
    if not rows:
        raise RewardError(400, "No unclaimed rewards to adjust")

    calculations = []
    current_totals: dict[str, int] = {}
    new_totals: dict[str, Decimal] = {}
    for reward, score, is_influencer in rows:
        score = int(score)
        base = tier_multiplier(score, tiers) if method == "tiered" else Decimal(score) / DEFAULT_RELEVANCE_SCORE
        final = base * INFLUENCER_MULTIPLIER if is_influencer else base
        current = reward.total_amount
        current_totals[reward.token_type] = current_totals.get(reward.token_type, 0) + current
        new_totals[reward.token_type] = new_totals.get(reward.token_type, Decimal(0)) + current * final
        calculations.append((reward, score, bool(is_influencer), base, final, current))

    adjusted = 0
    token_types = set()
    for reward, score, is_influencer, base, final, current in calculations:
        new_amount = current * final
        if maintain_budget and new_totals[reward.token_type] > 0:
            new_amount = new_amount * current_totals[reward.token_type] / new_totals[reward.token_type]
        difference = math.floor(new_amount) - current
        if difference == 0:
            continue

        influencer_note = ", influencer: 1.2x" if is_influencer else ""
        note = (
            f"Relevance adjustment ({method}, score: {score}, base: {base:.2f}x"
            f"{influencer_note}, final: {final:.2f}x)"
        )
        reward.manual_adjustment = (reward.manual_adjustment or 0) + difference
        reward.notes = f"{reward.notes} | {note}" if reward.notes else note
        reward.updated_at = datetime.utcnow()
        adjusted += 1
        token_types.add(reward.token_type)
    db.commit()

    return {
        "success": True,
        "message": f"Rewards adjusted by relevance scores using {method} method",
        "tokenTypes": sorted(token_types),
        "totalAdjusted": adjusted,
    }


def delete_reward(db: Session, project_id: int, reward_id: int) -> None:
    reward = _get_project_reward(db, project_id, reward_id)
    db.delete(reward)
    db.commit()
    logger.info("Deleted reward %s for project %s", reward_id, project_id)


def reset_rewards(db: Session, project: LoyaltyProject) -> int:
    deleted = (
        db.query(LoyaltyReward)
        .filter(LoyaltyReward.project_id == project.id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted


# ---------- Contract config ----------

def config_to_dict(config: LoyaltyRewardConfig) -> dict:
    return {
        "id": config.id,
        "project_id": config.project_id,
        "amount": config.amount,
        "coin_type": config.coin_type,
        "pool_object_id": config.pool_object_id,
        "is_available": config.is_available,
        "created_at": _iso(config.created_at),
        "updated_at": _iso(config.updated_at),
    }


def get_config(db: Session, project_id: int) -> Optional[LoyaltyRewardConfig]:
    return db.query(LoyaltyRewardConfig).filter(LoyaltyRewardConfig.project_id == project_id).first()


def _require_config(db: Session, project_id: int) -> LoyaltyRewardConfig:
    config = get_config(db, project_id)
    if not config:
        raise RewardError(404, "Contract not found")
    return config


def upsert_config(
    db: Session,
    project_id: int,
    amount,
    coin_type: str,
    decimals: int,
    pool_object_id: str,
    is_available: Optional[bool] = None,
):
    """Create or replace the contract config; ``amount`` is in whole tokens."""
    raw_amount = int(amount) * 10 ** int(decimals)
    config = get_config(db, project_id)
    created = config is None
    if created:
        config = LoyaltyRewardConfig(project_id=project_id)
        db.add(config)
    config.amount = raw_amount
    config.coin_type = coin_type
    config.pool_object_id = pool_object_id
    config.is_available = True if is_available is None else is_available
    config.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(config)
    return config, created


def set_availability(db: Session, project_id: int, is_available: bool) -> LoyaltyRewardConfig:
    config = _require_config(db, project_id)
    config.is_available = is_available
    config.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(config)
    return config


def update_funding(db: Session, project_id: int, amount, action: str) -> dict:
    if action not in ("add", "remove"):
        raise RewardError(400, "Action must be 'add' or 'remove'")
    config = _require_config(db, project_id)

    previous = config.amount or 0
    change = int(amount)
    new_amount = previous + change if action == "add" else previous - change
    if new_amount < 0:
        raise RewardError(400, "Cannot remove more than current contract balance")

    config.amount = new_amount
    config.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(config)
    return {
        "contract": config_to_dict(config),
        "message": f"Contract funding {'increased' if action == 'add' else 'decreased'} successfully",
        "previous_amount": previous,
        "new_amount": new_amount,
        "change_amount": change,
    }


def delete_config(db: Session, project_id: int) -> None:
    config = _require_config(db, project_id)
    db.delete(config)
    db.commit()
