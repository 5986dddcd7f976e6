"""
On-chain reward claims.

The user builds a sponsored transaction (admin is the sender, the user pays
gas) and signs it. Before co-signing, the backend:
  1. dry-runs the transaction to learn the gas owner and check the terms,
  2. locks the reward row (claimed=false -> true) so concurrent requests lose,
  3. checks the dry-run against the stored reward,
  4. co-signs and executes, then records the claim.
Any failure before execution releases the lock again.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from giverep.core.config import settings
from giverep.core.errors import ServiceError
from giverep.core.logging import get_logger
from giverep.models.legal_terms import LegalTermsAgreement
from giverep.models.reward import LoyaltyReward, LoyaltyRewardConfig
from giverep.services.sui import (
    SuiClient,
    SuiRpcError,
    SuiSigner,
    normalize_coin_type,
    normalize_sui_address,
)

logger = get_logger(__name__)

CLAIM_MODULE = "giverep_claim"
CLAIM_FUNCTION = "claim"
CLAIM_EVENT_SUFFIX = f"::{CLAIM_MODULE}::ClaimEvent"


class ClaimValidationError(Exception):
    pass


class ClaimError(ServiceError):
    pass


def is_claim_event(event_type: Optional[str]) -> bool:
    return bool(event_type) and CLAIM_EVENT_SUFFIX in event_type


def find_claim_event(events: Optional[list]) -> Optional[dict]:
    for event in events or []:
        if is_claim_event(event.get("type")):
            return event
    return None


def gas_owner_of(dry_run: dict) -> Optional[str]:
    return ((dry_run.get("input") or {}).get("gasData") or {}).get("owner")


def validate_claim_transaction(
    dry_run: dict,
    project_id: int,
    config: LoyaltyRewardConfig,
    reward: LoyaltyReward,
) -> None:
    """Raise ClaimValidationError unless the dry-run is exactly the expected claim."""
    claim_event = find_claim_event(dry_run.get("events"))
    if not claim_event:
        raise ClaimValidationError("Claim event not found")
    event_data = claim_event.get("parsedJson") or {}

    tx_input = dry_run.get("input") or {}
    commands = (tx_input.get("transaction") or {}).get("transactions") or []
    admin_address = normalize_sui_address(settings.ADMIN_SUI_WALLET_ADDRESS)

    if not config.is_available:
        raise ClaimValidationError("Contract is not available")
    if int(event_data.get("workspace_id", -1)) != int(project_id):
        raise ClaimValidationError("Incorrect workspace ID")
    if int(event_data.get("amount", -1)) != reward.total_amount:
        raise ClaimValidationError("Incorrect claim amount")
    if normalize_sui_address(tx_input.get("sender")) != admin_address:
        raise ClaimValidationError("Transaction sender must be admin")
    if normalize_sui_address(gas_owner_of(dry_run)) == admin_address:
        raise ClaimValidationError("Gas owner must not be admin")
    if len(commands) != 1:
        raise ClaimValidationError("Transaction must have exactly one command")

    move_call = commands[0].get("MoveCall") if isinstance(commands[0], dict) else None
    if not move_call:
        raise ClaimValidationError("Transaction command must be a MoveCall")
    if normalize_sui_address(move_call.get("package")) != normalize_sui_address(settings.CLAIM_PACKAGE_ID):
        raise ClaimValidationError("Incorrect package ID")
    if move_call.get("function") != CLAIM_FUNCTION:
        raise ClaimValidationError("Incorrect function name")
    if move_call.get("module") != CLAIM_MODULE:
        raise ClaimValidationError("Incorrect module name")
    type_arguments = move_call.get("type_arguments") or []
    if not type_arguments or normalize_coin_type(type_arguments[0]) != normalize_coin_type(config.coin_type):
        raise ClaimValidationError("Incorrect coin type")


def acquire_claim_lock(db: Session, reward_id: int) -> bool:
    """Conditional UPDATE; only one caller can flip claimed from false to true."""
    updated = (
        db.query(LoyaltyReward)
        .filter(LoyaltyReward.id == reward_id, LoyaltyReward.claimed.is_(False))
        .update({LoyaltyReward.claimed: True, LoyaltyReward.updated_at: datetime.utcnow()}, synchronize_session=False)
    )
    db.commit()
    return updated == 1


def release_claim_lock(db: Session, reward_id: int) -> None:
    db.query(LoyaltyReward).filter(LoyaltyReward.id == reward_id).update(
        {LoyaltyReward.claimed: False, LoyaltyReward.updated_at: datetime.utcnow()}, synchronize_session=False
    )
    db.commit()


def has_agreed_to_terms(db: Session, twitter_handle: str, wallet_address: str) -> bool:
    return (
        db.query(LegalTermsAgreement)
        .filter(
            func.lower(LegalTermsAgreement.user_handle) == twitter_handle.lower(),
            func.lower(LegalTermsAgreement.wallet_address) == wallet_address.lower(),
        )
        .first()
        is not None
    )


def claim_reward(
    db: Session,
    project_id: int,
    twitter_handle: str,
    transaction_bytes: str,
    user_signature: str,
    sui_client: Optional[SuiClient] = None,
    signer: Optional[SuiSigner] = None,
) -> dict:
    sui_client = sui_client or SuiClient()

    try:
        dry_run = sui_client.dry_run_transaction_block(transaction_bytes)
    except SuiRpcError as exc:
        raise ClaimError(400, f"Transaction dry run failed: {exc}")

    wallet_address = gas_owner_of(dry_run)
    if not wallet_address:
        raise ClaimError(400, "Gas owner not found")

    if not has_agreed_to_terms(db, twitter_handle, wallet_address):
        raise ClaimError(
            400,
            "You must agree to the Reward Claim Terms before claiming rewards",
            termsRequired=True,
        )

    config = db.query(LoyaltyRewardConfig).filter(LoyaltyRewardConfig.project_id == project_id).first()
    reward = (
        db.query(LoyaltyReward)
        .filter(
            LoyaltyReward.project_id == project_id,
            func.lower(LoyaltyReward.twitter_handle) == twitter_handle.lower(),
        )
        .first()
    )
    if not reward:
        raise ClaimError(404, "Reward not found")
    if not config:
        raise ClaimError(404, "Project reward config not found")
    if reward.claimed:
        raise ClaimError(400, "Reward already claimed")

    reward_id = reward.id
    if not acquire_claim_lock(db, reward_id):
        raise ClaimError(409, "Reward already being claimed")

    executed = False
    try:
        validate_claim_transaction(dry_run, project_id, config, reward)

        signer = signer or SuiSigner.from_secret(settings.BACKEND_ADMIN_SUI_WALLET_PRIVATE_KEY)
        backend_signature = signer.sign_transaction(transaction_bytes)

        result = sui_client.execute_transaction_block(transaction_bytes, [backend_signature, user_signature])
        digest = result.get("digest")
        if digest:
            executed = True

        claim_event = find_claim_event(result.get("events"))
        if not claim_event:
            raise ClaimValidationError("Claim event not found")
        receiver = (claim_event.get("parsedJson") or {}).get("receiver")

        db.query(LoyaltyReward).filter(LoyaltyReward.id == reward_id).update(
            {
                LoyaltyReward.claimed: True,
                LoyaltyReward.claimer: receiver,
                LoyaltyReward.claimed_at: datetime.utcnow(),
                LoyaltyReward.claim_transaction_digest: digest,
            },
            synchronize_session=False,
        )
        db.commit()
        logger.info(
            "Reward claimed",
            extra={"project_id": project_id, "twitter_handle": twitter_handle, "digest": digest},
        )
        return {"success": True, "digest": digest}
    except Exception as exc:
        logger.exception("Error during claim transaction, rolling back")
        db.rollback()
        if not executed:
            release_claim_lock(db, reward_id)
        raise ClaimError(400, str(exc) or "Unknown error occurred")
