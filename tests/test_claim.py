from unittest.mock import MagicMock, patch

import pytest

from giverep.auth.twitter_identity import VerificationResult
from giverep.core.config import settings
from giverep.models.legal_terms import LegalTermsAgreement
from giverep.models.reward import LoyaltyReward, LoyaltyRewardConfig
from giverep.services.claim import (
    ClaimError,
    ClaimValidationError,
    acquire_claim_lock,
    claim_reward,
    validate_claim_transaction,
)
from giverep.services.sui import SuiRpcError

USER_WALLET = "0x" + "cc" * 32
COIN_TYPE = "0x2::sui::SUI"


def _move_call(**overrides):
    call = {
        "package": settings.CLAIM_PACKAGE_ID,
        "module": "giverep_claim",
        "function": "claim",
        "type_arguments": [COIN_TYPE],
    }
    call.update(overrides)
    return {"MoveCall": call}


def _dry_run(project_id, amount=1000, sender=None, gas_owner=USER_WALLET, commands=None, events=None, workspace_id=None):
    if events is None:
        events = [{
            "type": f"{settings.CLAIM_PACKAGE_ID}::giverep_claim::ClaimEvent",
            "parsedJson": {
                "workspace_id": str(workspace_id or project_id),
                "amount": str(amount),
                "receiver": USER_WALLET,
            },
        }]
    if commands is None:
        commands = [_move_call()]
    return {
        "input": {
            "sender": sender or settings.ADMIN_SUI_WALLET_ADDRESS,
            "gasData": {"owner": gas_owner},
            "transaction": {"transactions": commands},
        },
        "events": events,
    }


@pytest.fixture
def claimable(db, make_project):
    project = make_project()
    config = LoyaltyRewardConfig(project_id=project.id, coin_type=COIN_TYPE, pool_object_id="0xpool", is_available=True)
    reward = LoyaltyReward(
        project_id=project.id, twitter_handle="alice", token_type=COIN_TYPE, initial_amount=600, adjust_amount=400
    )
    db.add_all([config, reward])
    db.add(LegalTermsAgreement(user_handle="alice", wallet_address=USER_WALLET))
    db.commit()
    db.refresh(reward)
    return project, config, reward


def _sui_client(dry_run, digest="digest123"):
    client = MagicMock()
    client.dry_run_transaction_block.return_value = dry_run
    client.execute_transaction_block.return_value = {"digest": digest, "events": dry_run["events"]}
    return client


def _signer():
    signer = MagicMock()
    signer.sign_transaction.return_value = "backend-sig"
    return signer


def test_claim_success_records_digest_and_receiver(db, claimable):
    project, _, reward = claimable
    sui_client = _sui_client(_dry_run(project.id))

    result = claim_reward(db, project.id, "Alice", "tx-bytes", "user-sig", sui_client=sui_client, signer=_signer())

    assert result == {"success": True, "digest": "digest123"}
    sui_client.execute_transaction_block.assert_called_once_with("tx-bytes", ["backend-sig", "user-sig"])
    db.refresh(reward)
    assert reward.claimed is True
    assert reward.claimer == USER_WALLET
    assert reward.claim_transaction_digest == "digest123"
    assert reward.claimed_at is not None


def test_claim_requires_terms(db, claimable):
    project, _, reward = claimable
    dry_run = _dry_run(project.id, gas_owner="0x" + "dd" * 32)

    with pytest.raises(ClaimError) as exc:
        claim_reward(db, project.id, "alice", "tx", "sig", sui_client=_sui_client(dry_run), signer=_signer())

    assert exc.value.status_code == 400
    assert exc.value.to_content()["termsRequired"] is True
    db.refresh(reward)
    assert reward.claimed is False


def test_claim_rejects_wrong_amount_and_releases_lock(db, claimable):
    project, _, reward = claimable
    sui_client = _sui_client(_dry_run(project.id, amount=999999))

    with pytest.raises(ClaimError) as exc:
        claim_reward(db, project.id, "alice", "tx", "sig", sui_client=sui_client, signer=_signer())

    assert exc.value.message == "Incorrect claim amount"
    sui_client.execute_transaction_block.assert_not_called()
    db.refresh(reward)
    assert reward.claimed is False


def test_claim_already_claimed(db, claimable):
    project, _, reward = claimable
    reward.claimed = True
    db.commit()

    with pytest.raises(ClaimError) as exc:
        claim_reward(db, project.id, "alice", "tx", "sig", sui_client=_sui_client(_dry_run(project.id)))
    assert exc.value.message == "Reward already claimed"


def test_claim_dry_run_failure(db, claimable):
    project, _, _ = claimable
    sui_client = MagicMock()
    sui_client.dry_run_transaction_block.side_effect = SuiRpcError("bad tx")

    with pytest.raises(ClaimError) as exc:
        claim_reward(db, project.id, "alice", "tx", "sig", sui_client=sui_client)
    assert exc.value.status_code == 400
    assert "bad tx" in exc.value.message


def test_claim_lock_is_exclusive(db, claimable):
    _, _, reward = claimable
    assert acquire_claim_lock(db, reward.id) is True
    assert acquire_claim_lock(db, reward.id) is False


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"sender": "0x" + "01" * 32}, "Transaction sender must be admin"),
        ({"gas_owner": settings.ADMIN_SUI_WALLET_ADDRESS}, "Gas owner must not be admin"),
        ({"commands": []}, "Transaction must have exactly one command"),
        ({"commands": [{"TransferObjects": {}}]}, "Transaction command must be a MoveCall"),
        ({"events": []}, "Claim event not found"),
        ({"workspace_id": 999999}, "Incorrect workspace ID"),
        ({"commands": [_move_call(package="0x" + "cd" * 32)]}, "Incorrect package ID"),
        ({"commands": [_move_call(function="claim_all")]}, "Incorrect function name"),
        ({"commands": [_move_call(module="other_claim")]}, "Incorrect module name"),
    ],
)
def test_validate_claim_transaction_rejects(db, claimable, overrides, message):
    project, config, reward = claimable
    with pytest.raises(ClaimValidationError, match=message):
        validate_claim_transaction(_dry_run(project.id, **overrides), project.id, config, reward)


def test_validate_claim_transaction_requires_available_contract(db, claimable):
    project, config, reward = claimable
    config.is_available = False
    with pytest.raises(ClaimValidationError, match="Contract is not available"):
        validate_claim_transaction(_dry_run(project.id), project.id, config, reward)


def test_claim_keeps_lock_once_executed(db, claimable):
    project, _, reward = claimable
    sui_client = _sui_client(_dry_run(project.id))
    sui_client.execute_transaction_block.return_value = {"digest": "d", "events": []}

    with pytest.raises(ClaimError) as exc:
        claim_reward(db, project.id, "alice", "tx", "sig", sui_client=sui_client, signer=_signer())

    assert exc.value.message == "Claim event not found"
    db.refresh(reward)
    assert reward.claimed is True


def test_validate_claim_transaction_checks_coin_type(db, claimable):
    project, config, reward = claimable
    config.coin_type = "0x3::other::COIN"
    with pytest.raises(ClaimValidationError, match="Incorrect coin type"):
        validate_claim_transaction(_dry_run(project.id), project.id, config, reward)


def test_validate_claim_transaction_accepts_short_addresses(db, claimable):
    project, config, reward = claimable
    config.coin_type = "0x0000000000000000000000000000000000000000000000000000000000000002::sui::SUI"
    validate_claim_transaction(_dry_run(project.id), project.id, config, reward)


# ---------- Endpoint ----------

def test_claim_endpoint_requires_body(client, claimable):
    project, _, _ = claimable
    res = client.post(f"/api/loyalty-rewards/{project.id}/contract/claim-reward", json={"twitterHandle": "alice"})
    assert res.status_code == 400


def test_claim_endpoint_rejects_unverified_handle(client, claimable):
    project, _, _ = claimable
    with patch(
        "giverep.routers.loyalty_rewards.verify_twitter_identity",
        return_value=VerificationResult(False, "Twitter authentication required. Please login with Twitter first."),
    ):
        res = client.post(
            f"/api/loyalty-rewards/{project.id}/contract/claim-reward",
            json={"transactionBytes": "tx", "userSignature": "sig", "twitterHandle": "alice"},
        )
    assert res.status_code == 400
    assert res.json() == {"error": "Twitter handle not verified"}


def test_claim_endpoint_maps_claim_errors(client, claimable):
    project, _, _ = claimable
    body = {"transactionBytes": "tx", "userSignature": "sig", "twitterHandle": "@alice"}
    verified = VerificationResult(True, twitter_handle="alice")

    with patch("giverep.routers.loyalty_rewards.verify_twitter_identity", return_value=verified), patch(
        "giverep.routers.loyalty_rewards.claim_reward",
        side_effect=ClaimError(409, "Reward already being claimed"),
    ):
        res = client.post(f"/api/loyalty-rewards/{project.id}/contract/claim-reward", json=body)
    assert res.status_code == 409
    assert res.json() == {"error": "Reward already being claimed"}

    with patch("giverep.routers.loyalty_rewards.verify_twitter_identity", return_value=verified), patch(
        "giverep.routers.loyalty_rewards.claim_reward",
        return_value={"success": True, "digest": "abc"},
    ) as mocked:
        res = client.post(f"/api/loyalty-rewards/{project.id}/contract/claim-reward", json=body)
    assert res.json() == {"success": True, "digest": "abc"}
    assert mocked.call_args.args[2] == "alice"
