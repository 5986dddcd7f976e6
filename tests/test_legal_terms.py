from giverep.models.legal_terms import CURRENT_TERMS_VERSION, LegalTermsAgreement

WALLET = "0x" + "Ab" * 32


def test_agree_is_idempotent_and_records_client(client, db):
    body = {"userHandle": "Alice", "walletAddress": WALLET}
    headers = {"x-forwarded-for": "203.0.113.7, 10.0.0.1", "user-agent": "pytest-agent"}

    res = client.post("/api/legal-terms/agree", json=body, headers=headers)
    assert res.json() == {"success": True, "message": "Agreement recorded successfully"}
    res = client.post("/api/legal-terms/agree", json=body)
    assert res.json() == {"success": True, "message": "Agreement already recorded"}

    agreement = db.query(LegalTermsAgreement).one()
    assert agreement.user_handle == "alice"
    assert agreement.wallet_address == WALLET.lower()
    assert agreement.ip_address == "203.0.113.7"
    assert agreement.user_agent == "pytest-agent"


def test_agree_requires_both_fields(client):
    res = client.post("/api/legal-terms/agree", json={"userHandle": "alice"})
    assert res.status_code == 400


def test_check_agreement(client):
    res = client.get(f"/api/legal-terms/check/alice/{WALLET}")
    assert res.json() == {"hasAgreed": False, "agreedAt": None, "termsVersion": None}

    client.post("/api/legal-terms/agree", json={"userHandle": "alice", "walletAddress": WALLET})

    res = client.get(f"/api/legal-terms/check/ALICE/{WALLET.upper()}").json()
    assert res["hasAgreed"] is True
    assert res["termsVersion"] == CURRENT_TERMS_VERSION
    assert res["agreedAt"] is not None
