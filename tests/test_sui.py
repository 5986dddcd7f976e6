import base64
import hashlib
from unittest.mock import MagicMock, patch

import httpx
import pytest
from solders.keypair import Keypair

from giverep.services.sui import (
    SuiClient,
    SuiRpcError,
    SuiSigner,
    normalize_coin_type,
    normalize_sui_address,
)

SEED = bytes(range(32))


def test_normalize_sui_address_pads_and_lowercases():
    assert normalize_sui_address("0x2") == "0x" + "0" * 63 + "2"
    assert normalize_sui_address("0xABC") == normalize_sui_address("abc")
    assert normalize_sui_address(None) == ""


def test_normalize_coin_type():
    assert normalize_coin_type("0x2::sui::SUI") == "0x" + "0" * 63 + "2::sui::SUI"
    assert normalize_coin_type("SUI") == "SUI"


def test_signer_address_is_blake2b_of_flag_and_pubkey():
    signer = SuiSigner.from_secret(base64.b64encode(bytes([0]) + SEED).decode())
    pubkey = bytes(Keypair.from_seed(SEED).pubkey())

    expected = hashlib.blake2b(bytes([0]) + pubkey, digest_size=32).hexdigest()
    assert signer.address == "0x" + expected


def test_signer_accepts_hex_and_raw_seed():
    from_b64 = SuiSigner.from_secret(base64.b64encode(SEED).decode())
    from_hex = SuiSigner.from_secret(SEED.hex())
    assert from_b64.address == from_hex.address


def test_signer_rejects_unsupported_keys():
    with pytest.raises(ValueError):
        SuiSigner.from_secret("")
    with pytest.raises(ValueError, match="Bech32"):
        SuiSigner.from_secret("suiprivkey1qzexample")
    with pytest.raises(ValueError, match="Ed25519"):
        SuiSigner.from_secret(base64.b64encode(bytes([1]) + SEED).decode())


def test_sign_transaction_layout():
    keypair = Keypair.from_seed(SEED)
    signer = SuiSigner(keypair)
    tx_bytes = b"\x00\x01transaction"

    serialized = base64.b64decode(signer.sign_transaction(base64.b64encode(tx_bytes).decode()))

    assert len(serialized) == 1 + 64 + 32
    assert serialized[0] == 0
    assert serialized[65:] == bytes(keypair.pubkey())

    digest = hashlib.blake2b(bytes([0, 0, 0]) + tx_bytes, digest_size=32).digest()
    assert serialized[1:65] == bytes(keypair.sign_message(digest))


def _response(status_code=200, body=None):
    res = MagicMock()
    res.status_code = status_code
    res.json.return_value = body or {}
    return res


def test_sui_client_returns_result():
    with patch("giverep.services.sui.httpx.post", return_value=_response(body={"result": {"digest": "d"}})) as post:
        result = SuiClient(url="http://rpc").dry_run_transaction_block("tx")
    assert result == {"digest": "d"}
    assert post.call_args.kwargs["json"]["method"] == "sui_dryRunTransactionBlock"


def test_sui_client_raises_on_rpc_error():
    body = {"error": {"code": -32602, "message": "Invalid params"}}
    with patch("giverep.services.sui.httpx.post", return_value=_response(body=body)):
        with pytest.raises(SuiRpcError, match="Invalid params"):
            SuiClient(url="http://rpc").call("sui_dryRunTransactionBlock", ["tx"])


def test_sui_client_retries_transport_errors():
    side_effect = [httpx.ConnectError("boom"), _response(body={"result": {"decimals": 6}})]
    with patch("giverep.services.sui.httpx.post", side_effect=side_effect) as post:
        assert SuiClient(url="http://rpc").get_coin_decimals("0x2::sui::SUI") == 6
    assert post.call_count == 2


def test_get_coin_decimals_falls_back_on_error():
    with patch("giverep.services.sui.httpx.post", return_value=_response(status_code=502)):
        assert SuiClient(url="http://rpc").get_coin_decimals("0x2::sui::SUI", default=9) == 9
