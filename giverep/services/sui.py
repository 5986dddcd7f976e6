"""Sui JSON-RPC client and the backend co-signer used for reward claims."""

from __future__ import annotations

import base64
import hashlib
from typing import Any, Optional

import httpx
from solders.keypair import Keypair
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from giverep.core.config import settings
from giverep.core.logging import get_logger

logger = get_logger(__name__)

ED25519_FLAG = 0x00
# IntentScope::TransactionData, IntentVersion::V0, AppId::Sui
TRANSACTION_INTENT = bytes([0, 0, 0])


class SuiRpcError(Exception):
    pass


def blake2b256(data: bytes) -> bytes:
    return hashlib.blake2b(data, digest_size=32).digest()


def normalize_sui_address(address: Optional[str]) -> str:
    """Lowercase, 0x-prefixed, left-padded to 32 bytes."""
    if not address:
        return ""
    value = address.strip().lower()
    if value.startswith("0x"):
        value = value[2:]
    return "0x" + value.rjust(64, "0")


def normalize_coin_type(coin_type: Optional[str]) -> str:
    if not coin_type:
        return ""
    address, sep, rest = coin_type.strip().partition("::")
    if not sep:
        return coin_type.strip()
    return f"{normalize_sui_address(address)}::{rest}"


class SuiSigner:
    def __init__(self, keypair: Keypair):
        self._keypair = keypair

    @classmethod
    def from_secret(cls, secret: str) -> "SuiSigner":
        """
        Accepts the exported key as base64 (33 bytes flag+seed, 32-byte seed,
        or 64-byte seed+pubkey) or as a hex seed.
        """
        value = (secret or "").strip()
        if not value:
            raise ValueError("Backend signer key is not configured")
        if value.startswith("suiprivkey"):
            raise ValueError("Bech32 keys are not supported; export the key as base64")

        hex_value = value[2:] if value.startswith("0x") else value
        if len(hex_value) == 64 and all(c in "0123456789abcdefABCDEF" for c in hex_value):
            return cls(Keypair.from_seed(bytes.fromhex(hex_value)))

        raw = base64.b64decode(value)
        if len(raw) == 33:
            if raw[0] != ED25519_FLAG:
                raise ValueError("Only Ed25519 keys are supported")
            seed = raw[1:]
        elif len(raw) in (32, 64):
            seed = raw[:32]
        else:
            raise ValueError(f"Unexpected key length: {len(raw)} bytes")
        return cls(Keypair.from_seed(seed))

    @property
    def public_key(self) -> bytes:
        return bytes(self._keypair.pubkey())

    @property
    def address(self) -> str:
        return "0x" + blake2b256(bytes([ED25519_FLAG]) + self.public_key).hex()

    def sign_transaction(self, transaction_bytes_b64: str) -> str:
        tx_bytes = base64.b64decode(transaction_bytes_b64)
        digest = blake2b256(TRANSACTION_INTENT + tx_bytes)
        signature = bytes(self._keypair.sign_message(digest))
        return base64.b64encode(bytes([ED25519_FLAG]) + signature + self.public_key).decode()


class SuiClient:
    def __init__(self, url: Optional[str] = None, timeout: float = 30.0):
        self.url = url or settings.SUI_RPC_URL
        self.timeout = timeout

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
        stop=stop_after_attempt(3),
        reraise=True,
    )
    def _post(self, payload: dict) -> httpx.Response:
        return httpx.post(self.url, json=payload, timeout=self.timeout)

    def call(self, method: str, params: list) -> Any:
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params}
        try:
            res = self._post(payload)
        except httpx.HTTPError as exc:
            raise SuiRpcError(f"Sui RPC request failed: {exc}") from exc

        if res.status_code != 200:
            raise SuiRpcError(f"Sui RPC returned {res.status_code}")
        body = res.json()
        if body.get("error"):
            message = body["error"].get("message") or str(body["error"])
            raise SuiRpcError(message)
        return body.get("result")

    def dry_run_transaction_block(self, transaction_bytes_b64: str) -> dict:
        return self.call("sui_dryRunTransactionBlock", [transaction_bytes_b64])

    def execute_transaction_block(self, transaction_bytes_b64: str, signatures: list[str]) -> dict:
        return self.call(
            "sui_executeTransactionBlock",
            [
                transaction_bytes_b64,
                signatures,
                {"showEvents": True, "showEffects": True},
                "WaitForLocalExecution",
            ],
        )

    def get_coin_metadata(self, coin_type: str) -> Optional[dict]:
        return self.call("suix_getCoinMetadata", [coin_type])

    def get_coin_decimals(self, coin_type: str, default: int = 9) -> int:
        try:
            metadata = self.get_coin_metadata(coin_type)
        except SuiRpcError as exc:
            logger.warning("Could not fetch coin metadata for %s: %s", coin_type, exc)
            return default
        if metadata and metadata.get("decimals") is not None:
            return int(metadata["decimals"])
        return default
