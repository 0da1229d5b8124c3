# app/settlement/sandbox.py
from __future__ import annotations

import hashlib
from decimal import Decimal
from threading import Lock

from app.ious.errors import SettlementError
from app.settlement.base import SettlementReceipt


class SandboxSettlementClient:
    """
    Test/dev settlement client. No network.

    Outcome is decided by the authorization text so tests can script it:
    - contains "revert"  => non-retryable failure (contract rejected it)
    - contains "timeout" => retryable failure (no confirmation)
    - otherwise          => confirmed, tx hash derived from the call
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._nonces: dict[str, int] = {}
        self.calls: list[dict] = []

    def relay_spend(
        self,
        *,
        beneficiary: str,
        merchant: str,
        amount: Decimal,
        description: str,
        authorization: str,
        nonce: int,
    ) -> SettlementReceipt:
        call = {
            "beneficiary": beneficiary,
            "merchant": merchant,
            "amount": amount,
            "description": description,
            "authorization": authorization,
            "nonce": nonce,
        }
        with self._lock:
            self.calls.append(call)

        marker = (authorization or "").lower()
        if "revert" in marker:
            raise SettlementError("execution reverted: invalid signature", retryable=False)
        if "timeout" in marker:
            raise SettlementError("timed out waiting for transaction receipt", retryable=True)

        raw = f"{beneficiary.lower()}:{merchant.lower()}:{amount}:{description}:{nonce}"
        tx_hash = "0x" + hashlib.sha256(raw.encode("utf-8")).hexdigest()
        with self._lock:
            key = beneficiary.lower()
            self._nonces[key] = max(self._nonces.get(key, 0), int(nonce) + 1)
            block = len(self.calls)
        return SettlementReceipt(tx_hash=tx_hash, block_number=block)

    def get_nonce(self, beneficiary: str) -> int:
        with self._lock:
            return self._nonces.get((beneficiary or "").lower(), 0)
