# app/settlement/factory.py
from __future__ import annotations

from typing import Optional

from app.settlement.base import SettlementClient
from settings import settings

_CLIENT: Optional[SettlementClient] = None


def get_settlement_client() -> SettlementClient:
    global _CLIENT
    if _CLIENT is not None:
        return _CLIENT

    mode = (settings.SETTLEMENT_MODE or "sandbox").strip().lower()
    if mode == "real":
        from app.settlement.web3_relayer import Web3RelayerClient
        _CLIENT = Web3RelayerClient.from_settings()
    elif mode == "sandbox":
        from app.settlement.sandbox import SandboxSettlementClient
        _CLIENT = SandboxSettlementClient()
    else:
        raise RuntimeError(f"Invalid SETTLEMENT_MODE={mode!r}. Allowed: sandbox, real")
    return _CLIENT


def set_settlement_client(client: Optional[SettlementClient]) -> None:
    global _CLIENT
    _CLIENT = client
