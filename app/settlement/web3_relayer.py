# app/settlement/web3_relayer.py
from __future__ import annotations

import logging
from decimal import Decimal
from threading import Lock
from typing import Any, Optional

import requests
from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from app.ious.errors import SettlementError
from app.settlement.base import SettlementReceipt
from settings import settings

logger = logging.getLogger("relief.settlement")

# relaySpendTokens takes the authorization as a bytes32
AUTHORIZATION_BYTES = 32

# Fragment of the ReliefFund ABI used for offline settlement
RELIEF_FUND_ABI: list[dict[str, Any]] = [
    {
        "inputs": [
            {"internalType": "address", "name": "beneficiary", "type": "address"},
            {"internalType": "address", "name": "merchant", "type": "address"},
            {"internalType": "uint256", "name": "amount", "type": "uint256"},
            {"internalType": "string", "name": "description", "type": "string"},
            {"internalType": "bytes32", "name": "authorization", "type": "bytes32"},
            {"internalType": "uint256", "name": "nonce", "type": "uint256"},
        ],
        "name": "relaySpendTokens",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
    {
        "inputs": [{"internalType": "address", "name": "user", "type": "address"}],
        "name": "getNonce",
        "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    },
]


class Web3RelayerClient:
    """
    Submits relayed spends to the relief fund contract and waits for the receipt.

    The relayer account pays gas. Sends are serialized so concurrent settlements
    never reuse an account nonce; waiting for receipts is not.
    """

    def __init__(
        self,
        *,
        rpc_url: str,
        contract_address: str,
        private_key: str,
        timeout_s: float = 60.0,
        chain_id: Optional[int] = None,
        w3: Optional[Web3] = None,
    ):
        if not contract_address:
            raise RuntimeError("CONTRACT_ADDRESS is not set")
        if not private_key:
            raise RuntimeError("RELAYER_PRIVATE_KEY is not set")

        self.timeout_s = float(timeout_s)
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": self.timeout_s}))
        self.contract = self.w3.eth.contract(
            address=Web3.to_checksum_address(contract_address),
            abi=RELIEF_FUND_ABI,
        )
        self.account = self.w3.eth.account.from_key(private_key)
        self.chain_id = chain_id
        self._send_lock = Lock()

    @classmethod
    def from_settings(cls) -> "Web3RelayerClient":
        return cls(
            rpc_url=settings.RPC_URL,
            contract_address=settings.CONTRACT_ADDRESS,
            private_key=settings.RELAYER_PRIVATE_KEY,
            timeout_s=settings.SETTLEMENT_TIMEOUT_S,
            chain_id=settings.CHAIN_ID,
        )

    def get_nonce(self, beneficiary: str) -> int:
        try:
            return int(self.contract.functions.getNonce(Web3.to_checksum_address(beneficiary)).call())
        except (requests.exceptions.RequestException, OSError) as exc:
            raise SettlementError(f"getNonce failed: {exc}", retryable=True) from exc
        except (Web3Exception, ValueError) as exc:
            raise SettlementError(f"getNonce failed: {exc}", retryable=False) from exc

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
        try:
            signature = Web3.to_bytes(hexstr=authorization)
        except (TypeError, ValueError) as exc:
            raise SettlementError("authorization is not hex", retryable=False) from exc
        if len(signature) != AUTHORIZATION_BYTES:
            raise SettlementError(
                f"authorization must be {AUTHORIZATION_BYTES} bytes, got {len(signature)}",
                retryable=False,
            )

        tx_hash = None
        try:
            fn = self.contract.functions.relaySpendTokens(
                Web3.to_checksum_address(beneficiary),
                Web3.to_checksum_address(merchant),
                Web3.to_wei(amount, "ether"),
                description,
                signature,
                int(nonce),
            )
            with self._send_lock:
                tx_params: dict[str, Any] = {
                    "from": self.account.address,
                    "nonce": self.w3.eth.get_transaction_count(self.account.address, "pending"),
                }
                if self.chain_id is not None:
                    tx_params["chainId"] = self.chain_id
                tx = fn.build_transaction(tx_params)
                signed = self.account.sign_transaction(tx)
                tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)

            logger.info("relay spend sent tx=%s description=%s", Web3.to_hex(tx_hash), description)
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.timeout_s)

        except ContractLogicError as exc:
            raise SettlementError(f"execution reverted: {exc}", retryable=False) from exc
        except TimeExhausted as exc:
            raise SettlementError(
                "timed out waiting for transaction receipt",
                retryable=True,
                tx_hash=Web3.to_hex(tx_hash) if tx_hash is not None else None,
            ) from exc
        except (requests.exceptions.RequestException, OSError) as exc:
            raise SettlementError(f"rpc unavailable: {exc}", retryable=True) from exc
        except (Web3Exception, ValueError) as exc:
            raise SettlementError(f"relay spend rejected: {exc}", retryable=False) from exc

        hex_hash = Web3.to_hex(receipt["transactionHash"])
        if int(receipt.get("status", 0)) != 1:
            raise SettlementError(f"transaction {hex_hash} reverted", retryable=False, tx_hash=hex_hash)

        return SettlementReceipt(tx_hash=hex_hash, block_number=receipt.get("blockNumber"))
