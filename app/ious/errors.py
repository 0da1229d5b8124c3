# app/ious/errors.py
from __future__ import annotations


class IOUError(Exception):
    pass


class ValidationError(IOUError):
    pass


class DuplicateIOUError(ValidationError):
    pass


class NotFoundError(IOUError):
    def __init__(self, iou_id: int):
        super().__init__(f"IOU not found: {iou_id}")
        self.iou_id = iou_id


class InvalidTransition(IOUError):
    pass


class StorageError(IOUError):
    pass


class SettlementError(IOUError):
    """
    On-chain settlement failed.

    retryable=True  => timeout / network trouble, the IOU stays synced
    retryable=False => the chain rejected it (revert, failed receipt)
    """

    def __init__(self, message: str, *, retryable: bool = False, tx_hash: str | None = None):
        super().__init__(message)
        self.retryable = retryable
        self.tx_hash = tx_hash
