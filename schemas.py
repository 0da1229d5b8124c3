# schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


# -------- OFFLINE IOUS --------
# required fields stay Optional; the store reports missing ones
class CreateIOURequest(_CamelModel):
    beneficiary: Optional[str] = None
    merchant: Optional[str] = None
    amount: Optional[Union[str, int, float]] = None
    signature: Optional[str] = None
    timestamp: Optional[datetime] = None
    nonce: Optional[int] = None


class BulkSyncRequest(_CamelModel):
    merchant_address: Optional[str] = Field(default=None, alias="merchantAddress")
    iou_ids: Any = Field(default=None, alias="iouIds")


class MarkSettledRequest(_CamelModel):
    iou_ids: Any = Field(default=None, alias="iouIds")
    tx_hash: Optional[str] = Field(default=None, alias="txHash")


class SettlePendingRequest(_CamelModel):
    limit: Optional[int] = Field(default=None, ge=1, le=1000)


class IOUCreatedItem(BaseModel):
    id: int
    status: str


class IOUCreatedResponse(BaseModel):
    success: bool = True
    iou: IOUCreatedItem


class MessageResponse(BaseModel):
    success: bool = True
    message: str
