from __future__ import annotations

import os

from fastapi import APIRouter
from fastapi.responses import Response

from app.ious.factory import get_store
from app.ious.model import PENDING
from services.metrics import render_prometheus
from settings import settings

router = APIRouter(tags=["health"])


def _check_store() -> tuple[bool, str | None]:
    try:
        get_store().list_by_status(PENDING, limit=1)
        return True, None
    except Exception as exc:
        return False, f"{type(exc).__name__}: {exc}"


def _resolve_git_sha() -> str | None:
    return (
        (os.getenv("GIT_SHA") or "").strip()
        or (os.getenv("FLY_IMAGE_REF") or "").strip()
        or None
    )


@router.get("/health")
def health():
    return {
        "ok": True,
        "env": (settings.ENV or "").strip(),
        "store_backend": settings.IOU_STORE_BACKEND,
        "settlement_mode": settings.SETTLEMENT_MODE,
        "bulk_sync_mode": settings.BULK_SYNC_MODE,
        "git_sha": _resolve_git_sha(),
    }


@router.get("/healthz")
def healthz():
    store_ok, store_error = _check_store()
    return {
        "ok": store_ok,
        "version": settings.APP_VERSION,
        "git_sha": _resolve_git_sha(),
        "store_ok": store_ok,
        "store_error": store_error,
    }


@router.get("/metrics")
def metrics():
    body = render_prometheus()
    return Response(content=body, media_type="text/plain; version=0.0.4")
