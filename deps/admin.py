# deps/admin.py
import hmac

from fastapi import Header, HTTPException, status

from settings import is_dev_env, settings


def require_admin(x_admin_key: str | None = Header(default=None, alias="X-Admin-Key")) -> None:
    expected = (settings.ADMIN_API_KEY or "").strip()
    if not expected:
        # no key configured: open in dev, closed everywhere else
        if is_dev_env():
            return
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="ADMIN_REQUIRED")

    if not x_admin_key or not hmac.compare_digest(x_admin_key.strip(), expected):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="ADMIN_REQUIRED",
        )
