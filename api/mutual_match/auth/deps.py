"""
Caller identity for the matching routes.

Clients send ``Authorization: Bearer <jwt>``; the token subject is the profile
id the engine acts for. Profiles themselves live in the profile subsystem.
"""

import logging
import uuid
from typing import Any

from fastapi import Header, HTTPException

from ..auth.security import decode_access_token
from ..config import DEV_MODE

logger = logging.getLogger(__name__)


def _unauthorized(reason: str, trace_id: str) -> HTTPException:
    logger.warning("[auth] rejected request reason=%s trace_id=%s", reason, trace_id)
    detail: dict[str, Any] = {"message": "unauthorized", "trace_id": trace_id}
    if DEV_MODE:
        detail["reason"] = reason
    return HTTPException(status_code=401, detail=detail)


def _extract_bearer(authorization: str | None, trace_id: str) -> str:
    if not authorization:
        raise _unauthorized("missing_token", trace_id)
    parts = authorization.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1].strip():
        raise _unauthorized("malformed_token", trace_id)
    return parts[1].strip()


def get_current_user(authorization: str | None = Header(default=None, alias="Authorization")) -> dict[str, Any]:
    trace_id = str(uuid.uuid4())
    token = _extract_bearer(authorization, trace_id)
    try:
        payload = decode_access_token(token)
    except HTTPException as e:
        if e.status_code != 401:
            raise
        reason = "token_expired" if "expired" in str(e.detail).lower() else "signature_invalid"
        raise _unauthorized(reason, trace_id)

    user_id = str(payload.get("sub") or "")
    if not user_id:
        raise _unauthorized("token_missing_subject", trace_id)
    logger.debug("[auth] token valid, sub=%s", user_id)
    return {"id": user_id}
