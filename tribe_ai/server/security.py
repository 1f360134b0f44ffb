"""Shared-secret authentication for privileged endpoints."""

import logging
import secrets
from typing import Optional

from fastapi import Header, HTTPException, Request

logger = logging.getLogger(__name__)


def api_key_matches(provided: Optional[str], expected: Optional[str]) -> bool:
    """Constant-time comparison; an unset expected key never matches."""
    if not provided or not expected:
        return False
    return secrets.compare_digest(provided.encode("utf-8"), expected.encode("utf-8"))


async def require_api_key(request: Request, x_api_key: Optional[str] = Header(default=None)) -> None:
    """FastAPI dependency guarding the sync endpoints."""
    expected = request.app.state.settings.sync.api_key
    if not expected:
        logger.error("SYNC_API_KEY is not configured; rejecting privileged request")
    if not api_key_matches(x_api_key, expected):
        raise HTTPException(status_code=401, detail="Unauthorized")
