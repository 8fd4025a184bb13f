"""Authentication dependencies and API access logging"""
import hmac
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import Header, HTTPException, Request

from reelflow.core.config import settings
from reelflow.core.errors import Unauthorized
from reelflow.db.redis import get_session

security_logger = logging.getLogger("security")
api_access_logger = logging.getLogger("api_access")


def require_auth(request: Request) -> int:
    """Dependency: Require authentication, return user_id"""
    session_id = request.cookies.get("session_id")

    if not session_id:
        raise HTTPException(401, "Not authenticated. Please log in.")

    user_id = get_session(session_id)
    if not user_id:
        raise HTTPException(401, "Session expired. Please log in again.")

    return user_id


def verify_callback_token(
    request: Request,
    x_callback_token: Optional[str] = Header(None, alias="X-Callback-Token")
) -> None:
    """Dependency: check the shared secret on provider webhooks when one is configured"""
    if not settings.CALLBACK_SECRET:
        return
    if not x_callback_token or not hmac.compare_digest(x_callback_token, settings.CALLBACK_SECRET):
        security_logger.warning(
            f"Rejected provider callback with bad token - Path: {request.url.path}, "
            f"IP: {request.client.host if request.client else 'unknown'}"
        )
        raise Unauthorized("Invalid callback token")


def log_api_access(
    request: Request,
    session_id: Optional[str] = None,
    status_code: int = 200,
    error: Optional[str] = None
):
    """Log detailed API access information"""
    client_ip = request.headers.get("X-Forwarded-For", "").split(",")[0].strip()
    if not client_ip:
        client_ip = request.client.host if request.client else "unknown"

    log_data = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "method": request.method,
        "path": request.url.path,
        "session_id": session_id[:16] + "..." if session_id else None,
        "client_ip": client_ip,
        "status_code": status_code,
        "error": error
    }

    if error or status_code >= 400:
        api_access_logger.warning(f"API Access: {json.dumps(log_data)}")
    else:
        api_access_logger.info(f"API Access: {json.dumps(log_data)}")
