import threading
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from app.logging_config import get_logger
from app.services.lark_service import DEFAULT_BASE_URL
from app.services.result import ErrorCode, Result

logger = get_logger("token_service")

TOKEN_PATH = "/auth/v3/tenant_access_token/internal"
# Refresh cached tokens this long before the platform-reported expiry
TOKEN_EXPIRY_MARGIN_SECONDS = 300

_token_cache: dict[str, tuple["AccessToken", float]] = {}
_token_cache_lock = threading.Lock()


@dataclass(frozen=True)
class AccessToken:
    value: str
    expires_in: Optional[int] = None

    def __repr__(self) -> str:
        return f"AccessToken(value='***', expires_in={self.expires_in})"


def clear_token_cache() -> None:
    with _token_cache_lock:
        _token_cache.clear()


def _read_cached_token(app_id: str) -> Optional[AccessToken]:
    with _token_cache_lock:
        cached = _token_cache.get(app_id)
        if not cached:
            return None
        token, valid_until = cached
        if time.monotonic() >= valid_until:
            _token_cache.pop(app_id, None)
            return None
        return token


def _write_cached_token(app_id: str, token: AccessToken) -> None:
    if not token.expires_in:
        return
    ttl = token.expires_in - TOKEN_EXPIRY_MARGIN_SECONDS
    if ttl <= 0:
        return
    with _token_cache_lock:
        _token_cache[app_id] = (token, time.monotonic() + ttl)


def acquire_tenant_access_token(
    app_id: str,
    app_secret: str,
    *,
    base_url: str = DEFAULT_BASE_URL,
    timeout: float = 10.0,
    use_cache: bool = False,
) -> Result[AccessToken]:
    """Fetch a tenant access token for the app identity. No retries."""
    if use_cache:
        cached = _read_cached_token(app_id)
        if cached:
            return Result.success(cached)

    url = f"{base_url.rstrip('/')}{TOKEN_PATH}"
    try:
        with httpx.Client(timeout=timeout) as client:
            response = client.post(url, json={"app_id": app_id, "app_secret": app_secret})
        data = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Token request failed: {e}")
        return Result.failure(f"Token request failed: {e}", ErrorCode.TOKEN_ERROR)

    code = data.get("code")
    token_value = data.get("tenant_access_token")
    if code != 0 or not token_value:
        logger.error(
            "Token acquisition rejected",
            extra={"context": {"app_id": app_id, "code": code, "msg": data.get("msg")}},
        )
        return Result.failure(
            f"Token acquisition failed: code={code} msg={data.get('msg')}",
            ErrorCode.TOKEN_ERROR,
            {"code": code, "msg": data.get("msg")},
        )

    token = AccessToken(value=token_value, expires_in=data.get("expire"))
    if use_cache:
        _write_cached_token(app_id, token)
    return Result.success(token)
