"""Pure helpers that turn a browser cookie jar into tokens and an expiry

Nothing here touches the browser, so everything is unit-testable.
The bearer JWT is decoded without signature verification: it is only read
for its lifetime, never trusted for authorization.
"""

import base64
import binascii
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from .config import (
    BEARER_COOKIE,
    DEFAULT_SESSION_HOURS,
    FINDER_EXPIRY_COOKIE,
    SESSION_ID_COOKIE,
)
from .models import SessionCookie, SessionTokens


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Format as ISO-8601 UTC with millisecond precision and a Z suffix"""
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def from_epoch_ms(value: float) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def decode_jwt_payload(token: str) -> Optional[Dict[str, Any]]:
    """Decode the middle segment of a JWT; None if it is not decodable JSON"""
    parts = token.split(".")
    if len(parts) < 2 or not parts[1]:
        return None

    segment = parts[1].replace("-", "+").replace("_", "/")
    segment += "=" * (-len(segment) % 4)

    try:
        payload = json.loads(base64.b64decode(segment).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None

    return payload if isinstance(payload, dict) else None


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _find(cookies: Iterable[SessionCookie], name: str) -> Optional[SessionCookie]:
    for cookie in cookies:
        if cookie.name == name:
            return cookie
    return None


def _expiry_from_bearer(cookies: List[SessionCookie]) -> Optional[datetime]:
    bearer = _find(cookies, BEARER_COOKIE)
    if not bearer:
        return None

    payload = decode_jwt_payload(bearer.value)
    if not payload:
        return None

    issued_at = _as_number(payload.get("iat"))
    expires_in = _as_number(payload.get("expires_in"))
    if not issued_at or not expires_in:
        return None

    try:
        return from_epoch_ms((int(issued_at) + int(expires_in)) * 1000)
    except (OverflowError, OSError, ValueError):
        return None


def _expiry_from_finder_cookie(
    cookies: List[SessionCookie], now: datetime
) -> Optional[datetime]:
    cookie = _find(cookies, FINDER_EXPIRY_COOKIE)
    if not cookie:
        return None

    expire_ms = _as_number(cookie.value)
    if expire_ms is None:
        return None

    try:
        moment = from_epoch_ms(expire_ms)
    except (OverflowError, OSError, ValueError):
        return None
    return moment if moment > now else None


def _is_session_like(name: str) -> bool:
    return (
        name == BEARER_COOKIE
        or "session" in name
        or "auth" in name
        or SESSION_ID_COOKIE in name
    )


def _expiry_from_cookie_attributes(
    cookies: List[SessionCookie], now: datetime
) -> Optional[datetime]:
    candidates = []
    for cookie in cookies:
        if not _is_session_like(cookie.name):
            continue
        expires = _as_number(cookie.expires)
        if expires is None or expires <= 0:
            continue
        try:
            moment = from_epoch_ms(expires * 1000)
        except (OverflowError, OSError, ValueError):
            continue
        if moment > now:
            candidates.append(moment)

    # Earliest is the most conservative
    return min(candidates) if candidates else None


def compute_expiration(
    cookies: List[SessionCookie],
    now: Optional[datetime] = None,
    default_hours: float = DEFAULT_SESSION_HOURS,
) -> str:
    """
    Compute when a freshly extracted session expires.

    Priority:
        1. iat + expires_in from the bearer JWT payload
        2. the finder expiry cookie (epoch ms), if still in the future
        3. earliest future ``expires`` among session-like cookies
        4. now + default_hours

    Returns:
        ISO-8601 UTC timestamp
    """
    now = now or utc_now()

    expiry = _expiry_from_bearer(cookies)
    if expiry:
        return to_iso(expiry)

    expiry = _expiry_from_finder_cookie(cookies, now)
    if expiry:
        return to_iso(expiry)

    expiry = _expiry_from_cookie_attributes(cookies, now)
    if expiry:
        return to_iso(expiry)

    return to_iso(now + timedelta(hours=default_hours))


def extract_tokens(
    cookies: List[SessionCookie],
    local_storage: Iterable[Tuple[str, str]] = (),
) -> SessionTokens:
    """Pick the session id, bearer and CSRF tokens out of the jar"""
    tokens = SessionTokens()

    for cookie in cookies:
        lowered = cookie.name.lower()
        if cookie.name == SESSION_ID_COOKIE:
            tokens.session_id = cookie.value
        elif cookie.name == BEARER_COOKIE:
            tokens.auth_token = cookie.value
            payload = decode_jwt_payload(cookie.value)
            if payload:
                logger.debug(
                    f"Bearer token decoded (expires_in={payload.get('expires_in')}, "
                    f"token_type={payload.get('token_type')})"
                )
            else:
                logger.debug("Could not decode bearer token payload")
        elif tokens.csrf_token is None and ("csrf" in lowered or "xsrf" in lowered):
            tokens.csrf_token = cookie.value

    # Last resort: local storage
    if not tokens.auth_token:
        for key, value in local_storage:
            if "token" in key or "auth" in key:
                tokens.auth_token = value
                break

    return tokens
