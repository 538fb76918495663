import time
from typing import Optional

from fastapi import HTTPException
from itsdangerous import BadData, URLSafeSerializer

from config import get_settings

TOKEN_TTL_SECS = 2 * 3600


def _serializer() -> URLSafeSerializer:
    return URLSafeSerializer(get_settings().csrf_secret, salt="celengan-form")


def generate_csrf_token(user_id: Optional[int] = None) -> str:
    user_id = user_id or get_settings().user_id
    issued = int(time.time())
    return _serializer().dumps({"u": user_id, "exp": issued + TOKEN_TTL_SECS})


def validate_csrf_token(token: str, user_id: Optional[int] = None) -> bool:
    user_id = user_id or get_settings().user_id
    try:
        data = _serializer().loads(token)
    except BadData:
        return False
    if not isinstance(data, dict) or data.get("u") != user_id:
        return False
    return int(time.time()) <= int(data.get("exp", 0))


def require_csrf(token: Optional[str]) -> None:
    if not token or not validate_csrf_token(token):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")
