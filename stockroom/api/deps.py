from dataclasses import dataclass

from fastapi import Depends, Request
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError

from stockroom.core.security import decode_token
from stockroom.services.errors import Forbidden, Unauthorized

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/auth/token", auto_error=False)


@dataclass(frozen=True)
class Principal:
    user_id: int
    store_id: int
    role: str


def _clean_candidate(value: str | None) -> str | None:
    if not value:
        return None
    cleaned = value.strip().strip("\"'").strip()
    if not cleaned:
        return None
    # Normalize accidental duplicated prefixes like: "Bearer Bearer <jwt>"
    while cleaned.lower().startswith("bearer "):
        cleaned = cleaned[7:].strip().strip("\"'").strip()
    return cleaned or None


def get_principal(
    request: Request,
    token: str | None = Depends(oauth2_scheme),
) -> Principal:
    """Resolve the caller's ``(user_id, store_id)`` from an access token.

    Accepts the bearer header or the ``session_token`` cookie the web client
    sends. A token that is valid but carries no store is Forbidden.
    """
    raw_token = _clean_candidate(token) or _clean_candidate(request.cookies.get("session_token"))
    if not raw_token:
        raise Unauthorized("Authentication required")

    try:
        payload = decode_token(raw_token)
    except JWTError as exc:
        raise Unauthorized("Invalid authentication credentials") from exc

    subject = payload.get("sub")
    if subject is None or payload.get("type") != "access":
        raise Unauthorized("Invalid authentication credentials")
    try:
        user_id = int(subject)
    except (TypeError, ValueError) as exc:
        raise Unauthorized("Invalid authentication credentials") from exc

    store_id = payload.get("store_id")
    if store_id is None:
        raise Forbidden("Invalid store access")
    try:
        store_id = int(store_id)
    except (TypeError, ValueError) as exc:
        raise Forbidden("Invalid store access") from exc

    return Principal(user_id=user_id, store_id=store_id, role=str(payload.get("role") or "staff"))
