from __future__ import annotations

from typing import Any, Dict

from jose import jwt, JWTError

from settings import settings


# -----------------------
# Supabase access tokens (JWT)
# -----------------------
def decode_token(token: str) -> Dict[str, Any]:
    try:
        return jwt.decode(
            token,
            settings.SUPABASE_JWT_SECRET,
            algorithms=[settings.JWT_ALG],
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError:
        return {}
