from typing import Optional
from app.core.security import verify_token

ACCESS_TOKEN_TYPE = "access"
REQUIRED_CLAIMS = ("sub", "role")


def decode_access_token(token: str) -> Optional[dict]:
    """
    Claims of an access token issued by the auth provider.

    None when the signature or expiry is invalid (checked by jose), when the
    token is not an access token, or when it lacks the subject or role claim.
    """
    payload = verify_token(token)
    if payload is None or payload.get("type") != ACCESS_TOKEN_TYPE:
        return None
    if any(not payload.get(claim) for claim in REQUIRED_CLAIMS):
        return None
    return payload
