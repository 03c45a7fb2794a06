"""Signed, time-bound tokens for the customer's quote link.

Nothing is stored per token. A token names the quote, its tenant and the
quote's public_token_version at issue time; bumping the version on the
quote revokes every link issued before.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
import logging

from jose import ExpiredSignatureError, JWTError, jwt

from app.config import settings
from app.exceptions import InvalidOrExpiredToken
from app.models.quote import Quote
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

QUOTE_TOKEN_SCOPE = "quote_approval"


@dataclass(frozen=True)
class QuoteTokenClaims:
    quote_id: str
    tenant_id: str
    version: int
    expires_at: datetime


def create_quote_token(quote: Quote, expires_delta: Optional[timedelta] = None) -> Tuple[str, datetime]:
    """Sign a link token for the quote's current version. Returns (token, expires_at)."""
    expires_at = utcnow() + (expires_delta or timedelta(days=settings.QUOTE_LINK_EXPIRE_DAYS))
    payload = {
        "sub": quote.id,
        "tid": quote.tenant_id,
        "ver": quote.public_token_version,
        "scope": QUOTE_TOKEN_SCOPE,
        "exp": expires_at,
    }
    token = jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)
    return token, expires_at.replace(microsecond=0)


def verify_quote_token(token: str) -> QuoteTokenClaims:
    """Decode a link token or raise InvalidOrExpiredToken.

    Only checks the signature, expiry and shape; the caller must still
    compare `version` with the quote's public_token_version.
    """
    if not token:
        raise InvalidOrExpiredToken()
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except ExpiredSignatureError:
        raise InvalidOrExpiredToken("This quote link has expired")
    except JWTError:
        # SECURITY: never log the token itself
        logger.warning("Quote link token rejected")
        raise InvalidOrExpiredToken()

    if payload.get("scope") != QUOTE_TOKEN_SCOPE:
        raise InvalidOrExpiredToken()
    quote_id, tenant_id, version = payload.get("sub"), payload.get("tid"), payload.get("ver")
    if not quote_id or not tenant_id or not isinstance(version, int):
        raise InvalidOrExpiredToken()

    expires_at = datetime.fromtimestamp(payload["exp"], tz=timezone.utc).replace(tzinfo=None)
    return QuoteTokenClaims(quote_id=quote_id, tenant_id=tenant_id, version=version, expires_at=expires_at)


def public_link(token: str) -> str:
    return f"{settings.public_quote_url}?token={token}"
