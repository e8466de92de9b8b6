"""JWT creation and decoding.

Access token claims (issued by the identity provider; create_access_token
exists for tests and local development):
  - sub:          user ID
  - email:        user email
  - role:         "admin" | "client"
  - permissions:  optional explicit overrides {perm: bool}
  - type:         "access"
  - exp:          expiry timestamp

Action tokens (emailed links) carry a `purpose` instead of `type`:
  - assignment_acceptance   sub=client email, aid=assignment id   (7 days)
  - invite                  sub=invitee email                     (5 days)
  - email_verification      sub=profile email                     (1 hour)
"""

from datetime import datetime, timedelta, timezone

from jose import ExpiredSignatureError, JWTError, jwt

from servicehub.config import settings
from servicehub.middleware.exceptions import TokenExpiredError, TokenInvalidError

ALGORITHM = settings.jwt_algorithm

PURPOSE_ASSIGNMENT_ACCEPTANCE = "assignment_acceptance"
PURPOSE_INVITE = "invite"
PURPOSE_EMAIL_VERIFICATION = "email_verification"


# ── Access tokens ───────────────────────────────────────────

def create_access_token(
    user_id: str,
    email: str,
    role: str,
    permissions: dict[str, bool] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {
        "sub": user_id,
        "email": email,
        "role": role,
        "type": "access",
        "exp": expire,
    }
    if permissions:
        payload["permissions"] = permissions
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def decode_token(token: str) -> dict:
    """Decode and validate a JWT. Returns empty dict on failure."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except JWTError:
        return {}


# ── Action tokens ───────────────────────────────────────────

def issue_token(subject: str, purpose: str, ttl: timedelta, **claims) -> str:
    """Sign a purpose-bound token for an emailed link."""
    now = datetime.now(timezone.utc)
    payload = {
        **claims,
        "sub": subject,
        "purpose": purpose,
        "iat": now,
        "exp": now + ttl,
    }
    return jwt.encode(payload, settings.secret_key, algorithm=ALGORITHM)


def verify_token(token: str, purpose: str) -> dict:
    """Return the claims of a valid token issued for `purpose`.

    Raises TokenExpiredError once `exp` has passed and TokenInvalidError for
    a bad signature, a malformed token or a token minted for another flow.
    """
    try:
        claims = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
    except ExpiredSignatureError:
        raise TokenExpiredError()
    except JWTError:
        raise TokenInvalidError()

    if claims.get("purpose") != purpose or not claims.get("sub"):
        raise TokenInvalidError()
    return claims
