import logging

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import ExpiredSignatureError, JWTError, jwt
from sqlalchemy.orm import Session

from .config import SUPABASE_JWT_AUDIENCE, SUPABASE_JWT_SECRET
from .database import get_db
from .models import Profile
from .shared.validators import utcnow

logger = logging.getLogger(__name__)

security = HTTPBearer()


def verify_supabase_token(token: str) -> dict:
    """
    Verify a Supabase access token (HS256, signed with the project JWT secret).
    Raises 401 on a bad signature, wrong audience or expired token.
    """
    try:
        payload = jwt.decode(
            token,
            SUPABASE_JWT_SECRET,
            algorithms=["HS256"],
            audience=SUPABASE_JWT_AUDIENCE,
        )
    except ExpiredSignatureError as e:
        raise HTTPException(
            status_code=401,
            detail="Token has expired. Please refresh your session.",
            headers={"X-Token-Expired": "true"},
        ) from e
    except JWTError as e:
        logger.warning(f"⚠️ Token verification failed: {str(e)}")
        raise HTTPException(status_code=401, detail="Invalid token") from e

    if not payload.get("sub"):
        logger.error(f"❌ Token missing sub claim. Available claims: {list(payload.keys())}")
        raise HTTPException(status_code=401, detail="Invalid token claims")

    return payload


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> Profile:
    """Get the current user's profile from the bearer token"""

    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    token = credentials.credentials
    if len(token.split(".")) != 3:
        logger.warning(f"⚠️ Malformed token received, token length: {len(token)}")
        raise HTTPException(
            status_code=401, detail="Invalid token format. Expected a valid JWT token."
        )

    payload = verify_supabase_token(token)

    profile = db.query(Profile).filter(Profile.id == payload["sub"]).first()
    if not profile:
        logger.warning(f"⚠️ No profile for authenticated user {payload['sub']}")
        raise HTTPException(status_code=401, detail="Profile not found")

    if profile.account_status == "banned":
        raise HTTPException(status_code=403, detail="Account has been banned")

    if profile.account_status == "suspended":
        if profile.suspended_until and profile.suspended_until <= utcnow():
            profile.account_status = "active"
            profile.suspended_until = None
            db.commit()
            logger.info(f"✅ Suspension expired for {profile.id}")
        else:
            raise HTTPException(status_code=403, detail="Account is suspended")

    logger.debug(f"✅ User authenticated: {profile.id} ({profile.role})")
    return profile


def require_role(*roles: str):
    """
    Create a dependency that only lets the given roles through.

    Example usage:
        @router.get("/admin/things")
        async def list_things(admin: Profile = Depends(require_role("admin"))):
            ...
    """

    async def role_checker(user: Profile = Depends(get_current_user)) -> Profile:
        if user.role not in roles:
            logger.warning(f"⚠️ User {user.id} with role {user.role} denied (needs {roles})")
            raise HTTPException(status_code=403, detail="Insufficient permissions")
        return user

    return role_checker
