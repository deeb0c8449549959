# API dependencies
import logging
from typing import Optional, Tuple

from fastapi import Header, HTTPException, status, Depends, Request
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.orm import Session

from quizhub.core.config import settings
from quizhub.core.rate_limiter import RateLimiter
from quizhub.core.security import decode_access_token, decode_admin_token
from quizhub.db.database import get_db
from quizhub.models.enums import UserRole
from quizhub.models.session import UserSession
from quizhub.models.user import User
from quizhub.services import session_manager
from quizhub.services.session_manager import SessionState, SessionStatus

logger = logging.getLogger(__name__)

login_rate_limiter = RateLimiter(settings.RATE_LIMIT_LOGIN, settings.RATE_LIMIT_WINDOW_SECONDS)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or (request.client.host if request.client else "unknown")


def rate_limit_login(request: Request) -> None:
    """Sliding-window limit on login attempts per client IP and path."""
    key = f"login:{request.url.path}:{client_ip(request)}"
    if not login_rate_limiter.hit(key):
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Too many login attempts. Please try again later.",
            headers={"Retry-After": str(login_rate_limiter.retry_after(key))},
        )


def _bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header is required. Send 'Authorization: Bearer <token>'.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Malformed Authorization header. Expected 'Bearer <token>'.",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return authorization[len("Bearer "):]


def _authenticate(authorization: Optional[str], db: Session) -> Tuple[UserSession, SessionStatus]:
    """
    Resolve the server-side session behind a user JWT.

    The session is evaluated on every request: an expired one is revoked and
    rejected, anything else counts as activity. The status returned is the
    one seen before the touch.
    """
    token = _bearer_token(authorization)
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    try:
        payload = decode_access_token(token)
        session_id = int(payload.get("sid"))
        user_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError) as e:
        logger.info(f"[Auth] token rejected: {e}")
        raise credentials_exception

    session = session_manager.get_session(db, session_id)
    if session is None or session.user_id != user_id:
        raise credentials_exception

    current = session_manager.evaluate_session(session)
    if current.state == SessionState.EXPIRED:
        session_manager.revoke_session(db, session)
        db.commit()
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Session expired. Please log in again.",
            headers={"WWW-Authenticate": "Bearer"},
        )

    session_manager.touch(session)
    db.commit()
    return session, current


def get_current_session(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db)
) -> UserSession:
    session, _ = _authenticate(authorization, db)
    return session


def get_session_with_status(
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db)
) -> Tuple[UserSession, SessionStatus]:
    """Like get_current_session, plus the status from before this request's activity."""
    return _authenticate(authorization, db)


def get_current_user(
    session: UserSession = Depends(get_current_session),
) -> User:
    return session.user


def require_student(current_user: User = Depends(get_current_user)) -> User:
    if current_user.role != UserRole.STUDENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Student access required",
        )
    return current_user


def require_educator(current_user: User = Depends(get_current_user)) -> User:
    """Any educator account, approved or not; permission checks gate the rest."""
    if current_user.role not in UserRole.EDUCATOR_ROLES and current_user.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Educator access required",
        )
    return current_user


def get_current_admin(
    request: Request,
    authorization: Optional[str] = Header(None),
    db: Session = Depends(get_db)
) -> User:
    """
    Admin context, separate from user sessions.
    Reads the admin cookie first, then a Bearer admin token.
    """
    token = request.cookies.get(settings.ADMIN_SESSION_COOKIE)
    if not token and authorization and authorization.startswith("Bearer "):
        token = authorization[len("Bearer "):]
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized - Admin access required",
        )

    try:
        payload = decode_admin_token(token)
        admin_id = int(payload.get("sub"))
    except (JWTError, TypeError, ValueError) as e:
        logger.info(f"[Admin auth] token rejected: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized - Admin access required",
        )

    admin = db.execute(select(User).where(User.id == admin_id)).scalar_one_or_none()
    if admin is None or admin.role != UserRole.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized - Admin access required",
        )
    return admin
