"""
Account endpoints
Signup, login/logout and profile
"""

from fastapi import APIRouter, HTTPException, status, Depends, Request
from sqlalchemy import select
from sqlalchemy.orm import Session
import logging

from quizhub.api.dependencies import (
    get_current_session,
    get_current_user,
    rate_limit_login,
    client_ip,
)
from quizhub.core.config import settings
from quizhub.core.security import hash_password, verify_password, create_access_token
from quizhub.db.database import get_db
from quizhub.models.enums import UserRole, ApprovalStatus
from quizhub.models.session import UserSession
from quizhub.models.user import User
from quizhub.schemas.auth import (
    SignupRequest,
    LoginRequest,
    ProfileUpdateRequest,
    UserResponse,
    TokenResponse,
    RoleResponse,
)
from quizhub.services import session_manager
from quizhub.services.permissions import get_user_permissions

logger = logging.getLogger(__name__)
router = APIRouter()

INVALID_LOGIN = "Invalid email or password"


def _issue_token(db: Session, user: User, request: Request) -> TokenResponse:
    session = session_manager.create_session(
        db, user, client_ip(request), request.headers.get("user-agent")
    )
    token = create_access_token(user.id, session.id, user.role)
    return TokenResponse(
        access_token=token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        user=UserResponse.model_validate(user),
    )


@router.post("/signup", response_model=TokenResponse, status_code=status.HTTP_201_CREATED)
def signup(
    payload: SignupRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Create an account and log it in.

    Students are approved straight away; educators start as
    pending_educator until an admin approves them.
    """
    try:
        logger.info(f"[Signup] {payload.email} as {payload.role}")

        existing = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
        if existing:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="An account with this email already exists"
            )

        is_educator = payload.role == "educator"
        user = User(
            name=payload.name.strip(),
            email=payload.email,
            password_hash=hash_password(payload.password),
            role=UserRole.PENDING_EDUCATOR if is_educator else UserRole.STUDENT,
            approval_status=ApprovalStatus.PENDING if is_educator else ApprovalStatus.APPROVED,
            timezone=payload.timezone or settings.DEFAULT_TIMEZONE,
            phone_number=payload.phone_number,
        )
        db.add(user)
        db.flush()

        response = _issue_token(db, user, request)
        db.commit()
        logger.info(f"[Signup] user {user.id} created ({user.role})")
        return response

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[Signup] error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to create account: {str(e)}"
        )


@router.post("/login", response_model=TokenResponse, dependencies=[Depends(rate_limit_login)])
def login(
    payload: LoginRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """Email/password login. Opens a new server-side session."""
    try:
        user = db.execute(select(User).where(User.email == payload.email)).scalar_one_or_none()
        if user is None or not verify_password(payload.password, user.password_hash):
            logger.info(f"[Login] rejected for {payload.email}")
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=INVALID_LOGIN
            )

        response = _issue_token(db, user, request)
        db.commit()
        logger.info(f"[Login] user {user.id} logged in")
        return response

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[Login] error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Login failed: {str(e)}"
        )


@router.post("/logout")
def logout(
    session: UserSession = Depends(get_current_session),
    db: Session = Depends(get_db)
):
    session_manager.revoke_session(db, session)
    db.commit()
    return {"success": True, "message": "Logged out"}


@router.get("/me", response_model=UserResponse)
def get_me(current_user: User = Depends(get_current_user)):
    return current_user


@router.patch("/profile", response_model=UserResponse)
def update_profile(
    payload: ProfileUpdateRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    try:
        if payload.name is not None:
            current_user.name = payload.name.strip()
        if payload.timezone is not None:
            current_user.timezone = payload.timezone
        if payload.phone_number is not None:
            current_user.phone_number = payload.phone_number
        db.commit()
        db.refresh(current_user)
        return current_user

    except Exception as e:
        logger.error(f"[Profile] error: {str(e)}")
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to update profile: {str(e)}"
        )


@router.get("/role", response_model=RoleResponse)
def get_role(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Role and approval status; rejected or suspended educators also get the reason."""
    reason = None
    if current_user.approval_status in (ApprovalStatus.REJECTED, ApprovalStatus.SUSPENDED):
        reason = current_user.rejection_reason
    return RoleResponse(
        role=current_user.role,
        approval_status=current_user.approval_status,
        rejection_reason=reason,
        permissions=get_user_permissions(db, current_user) if current_user.role != UserRole.STUDENT else {},
    )
