from fastapi import BackgroundTasks, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session
from app.core.config import settings
from app.core.database import get_db
from app.models.user import User, UserRole
from app.services.notifications import NotificationDispatcher
from app.services.payments import PaystackGateway
from app.services.verification import VerificationService
from app.utils.auth import decode_token
from typing import Optional
from uuid import UUID

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/token", auto_error=False)

async def get_current_user(
    db: Session = Depends(get_db),
    token: Optional[str] = Depends(oauth2_scheme)
) -> Optional[User]:
    if not token:
        return None

    payload = decode_token(token)
    if not payload:
        return None

    user_id = payload.get("sub")
    if not user_id:
        return None

    try:
        user_uuid = UUID(user_id)
    except ValueError:
        return None

    user = db.query(User).filter(User.id == user_uuid).first()
    return user

async def get_current_active_user(
    current_user: Optional[User] = Depends(get_current_user)
) -> User:
    if not current_user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not current_user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated"
        )
    return current_user

def require_role(*roles: UserRole):
    async def role_checker(
        current_user: User = Depends(get_current_active_user)
    ):
        if current_user.role not in roles:
            names = " or ".join(r.value for r in roles)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. {names.capitalize()} privileges required."
            )
        return current_user
    return role_checker

require_admin = require_role(UserRole.ADMIN)
require_agent_or_admin = require_role(UserRole.AGENT, UserRole.ADMIN)

# ─── Workflow collaborators ───────────────────────────────────────────────────

def get_payment_gateway(request: Request) -> PaystackGateway:
    # One per process so the HTTP connection pool is reused; closed on shutdown
    return request.app.state.payment_gateway

def get_notifier(background_tasks: BackgroundTasks) -> NotificationDispatcher:
    return NotificationDispatcher(settings, background_tasks)

def get_verification_service(
    db: Session = Depends(get_db),
    gateway=Depends(get_payment_gateway),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> VerificationService:
    return VerificationService(db, gateway=gateway, notifier=notifier, settings=settings)
