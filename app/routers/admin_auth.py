from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from pydantic import BaseModel
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.core.exceptions import AuthenticationError, ValidationError
from app.models.user import User, UserRole
from app.schemas.user import UserSummary
from app.utils.auth import verify_password, create_access_token

router = APIRouter(prefix="/auth", tags=["Admin Auth"])

ADMIN_LOGIN_ERROR = "Invalid credentials or insufficient permissions"


class AdminToken(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserSummary


@router.post("/token", response_model=AdminToken)
async def admin_login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    """Sign-in for the admin dashboard. Issues the same bearer token as /auth/login."""
    user = db.query(User).filter(User.email == form_data.username.strip().lower()).first()

    # Unknown email, wrong password and non-admin account all look the same
    if not user or user.role != UserRole.ADMIN or not verify_password(form_data.password, user.password_hash):
        raise AuthenticationError(ADMIN_LOGIN_ERROR)

    if not user.is_active:
        raise ValidationError("Account is deactivated")

    token = create_access_token(data={"sub": str(user.id), "role": user.role.value})
    return AdminToken(access_token=token, user=UserSummary.model_validate(user))
