import logging
from datetime import datetime, timedelta
from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session
from app.core.database import get_db
from app.models.user import User
from app.schemas.common import ApiResponse
from app.schemas.user import (
    AuthData, AvatarData, PhoneVerifyRequest, ProfileUpdate, UserCreate, UserData, UserLogin, UserResponse
)
from app.utils.auth import (
    create_access_token, generate_referral_code, generate_verification_code, get_password_hash, verify_password
)
from app.api.deps import get_current_active_user, get_notifier
from app.services.notifications import NotificationDispatcher
from app.utils.file_storage import delete_user_avatar, save_user_avatar

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])

CODE_TTL_MINUTES = 10
RESEND_COOLDOWN_SECONDS = 60


def _token_for(user: User) -> str:
    return create_access_token(data={"sub": str(user.id), "role": user.role.value})


def _unique_referral_code(db: Session, name: str) -> str:
    code = generate_referral_code(name)
    while db.query(User).filter(User.referral_code == code).first():
        code = generate_referral_code(name)
    return code


def _authenticate(db: Session, email: str, password: str) -> User:
    user = db.query(User).filter(User.email == email.lower()).first()

    if not user or not verify_password(password, user.password_hash):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Account is deactivated"
        )
    return user


@router.post("/register", response_model=ApiResponse[AuthData], status_code=status.HTTP_201_CREATED)
async def register(
    user_data: UserCreate,
    db: Session = Depends(get_db),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    existing = db.query(User).filter(
        (User.email == user_data.email) | (User.phone_number == user_data.phone_number)
    ).first()
    if existing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User already exists"
        )

    referrer = None
    if user_data.referral_code:
        referrer = db.query(User).filter(User.referral_code == user_data.referral_code.strip().upper()).first()

    code = generate_verification_code()
    user = User(
        email=user_data.email,
        phone_number=user_data.phone_number,
        full_name=user_data.full_name.strip(),
        password_hash=get_password_hash(user_data.password),
        role=user_data.role,
        verification_code=code,
        verification_code_expiry=datetime.utcnow() + timedelta(minutes=CODE_TTL_MINUTES),
        referral_code=_unique_referral_code(db, user_data.full_name),
        referred_by_id=referrer.id if referrer else None,
    )
    db.add(user)

    if referrer:
        db.query(User).filter(User.id == referrer.id).update(
            {User.total_referrals: User.total_referrals + 1}, synchronize_session=False
        )

    db.commit()
    db.refresh(user)
    logger.info("Registered user %s (%s)", user.id, user.role.value)

    notifier.send_sms(user.phone_number, f"Your PropertyVerify code is: {code}")

    return ApiResponse(
        message="User registered. Verify your phone.",
        data=AuthData(user=UserResponse.model_validate(user), token=_token_for(user)),
    )


@router.post("/login", response_model=ApiResponse[AuthData])
async def login(user_data: UserLogin, db: Session = Depends(get_db)):
    user = _authenticate(db, user_data.email, user_data.password)
    return ApiResponse(
        message="Login successful",
        data=AuthData(user=UserResponse.model_validate(user), token=_token_for(user)),
    )


@router.post("/token", response_model=dict)
async def login_for_access_token(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db)
):
    """OAuth2 compatible token endpoint for Swagger UI"""
    user = _authenticate(db, form_data.username, form_data.password)
    return {
        "access_token": _token_for(user),
        "token_type": "bearer"
    }


@router.get("/me", response_model=ApiResponse[UserData])
async def get_current_user_info(
    current_user: User = Depends(get_current_active_user)
):
    return ApiResponse(data=UserData(user=UserResponse.model_validate(current_user)))


@router.put("/profile", response_model=ApiResponse[UserData])
async def update_profile(
    updates: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    for field, value in updates.model_dump(exclude_unset=True).items():
        if value is not None:
            setattr(current_user, field, value)
    db.commit()
    db.refresh(current_user)
    return ApiResponse(message="Profile updated", data=UserData(user=UserResponse.model_validate(current_user)))


@router.post("/avatar", response_model=ApiResponse[AvatarData])
async def upload_avatar(
    avatar: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    if not avatar.filename:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No file uploaded")

    avatar_url = await save_user_avatar(avatar)
    previous = current_user.avatar
    current_user.avatar = avatar_url
    db.commit()
    db.refresh(current_user)

    if previous:
        delete_user_avatar(previous)
    logger.info("User %s uploaded a new avatar", current_user.id)

    return ApiResponse(
        message="Avatar uploaded",
        data=AvatarData(user=UserResponse.model_validate(current_user), avatar=avatar_url),
    )


# ─── Phone verification ───────────────────────────────────────────────────────

@router.post("/verify-phone", response_model=ApiResponse[UserData])
async def verify_phone(
    request: PhoneVerifyRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
):
    if current_user.is_verified:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Already verified")

    if not current_user.verification_code or not current_user.verification_code_expiry:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No verification code sent. Please request a new code."
        )

    if datetime.utcnow() > current_user.verification_code_expiry:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Code expired. Please request a new code."
        )

    if current_user.verification_code != request.verification_code:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid code")

    current_user.is_verified = True
    current_user.verification_code = None
    current_user.verification_code_expiry = None
    db.commit()
    db.refresh(current_user)

    return ApiResponse(message="Phone verified", data=UserData(user=UserResponse.model_validate(current_user)))


@router.post("/resend-verification", response_model=ApiResponse[dict])
async def resend_verification(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_active_user),
    notifier: NotificationDispatcher = Depends(get_notifier),
):
    if current_user.is_verified:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Already verified")

    # Previous code was issued at expiry - TTL
    if current_user.verification_code_expiry:
        issued_at = current_user.verification_code_expiry - timedelta(minutes=CODE_TTL_MINUTES)
        elapsed = (datetime.utcnow() - issued_at).total_seconds()
        if elapsed < RESEND_COOLDOWN_SECONDS:
            remaining = RESEND_COOLDOWN_SECONDS - int(elapsed)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=f"Please wait {remaining} seconds before requesting another code"
            )

    code = generate_verification_code()
    current_user.verification_code = code
    current_user.verification_code_expiry = datetime.utcnow() + timedelta(minutes=CODE_TTL_MINUTES)
    db.commit()

    notifier.send_sms(current_user.phone_number, f"Your PropertyVerify code is: {code}")

    return ApiResponse(message="Code resent", data={"expires_in": CODE_TTL_MINUTES})
