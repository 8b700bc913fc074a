import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.orm import Session

from nashra.api.deps import get_db
from nashra.core.security import create_access_token, verify_password
from nashra.models import User
from nashra.schemas.response import LoginRequest, TokenResponse
from nashra.utils.timeutils import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/api/auth", response_model=TokenResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    """Exchange email and password for an access token."""
    user = db.scalar(select(User).where(User.email == payload.email.lower()))
    if not user or not user.password_hash or not user.is_active:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    user.last_login_at = utcnow()
    db.commit()

    token = create_access_token({
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "tier": user.subscription_tier,
    })
    return TokenResponse(access_token=token)
