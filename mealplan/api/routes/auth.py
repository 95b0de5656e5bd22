from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from mealplan.config import settings
from mealplan.core.security import ROLE_ADMIN, create_access_token, get_current_admin, verify_password
from mealplan.schemas.auth import LoginRequest, LoginResponse, UserOut

router = APIRouter()


@router.post("/login", response_model=LoginResponse)
async def login(payload: LoginRequest) -> LoginResponse:
    email = payload.email.strip().lower()
    if email != settings.admin_email.lower():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    if not verify_password(
        payload.password, settings.admin_password_hash.get_secret_value()
    ):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
        )

    user = UserOut(id="admin", email=settings.admin_email, name=settings.admin_name, role=ROLE_ADMIN)
    token = create_access_token(user.email, ROLE_ADMIN, {"name": user.name})
    return LoginResponse(access_token=token, user=user)


@router.get("/me", response_model=UserOut)
async def me(user: dict = Depends(get_current_admin)) -> UserOut:
    return UserOut(**user)
