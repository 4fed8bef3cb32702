"""Signup and login."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from restaurant_booking.core.exceptions import AuthenticationError, ConflictError
from restaurant_booking.core.security import (
    create_access_token,
    hash_password,
    normalize_phone,
    verify_password,
)
from restaurant_booking.database import get_db
from restaurant_booking.models import User, UserRole
from restaurant_booking.schemas import (
    AuthResponse,
    LoginRequest,
    SignupRequest,
    UserResponse,
    envelope,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post("/signup", summary="Register a customer account")
async def signup(data: SignupRequest, db: AsyncSession = Depends(get_db)) -> dict:
    phone = normalize_phone(data.phone)

    existing = await db.execute(select(User.id).where(User.phone == phone))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("User with this phone number already exists")

    user = User(
        phone=phone,
        name=data.name,
        last_name=data.last_name,
        password_hash=hash_password(data.password),
        role=UserRole.CUSTOMER,
    )
    db.add(user)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("User with this phone number already exists")

    logger.info(f"User #{user.id} registered")
    token = create_access_token(user.id, user.phone, user.role)
    return envelope(
        AuthResponse(user=UserResponse.model_validate(user), token=token),
        "User registered successfully",
    )


@router.post("/login", summary="Exchange phone and password for a token")
async def login(data: LoginRequest, db: AsyncSession = Depends(get_db)) -> dict:
    result = await db.execute(select(User).where(User.phone == normalize_phone(data.phone)))
    user = result.scalar_one_or_none()

    if user is None or not verify_password(data.password, user.password_hash):
        raise AuthenticationError("Invalid phone number or password")

    token = create_access_token(user.id, user.phone, user.role)
    return envelope(
        AuthResponse(user=UserResponse.model_validate(user), token=token),
        "Login successful",
    )
