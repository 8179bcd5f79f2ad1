# app/routers/auth_routes.py

import logging

from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import or_
from sqlmodel import Session, select

from app.db import get_session
from app.models import User
from app.schemas import Token, UserCreate, UserPublic
from app.auth import verify_password, token_for_user, hash_password, user_to_dict
from app.core import now_local

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
)


@router.post("/register", status_code=201, response_model=UserPublic)
def register(
    user: UserCreate,
    session: Session = Depends(get_session),
):
    # 1) Check if email or phone already exists
    clauses = [User.email == user.email]
    if user.phone:
        clauses.append(User.phone == user.phone)
    existing = session.exec(select(User).where(or_(*clauses))).first()
    if existing is not None:
        raise HTTPException(status_code=409, detail="Email or phone already registered")

    # 2) Create customer account
    db_user = User(
        email=user.email,
        phone=user.phone,
        name=user.name,
        password_hash=hash_password(user.password),
        role="CUSTOMER",
    )

    session.add(db_user)
    session.commit()
    session.refresh(db_user)  # fills db_user.id

    logger.info("Registered user %s", db_user.id)
    return user_to_dict(db_user)


@router.post("/login", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(get_session),
):
    # username may be an email or a phone number
    login_id = form_data.username
    password = form_data.password

    user = session.exec(
        select(User).where(or_(User.email == login_id, User.phone == login_id))
    ).first()

    if user is None or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not user.is_active:
        raise HTTPException(status_code=401, detail="Account is deactivated")

    user.last_login_at = now_local()
    session.add(user)
    session.commit()

    token = token_for_user(user)
    return {"access_token": token, "token_type": "bearer"}
