from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_db
from conduit.dependencies import get_current_username
from conduit.exceptions import AuthenticationError
from conduit.schemas import LoginRequest, NewUserRequest, UpdateUserRequest
from conduit.services import user_service

router = APIRouter(prefix="/api", tags=["users"])


@router.post("/users", status_code=201)
async def register(payload: NewUserRequest, db: AsyncSession = Depends(get_db)):
    user = await user_service.create_user(db, payload.user)
    return {"user": user_service.user_to_dict(user)}


@router.post("/users/login")
async def login(payload: LoginRequest, db: AsyncSession = Depends(get_db)):
    user = await user_service.authenticate(db, payload.user.email, payload.user.password)
    if user is None:
        raise AuthenticationError("email or password is invalid")
    return {"user": user_service.user_to_dict(user)}


@router.get("/user")
async def current_user(
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.get_user_by_username(db, username)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": user_service.user_to_dict(user)}


@router.put("/user")
async def update_user(
    payload: UpdateUserRequest,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    user = await user_service.update_user(db, username, payload.user)
    if user is None:
        raise HTTPException(status_code=404, detail="User not found")
    return {"user": user_service.user_to_dict(user)}
