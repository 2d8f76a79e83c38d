from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_db
from conduit.dependencies import get_current_username, get_optional_username
from conduit.services import profile_service

router = APIRouter(prefix="/api/profiles", tags=["profiles"])


def _found(profile: dict | None) -> dict:
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return {"profile": profile}


@router.get("/{username}")
async def get_profile(
    username: str,
    viewer: str | None = Depends(get_optional_username),
    db: AsyncSession = Depends(get_db),
):
    return _found(await profile_service.get_profile(db, username, viewer))


@router.post("/{username}/follow")
async def follow(
    username: str,
    viewer: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return _found(await profile_service.follow_user(db, username, viewer))


@router.delete("/{username}/follow")
async def unfollow(
    username: str,
    viewer: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return _found(await profile_service.unfollow_user(db, username, viewer))
