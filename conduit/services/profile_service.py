"""
Profile service: public projection of a User and follow relationships.

``following`` is never stored: it is derived per request from the author's
``followers`` collection, which callers must eager-load (the relationship
is ``noload`` by default).
"""
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from conduit.models import User


def profile_to_dict(user: User, viewer: str | None = None) -> dict:
    """Project *user* into ``{username, bio, image, following}`` for *viewer*."""
    return {
        "username": user.username,
        "bio": user.bio,
        "image": user.image,
        "following": viewer is not None and any(f.username == viewer for f in user.followers),
    }


async def _load_profile_user(db: AsyncSession, username: str) -> User | None:
    q = (
        select(User)
        .where(User.username == username)
        .options(selectinload(User.followers))
        .execution_options(populate_existing=True)
    )
    return (await db.execute(q)).scalar_one_or_none()


async def get_profile(db: AsyncSession, username: str, viewer: str | None = None) -> dict | None:
    user = await _load_profile_user(db, username)
    if user is None:
        return None
    return profile_to_dict(user, viewer)


async def follow_user(db: AsyncSession, username: str, viewer: str) -> dict | None:
    """
    Make *viewer* follow *username*.  Following twice is a no-op.

    Returns None when either user does not exist.
    """
    user = await _load_profile_user(db, username)
    follower = (await db.execute(select(User).where(User.username == viewer))).scalar_one_or_none()
    if user is None or follower is None:
        return None

    if all(f.id != follower.id for f in user.followers):
        user.followers.append(follower)
        await db.flush()
    return profile_to_dict(user, viewer)


async def unfollow_user(db: AsyncSession, username: str, viewer: str) -> dict | None:
    user = await _load_profile_user(db, username)
    if user is None:
        return None

    remaining = [f for f in user.followers if f.username != viewer]
    if len(remaining) != len(user.followers):
        user.followers = remaining
        await db.flush()
    return profile_to_dict(user, viewer)
