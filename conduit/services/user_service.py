"""
User service: registration, login and account updates.

Username and email uniqueness is checked up front for a readable error
and enforced again by the unique constraints; an ``IntegrityError`` raised
by a concurrent registration is reported the same way.
"""
import logging

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.cache import cache
from conduit.exceptions import ValidationError
from conduit.models import User
from conduit.schemas import UserCreate, UserUpdate
from conduit.security import create_token, hash_password, verify_password

logger = logging.getLogger(__name__)

TAKEN = ["has already been taken"]


def user_to_dict(user: User) -> dict:
    """Serialise the authenticated user, including a fresh token."""
    return {
        "email": user.email,
        "token": create_token(user.username),
        "username": user.username,
        "bio": user.bio,
        "image": user.image,
    }


async def get_user_by_username(db: AsyncSession, username: str) -> User | None:
    result = await db.execute(select(User).where(User.username == username))
    return result.scalar_one_or_none()


async def find_user_id_by_username(db: AsyncSession, username: str) -> int | None:
    result = await db.execute(select(User.id).where(User.username == username))
    return result.scalar_one_or_none()


async def _check_available(
    db: AsyncSession, username: str | None, email: str | None, exclude_id: int | None = None
) -> None:
    clauses = []
    if username:
        clauses.append(User.username == username)
    if email:
        clauses.append(User.email == email)
    if not clauses:
        return

    q = select(User.username, User.email).where(or_(*clauses))
    if exclude_id is not None:
        q = q.where(User.id != exclude_id)
    errors: dict[str, list[str]] = {}
    for taken_username, taken_email in (await db.execute(q)).all():
        if username and taken_username == username:
            errors["username"] = TAKEN
        if email and taken_email == email:
            errors["email"] = TAKEN
    if errors:
        raise ValidationError(errors)


async def _flush_unique(db: AsyncSession) -> None:
    try:
        await db.flush()
    except IntegrityError as exc:
        logger.info("User uniqueness violated at flush: %s", exc.orig)
        field = "email" if "email" in str(exc.orig) else "username"
        raise ValidationError({field: TAKEN}) from exc


async def create_user(db: AsyncSession, data: UserCreate, demo: bool = False) -> User:
    """Register a new user.  Synthetic seed accounts pass ``demo=True``."""
    username = (data.username or "").strip()
    email = (data.email or "").strip()
    blank = [
        field
        for field, value in (("username", username), ("email", email), ("password", data.password))
        if not value
    ]
    if blank:
        raise ValidationError.blank(*blank)

    await _check_available(db, username, email)

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(data.password),
        demo=demo,
    )
    db.add(user)
    await _flush_unique(db)
    logger.info("Registered user %r (demo=%s)", username, demo)
    return user


async def authenticate(db: AsyncSession, email: str | None, password: str | None) -> User | None:
    """Return the user matching *email* and *password*, or None."""
    if not email or not password:
        raise ValidationError.blank(*[f for f, v in (("email", email), ("password", password)) if not v])

    result = await db.execute(select(User).where(User.email == email.strip()))
    user = result.scalar_one_or_none()
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


async def update_user(db: AsyncSession, username: str, data: UserUpdate) -> User | None:
    """
    Apply the fields explicitly present in *data* to the user *username*.

    Returns None when the user does not exist.
    """
    user = await get_user_by_username(db, username)
    if user is None:
        return None

    update_data = data.model_dump(exclude_unset=True)
    for field in ("username", "email"):
        if update_data.get(field) is not None:
            update_data[field] = update_data[field].strip()
    for field in ("username", "email", "password"):
        if field in update_data and not update_data[field]:
            raise ValidationError.blank(field)

    await _check_available(db, update_data.get("username"), update_data.get("email"), exclude_id=user.id)

    renamed = update_data.get("username", user.username) != user.username
    password = update_data.pop("password", None)
    if password:
        user.password_hash = hash_password(password)
    for field, value in update_data.items():
        setattr(user, field, value)

    await _flush_unique(db)
    await db.refresh(user)

    # Per-author tag lists are cached under the author's username.
    if renamed:
        await cache.invalidate_tags()
        logger.info("User %r renamed to %r", username, user.username)
    return user
