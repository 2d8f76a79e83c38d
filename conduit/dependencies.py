from fastapi import Depends, Header, Query

from conduit.exceptions import AuthenticationError
from conduit.security import decode_token
from conduit.services.article_query import parse_pagination

TOKEN_SCHEMES = ("token", "bearer")


class PaginationParams:
    """
    Reusable FastAPI dependency that parses ``offset`` / ``limit``.

    Both are accepted as raw strings: a non-numeric value falls back to its
    default instead of failing the request.

    Attributes
    ----------
    offset:
        Number of rows to skip (default 0, never negative).
    limit:
        Page size (default ``settings.DEFAULT_PAGE_SIZE``), clamped to
        ``settings.MAX_PAGE_SIZE``.
    """

    def __init__(
        self,
        offset: str | None = Query(None, description="Number of articles to skip."),
        limit: str | None = Query(None, description="Number of articles to return."),
    ) -> None:
        self.offset, self.limit = parse_pagination({"offset": offset, "limit": limit})


def _extract_token(authorization: str | None) -> str | None:
    raw = (authorization or "").strip()
    if not raw:
        return None

    parts = raw.split(" ", 1)
    if len(parts) != 2 or parts[0].lower() not in TOKEN_SCHEMES or not parts[1].strip():
        raise AuthenticationError("authorization must be: Token <jwt>")
    return parts[1].strip()


async def get_optional_username(authorization: str | None = Header(default=None)) -> str | None:
    """Username of the caller, or None for anonymous requests."""
    token = _extract_token(authorization)
    if token is None:
        return None
    return decode_token(token)


async def get_current_username(username: str | None = Depends(get_optional_username)) -> str:
    if username is None:
        raise AuthenticationError()
    return username
