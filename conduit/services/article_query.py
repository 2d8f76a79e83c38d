"""
Filter and pagination helpers for article listings.

``build_article_filters`` turns the optional ``author`` / ``tag`` /
``favorited`` query keys into a list of SQLAlchemy predicates that the
caller ANDs together.  A missing key adds no constraint.
"""
from collections.abc import Mapping

from sqlalchemy import and_, or_, select, true

from conduit.config import settings
from conduit.models import Article, Tag, User, follows


def _followed_by(username: str):
    """Articles whose author is followed by *username*."""
    followed_ids = (
        select(follows.c.followed_id)
        .join(User, User.id == follows.c.follower_id)
        .where(User.username == username)
    )
    return Article.author_id.in_(followed_ids)


def build_article_filters(query: Mapping, feed_username: str | None = None) -> list:
    """
    Return the conjunctive predicate list for an article query.

    The author group is ``OR(feed scoping) AND author == query["author"]``;
    with neither part present it collapses to an always-true clause.
    """
    viewer_scope = [_followed_by(feed_username)] if feed_username else []
    author_scope = []
    if query.get("author"):
        author_scope.append(Article.author.has(User.username == query["author"]))

    author_group = and_(
        or_(*viewer_scope) if viewer_scope else true(),
        *author_scope,
    )
    filters = [author_group]

    if query.get("tag"):
        filters.append(Article.tags.any(Tag.name == query["tag"]))

    if query.get("favorited"):
        filters.append(Article.favorited_by.any(User.username == query["favorited"]))

    return filters


def _to_int(value, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def parse_pagination(query: Mapping) -> tuple[int, int]:
    """
    Return ``(offset, limit)`` from *query*.

    Non-numeric values fall back to the defaults (0 and
    ``settings.DEFAULT_PAGE_SIZE``) instead of raising.
    """
    offset = max(_to_int(query.get("offset"), 0), 0)
    limit = _to_int(query.get("limit"), settings.DEFAULT_PAGE_SIZE)
    if limit <= 0:
        limit = settings.DEFAULT_PAGE_SIZE
    return offset, min(limit, settings.MAX_PAGE_SIZE)
