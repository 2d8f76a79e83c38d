"""
Article service: business logic for the Article aggregate.

Design notes
------------
- Every read goes through ``_article_options``: ``joinedload`` for the
  author (many-to-one) plus ``selectinload`` for the author's followers,
  tags and favorites, so one listing costs a fixed number of statements.
  ``unique()`` is required after any query that uses ``joinedload``.
- ``favorited`` and ``author.following`` are computed for the viewer
  passed in by the router; nothing viewer-specific is stored.
- Slug uniqueness is pre-checked for a readable error, but the unique
  constraint on ``articles.slug`` is authoritative: an ``IntegrityError``
  on flush is reported as the same "must be unique" validation error.
- Service functions flush but do not commit; the transaction boundary is
  owned by the ``get_db`` dependency.
"""
import logging
from collections.abc import Mapping
from datetime import datetime, timezone

from slugify import slugify
from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from conduit.cache import cache
from conduit.exceptions import NotFoundError, ValidationError
from conduit.models import Article, Comment, Tag, User
from conduit.schemas import ArticleCreate, ArticleUpdate
from conduit.services.article_query import build_article_filters, parse_pagination
from conduit.services.profile_service import profile_to_dict
from conduit.services.user_service import find_user_id_by_username, get_user_by_username

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("title", "description", "body")
# Matches the articles.slug column length.
SLUG_MAX_LENGTH = 350
TITLE_NOT_UNIQUE = {"title": ["must be unique"]}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def make_slug(title: str, author_id: int) -> str:
    """
    Return the URL-safe slug for *title*, suffixed with the author id.

    Transliteration can make the slug longer than the title, so the title
    part is truncated (on a word boundary) to keep the whole slug within
    ``SLUG_MAX_LENGTH``.
    """
    suffix = f"-{author_id}"
    base = slugify(
        title, max_length=SLUG_MAX_LENGTH - len(suffix), word_boundary=True, save_order=True
    )
    return f"{base}{suffix}"


def _article_options():
    return (
        joinedload(Article.author).selectinload(User.followers),
        selectinload(Article.tags),
        selectinload(Article.favorited_by),
    )


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def article_to_dict(article: Article, viewer: str | None = None) -> dict:
    """Serialise an Article with its tags, favorites and author profile."""
    return {
        "slug": article.slug,
        "title": article.title,
        "description": article.description,
        "body": article.body,
        "tagList": [t.name for t in article.tags],
        "createdAt": _iso(article.created_at),
        "updatedAt": _iso(article.updated_at),
        "favorited": viewer is not None and any(u.username == viewer for u in article.favorited_by),
        "favoritesCount": len(article.favorited_by),
        "author": profile_to_dict(article.author, viewer),
    }


async def _load_article(db: AsyncSession, slug: str) -> Article | None:
    q = (
        select(Article)
        .where(Article.slug == slug)
        .options(*_article_options())
        .execution_options(populate_existing=True)
    )
    result = await db.execute(q)
    return result.unique().scalar_one_or_none()


async def _slug_taken(db: AsyncSession, slug: str, exclude_id: int | None = None) -> bool:
    q = select(Article.id).where(Article.slug == slug)
    if exclude_id is not None:
        q = q.where(Article.id != exclude_id)
    return (await db.execute(q)).first() is not None


async def _flush_article(db: AsyncSession) -> None:
    try:
        await db.flush()
    except IntegrityError as exc:
        if "slug" in str(exc.orig):
            raise ValidationError(TITLE_NOT_UNIQUE) from exc
        raise


async def _find_tag(db: AsyncSession, name: str) -> Tag | None:
    result = await db.execute(select(Tag).where(Tag.name == name))
    return result.scalar_one_or_none()


async def _get_or_create_tag(db: AsyncSession, name: str) -> Tag:
    """
    Return the tag called *name*, inserting it if needed.

    The insert runs in a savepoint: when a concurrent transaction created
    the same tag first, only the savepoint is rolled back and the winner's
    row is reused.
    """
    tag = await _find_tag(db, name)
    if tag is not None:
        return tag

    tag = Tag(name=name)
    try:
        async with db.begin_nested():
            db.add(tag)
            await db.flush()
    except IntegrityError:
        logger.info("Tag %r created concurrently, reusing it", name)
        tag = await _find_tag(db, name)
        if tag is None:
            raise
    return tag


async def _resolve_tags(db: AsyncSession, tag_names: list[str]) -> list[Tag]:
    """
    Return Tag rows for *tag_names*, creating the missing ones.

    Blank names are skipped and repeated names collapse to one tag.
    """
    tags: list[Tag] = []
    seen: set[str] = set()
    for raw in tag_names:
        name = raw.strip()
        if not name or name in seen:
            continue
        seen.add(name)
        tags.append(await _get_or_create_tag(db, name))
    return tags


async def _list_articles(
    db: AsyncSession, filters: list, offset: int, limit: int, viewer: str | None
) -> dict:
    count_q = select(func.count()).select_from(Article).where(*filters)
    total: int = (await db.execute(count_q)).scalar_one()

    articles_q = (
        select(Article)
        .where(*filters)
        .options(*_article_options())
        .order_by(Article.created_at.desc(), Article.id.desc())
        .offset(offset)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(articles_q)
    articles = result.unique().scalars().all()

    return {
        "articles": [article_to_dict(a, viewer) for a in articles],
        "articlesCount": total,
    }


# ---------------------------------------------------------------------------
# Public service functions
# ---------------------------------------------------------------------------

async def get_articles(db: AsyncSession, query: Mapping, username: str | None = None) -> dict:
    """
    Return ``{"articles": [...], "articlesCount": n}`` for the ``author``,
    ``tag`` and ``favorited`` filters and the ``offset`` / ``limit`` in
    *query*, newest first.  *username* is the viewer.
    """
    offset, limit = parse_pagination(query)
    return await _list_articles(db, build_article_filters(query), offset, limit, username)


async def get_feed(db: AsyncSession, username: str, offset: int = 0, limit: int = 10) -> dict:
    """Articles by the authors *username* follows, newest first."""
    if await find_user_id_by_username(db, username) is None:
        raise NotFoundError("user")
    filters = build_article_filters({}, feed_username=username)
    return await _list_articles(db, filters, offset, limit, username)


async def get_article(db: AsyncSession, slug: str, username: str | None = None) -> dict | None:
    """Return the article identified by *slug*, or None when it does not exist."""
    article = await _load_article(db, slug)
    if article is None:
        return None
    return article_to_dict(article, username)


async def create_article(db: AsyncSession, data: ArticleCreate, username: str) -> dict:
    """
    Create an article authored by *username* and return it.

    Blank ``title`` / ``description`` / ``body`` fields are all reported
    before anything is written.
    """
    blank = [field for field in REQUIRED_FIELDS if not (getattr(data, field) or "").strip()]
    if blank:
        raise ValidationError.blank(*blank)

    author_id = await find_user_id_by_username(db, username)
    if author_id is None:
        raise NotFoundError("user")

    slug = make_slug(data.title, author_id)
    if await _slug_taken(db, slug):
        raise ValidationError(TITLE_NOT_UNIQUE)

    tags = await _resolve_tags(db, data.tag_list)
    article = Article(
        slug=slug,
        title=data.title,
        description=data.description,
        body=data.body,
        author_id=author_id,
    )
    article.tags.extend(tags)
    db.add(article)
    await _flush_article(db)

    await cache.invalidate_tags()
    logger.info("Article %r created by %r", slug, username)
    return article_to_dict(await _load_article(db, slug), username)


async def update_article(
    db: AsyncSession, slug: str, data: ArticleUpdate, username: str | None = None
) -> dict | None:
    """
    Partially update the article identified by *slug*.

    Only non-blank fields present in the payload are applied.  A new title
    regenerates the slug (from the article's own author id) and re-checks
    its uniqueness against the other articles.  ``tagList``, when present,
    replaces the existing tags.  Returns None when the article does not exist.
    """
    article = await _load_article(db, slug)
    if article is None:
        return None

    update_data = data.model_dump(exclude_unset=True)
    tag_names: list[str] | None = update_data.pop("tag_list", None)
    changes = {
        field: value
        for field, value in update_data.items()
        if field in REQUIRED_FIELDS and value and value.strip()
    }

    new_slug = article.slug
    if "title" in changes:
        new_slug = make_slug(changes["title"], article.author_id)
        if new_slug != article.slug and await _slug_taken(db, new_slug, exclude_id=article.id):
            raise ValidationError(TITLE_NOT_UNIQUE)

    # Resolve tags before touching the article so autoflush cannot write a
    # half-applied update.
    tags = await _resolve_tags(db, tag_names) if tag_names is not None else None

    for field, value in changes.items():
        setattr(article, field, value)
    article.slug = new_slug
    if tags is not None:
        article.tags = tags
    article.updated_at = datetime.now(timezone.utc)

    await _flush_article(db)

    if tags is not None:
        await cache.invalidate_tags()
    return article_to_dict(await _load_article(db, new_slug), username)


async def delete_article(db: AsyncSession, slug: str) -> bool:
    """
    Delete the article identified by *slug* with its comments, tag links
    and favorites.

    Returns True on success, False when the article does not exist.
    """
    q = (
        select(Article)
        .where(Article.slug == slug)
        .options(selectinload(Article.tags), selectinload(Article.favorited_by))
    )
    article = (await db.execute(q)).scalar_one_or_none()
    if article is None:
        return False

    await db.execute(
        delete(Comment)
        .where(Comment.article_id == article.id)
        .execution_options(synchronize_session=False)
    )
    await db.delete(article)
    await db.flush()

    await cache.invalidate_tags()
    logger.info("Article %r deleted", slug)
    return True


async def favorite_article(db: AsyncSession, slug: str, username: str) -> dict | None:
    """Add *username* to the article's favorites (idempotent)."""
    article = await _load_article(db, slug)
    user = await get_user_by_username(db, username)
    if article is None or user is None:
        return None

    if all(u.id != user.id for u in article.favorited_by):
        article.favorited_by.append(user)
        await db.flush()
    return article_to_dict(article, username)


async def unfavorite_article(db: AsyncSession, slug: str, username: str) -> dict | None:
    """Remove *username* from the article's favorites (idempotent)."""
    article = await _load_article(db, slug)
    if article is None:
        return None

    remaining = [u for u in article.favorited_by if u.username != username]
    if len(remaining) != len(article.favorited_by):
        article.favorited_by = remaining
        await db.flush()
    return article_to_dict(article, username)
