"""
Tag service: most used tag names.

A tag's weight is the number of in-scope articles it is attached to: all
articles, or only those written by one author.  Tags without any in-scope
article are left out.  Results are cached per scope and dropped by any
article write (see ``cache.invalidate_tags``).
"""
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.cache import TAGS_KEY_PREFIX, cache
from conduit.config import settings
from conduit.models import Article, Tag, User, article_tags

TOP_TAGS_LIMIT = 10


async def get_tags(db: AsyncSession, username: str | None = None) -> list[str]:
    """Return up to ten tag names, most used first, ties broken by name."""
    cache_key = f"{TAGS_KEY_PREFIX}{username or '*'}"
    cached = await cache.get(cache_key)
    if cached is not None:
        return cached

    uses = func.count(article_tags.c.article_id)
    q = (
        select(Tag.name)
        .join(article_tags, article_tags.c.tag_id == Tag.id)
        .group_by(Tag.id, Tag.name)
        .order_by(uses.desc(), Tag.name.asc())
        .limit(TOP_TAGS_LIMIT)
    )
    if username:
        q = (
            q.join(Article, Article.id == article_tags.c.article_id)
            .join(User, User.id == Article.author_id)
            .where(User.username == username)
        )

    tags = list((await db.execute(q)).scalars().all())
    await cache.set(cache_key, tags, ttl=settings.CACHE_TTL_TAGS)
    return tags
