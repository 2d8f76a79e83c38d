"""
Weekly cleanup of user-generated content.

Everything written by non-demo users (their comments anywhere, their
articles with the articles' comments, tag links and favorites) is deleted,
then tags no longer attached to any article are dropped.  Demo accounts and
their content survive, so the seeded welcome article stays online.

The scheduler runs ``run_once`` at a fixed weekly slot.  A run that is still
in progress when the next one is due is never overlapped: the in-process
lock and the Redis lock both cause the newcomer to be skipped.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.cache import cache
from conduit.config import settings
from conduit.database import database
from conduit.models import Article, Comment, Tag, User, article_tags, favorites

logger = logging.getLogger(__name__)

LOCK_NAME = "cleanup"


async def purge_user_content(db: AsyncSession) -> dict[str, int]:
    """Delete non-demo content and return per-table deletion counts."""
    non_demo_users = select(User.id).where(User.demo.is_(False))
    doomed_articles = select(Article.id).where(Article.author_id.in_(non_demo_users))

    comments = await db.execute(
        delete(Comment)
        .where(Comment.author_id.in_(non_demo_users) | Comment.article_id.in_(doomed_articles))
        .execution_options(synchronize_session=False)
    )
    links = await db.execute(delete(article_tags).where(article_tags.c.article_id.in_(doomed_articles)))
    favs = await db.execute(delete(favorites).where(favorites.c.article_id.in_(doomed_articles)))
    articles = await db.execute(
        delete(Article)
        .where(Article.author_id.in_(non_demo_users))
        .execution_options(synchronize_session=False)
    )
    tags = await db.execute(
        delete(Tag)
        .where(Tag.id.not_in(select(article_tags.c.tag_id)))
        .execution_options(synchronize_session=False)
    )

    counts = {
        "comments": comments.rowcount,
        "article_tags": links.rowcount,
        "favorites": favs.rowcount,
        "articles": articles.rowcount,
        "tags": tags.rowcount,
    }
    logger.info("Cleanup removed %s", counts)
    return counts


def next_run_after(now: datetime, weekday: int, hour: int) -> datetime:
    """
    Return the first ``weekday`` at ``hour``:00 strictly after *now*.

    ``weekday`` follows ``datetime.weekday()`` (Monday is 0, Sunday is 6).
    """
    candidate = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    candidate += timedelta(days=(weekday - now.weekday()) % 7)
    if candidate <= now:
        candidate += timedelta(days=7)
    return candidate


class CleanupScheduler:
    """Background task that calls ``run_once`` every week."""

    def __init__(self, weekday: int | None = None, hour: int | None = None) -> None:
        self.weekday = settings.CLEANUP_WEEKDAY if weekday is None else weekday
        self.hour = settings.CLEANUP_HOUR if hour is None else hour
        self._task: asyncio.Task | None = None
        self._running = asyncio.Lock()

    @property
    def started(self) -> bool:
        return self._task is not None and not self._task.done()

    async def run_once(self) -> dict[str, int] | None:
        """
        Purge once unless a run is already in progress here or elsewhere.

        Returns the deletion counts, or None when the run was skipped.
        """
        if self._running.locked():
            logger.warning("Cleanup already running in this process, skipping")
            return None

        async with self._running:
            async with cache.exclusive(LOCK_NAME, ttl=settings.CLEANUP_LOCK_TTL) as acquired:
                if not acquired:
                    logger.warning("Cleanup already running in another process, skipping")
                    return None

                async with database.session() as db:
                    try:
                        counts = await purge_user_content(db)
                        await db.commit()
                    except Exception:
                        await db.rollback()
                        raise

            await cache.invalidate_tags()
            return counts

    async def _loop(self) -> None:
        while True:
            now = datetime.now(timezone.utc)
            due = next_run_after(now, self.weekday, self.hour)
            logger.info("Next cleanup scheduled for %s", due.isoformat())
            await asyncio.sleep((due - now).total_seconds())
            try:
                await self.run_once()
            except Exception:
                logger.exception("Cleanup run failed")

    def start(self) -> asyncio.Task:
        if self.started:
            logger.warning("Cleanup scheduler already started")
            return self._task
        self._task = asyncio.create_task(self._loop())
        logger.info("Cleanup scheduler started (weekday=%d, hour=%d UTC)", self.weekday, self.hour)
        return self._task

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Cleanup scheduler stopped")


scheduler = CleanupScheduler()
