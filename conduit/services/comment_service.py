"""
Comment service: comments scoped to an article.

Comments are created by an authenticated user and can only be deleted by
their author.  A delete by anyone else looks exactly like a delete of a
missing comment: ``NotFoundError``.
"""
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload, selectinload

from conduit.exceptions import NotFoundError, ValidationError
from conduit.models import Article, Comment, User
from conduit.services.profile_service import profile_to_dict
from conduit.services.user_service import find_user_id_by_username

logger = logging.getLogger(__name__)


def comment_to_dict(comment: Comment, viewer: str | None = None) -> dict:
    return {
        "id": comment.id,
        "createdAt": comment.created_at.isoformat() if comment.created_at else None,
        "updatedAt": comment.updated_at.isoformat() if comment.updated_at else None,
        "body": comment.body,
        "author": profile_to_dict(comment.author, viewer),
    }


def _comment_options():
    return (joinedload(Comment.author).selectinload(User.followers),)


async def _article_id(db: AsyncSession, slug: str) -> int | None:
    result = await db.execute(select(Article.id).where(Article.slug == slug))
    return result.scalar_one_or_none()


async def get_comments(
    db: AsyncSession,
    slug: str,
    username: str | None = None,
    author: str | None = None,
) -> list[dict] | None:
    """
    Return the comments on *slug*, newest first, optionally only those
    written by *author*.  ``following`` is computed for *username*.

    Returns None when the article does not exist.
    """
    article_id = await _article_id(db, slug)
    if article_id is None:
        return None

    q = (
        select(Comment)
        .where(Comment.article_id == article_id)
        .options(*_comment_options())
        .order_by(Comment.created_at.desc(), Comment.id.desc())
        .execution_options(populate_existing=True)
    )
    if author:
        q = q.where(Comment.author.has(User.username == author))

    result = await db.execute(q)
    return [comment_to_dict(c, username) for c in result.unique().scalars().all()]


async def add_comment(db: AsyncSession, slug: str, body: str | None, username: str) -> dict | None:
    """
    Add a comment by *username* to the article *slug*.

    Raises ``ValidationError`` for a blank body; returns None when the
    article does not exist.
    """
    if not (body or "").strip():
        raise ValidationError.blank("body")

    article_id = await _article_id(db, slug)
    if article_id is None:
        return None

    author_id = await find_user_id_by_username(db, username)
    if author_id is None:
        raise NotFoundError("user")

    comment = Comment(body=body, article_id=article_id, author_id=author_id)
    db.add(comment)
    await db.flush()

    q = select(Comment).where(Comment.id == comment.id).options(*_comment_options())
    comment = (await db.execute(q.execution_options(populate_existing=True))).unique().scalar_one()
    return comment_to_dict(comment, username)


async def delete_comment(
    db: AsyncSession, comment_id: int, username: str, slug: str | None = None
) -> None:
    """
    Delete comment *comment_id* if *username* wrote it (and, when *slug*
    is given, it belongs to that article).

    Raises ``NotFoundError`` otherwise.
    """
    q = select(Comment).where(
        Comment.id == comment_id,
        Comment.author.has(User.username == username),
    )
    if slug is not None:
        q = q.where(Comment.article.has(Article.slug == slug))

    comment = (await db.execute(q)).scalar_one_or_none()
    if comment is None:
        raise NotFoundError("comment")

    await db.delete(comment)
    await db.flush()
    logger.info("Comment %d deleted by %r", comment_id, username)
