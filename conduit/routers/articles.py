from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from conduit.database import get_db
from conduit.dependencies import PaginationParams, get_current_username, get_optional_username
from conduit.schemas import NewArticleRequest, NewCommentRequest, UpdateArticleRequest
from conduit.services import article_service, comment_service

router = APIRouter(prefix="/api/articles", tags=["articles"])


def _found(article: dict | None) -> dict:
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return {"article": article}


@router.get("")
async def list_articles(
    request: Request,
    username: str | None = Depends(get_optional_username),
    db: AsyncSession = Depends(get_db),
):
    # author / tag / favorited / offset / limit are read from the raw query
    # string so that malformed pagination values fall back to defaults.
    return await article_service.get_articles(db, request.query_params, username)


@router.get("/feed")
async def feed(
    pagination: PaginationParams = Depends(),
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return await article_service.get_feed(db, username, pagination.offset, pagination.limit)


@router.post("", status_code=201)
async def create_article(
    payload: NewArticleRequest,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return {"article": await article_service.create_article(db, payload.article, username)}


@router.get("/{slug}")
async def get_article(
    slug: str,
    username: str | None = Depends(get_optional_username),
    db: AsyncSession = Depends(get_db),
):
    return _found(await article_service.get_article(db, slug, username))


@router.put("/{slug}")
async def update_article(
    slug: str,
    payload: UpdateArticleRequest,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return _found(await article_service.update_article(db, slug, payload.article, username))


@router.delete("/{slug}", status_code=204)
async def delete_article(
    slug: str,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    if not await article_service.delete_article(db, slug):
        raise HTTPException(status_code=404, detail="Article not found")


@router.post("/{slug}/favorite")
async def favorite_article(
    slug: str,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return _found(await article_service.favorite_article(db, slug, username))


@router.delete("/{slug}/favorite")
async def unfavorite_article(
    slug: str,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    return _found(await article_service.unfavorite_article(db, slug, username))


# ---------------------------------------------------------------------------
# Comments
# ---------------------------------------------------------------------------

@router.get("/{slug}/comments")
async def list_comments(
    slug: str,
    author: str | None = None,
    username: str | None = Depends(get_optional_username),
    db: AsyncSession = Depends(get_db),
):
    comments = await comment_service.get_comments(db, slug, username, author=author)
    if comments is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return {"comments": comments}


@router.post("/{slug}/comments", status_code=201)
async def add_comment(
    slug: str,
    payload: NewCommentRequest,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    comment = await comment_service.add_comment(db, slug, payload.comment.body, username)
    if comment is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return {"comment": comment}


@router.delete("/{slug}/comments/{comment_id}", status_code=204)
async def delete_comment(
    slug: str,
    comment_id: int,
    username: str = Depends(get_current_username),
    db: AsyncSession = Depends(get_db),
):
    await comment_service.delete_comment(db, comment_id, username, slug=slug)
