"""
Regression tests for issues found during code review.

1. A title that collides with another article's slug on update returns 422 (not 500)
2. Storage-level unique violations map to the same validation errors as the pre-checks
3. Long titles produce slugs that fit the slug column
4. Renaming a user drops the cached per-author tag lists
5. Malformed pagination never fails a request
6. CORS must not set allow_credentials=true with allow_origins=*
"""
import pytest
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from conftest import post_article, register
from conduit.cache import cache
from conduit.exceptions import ValidationError
from conduit.models import Tag
from conduit.schemas import ArticleCreate, UserCreate, UserUpdate
from conduit.services import article_service, user_service


# ---------------------------------------------------------------------------
# 1. Slug collisions -> 422
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_article_slug_collision_handled(async_client: AsyncClient):
    """Renaming an article to a title the author already used is a validation error."""
    headers = await register(async_client, "slug_col")
    await post_article(async_client, headers, "First Article")
    second = await post_article(async_client, headers, "Second Article")

    resp = await async_client.put(
        f"/api/articles/{second['slug']}",
        headers=headers,
        json={"article": {"title": "First Article"}},
    )
    assert resp.status_code == 422
    assert resp.json() == {"errors": {"title": ["must be unique"]}}

    # The failed update left the article untouched.
    resp = await async_client.get(f"/api/articles/{second['slug']}")
    assert resp.json()["article"]["title"] == "Second Article"


@pytest.mark.asyncio
async def test_update_article_keeping_title_is_not_a_collision(async_client: AsyncClient):
    headers = await register(async_client, "same_title")
    article = await post_article(async_client, headers, "Unchanged")
    resp = await async_client.put(
        f"/api/articles/{article['slug']}",
        headers=headers,
        json={"article": {"title": "Unchanged", "body": "edited"}},
    )
    assert resp.status_code == 200
    assert resp.json()["article"]["slug"] == article["slug"]


# ---------------------------------------------------------------------------
# 2. Unique constraints are authoritative
# ---------------------------------------------------------------------------

async def _create_user(db: AsyncSession, username: str, email: str | None = None):
    return await user_service.create_user(db, UserCreate(
        username=username, email=email or f"{username}@example.com", password="pw",
    ))


def _article(title: str, tags: list[str] | None = None) -> ArticleCreate:
    return ArticleCreate(title=title, description="d", body="b", tagList=tags or [])


@pytest.mark.asyncio
async def test_slug_unique_violation_is_validation_error(db_session: AsyncSession, monkeypatch):
    """A duplicate slug that slips past the pre-check is still a 'must be unique' error."""
    await _create_user(db_session, "racer")
    await article_service.create_article(db_session, _article("Raced"), "racer")

    async def never_taken(db, slug, exclude_id=None):
        return False

    monkeypatch.setattr(article_service, "_slug_taken", never_taken)
    with pytest.raises(ValidationError) as exc_info:
        await article_service.create_article(db_session, _article("Raced"), "racer")
    assert exc_info.value.errors == {"title": ["must be unique"]}


@pytest.mark.asyncio
async def test_slug_unique_violation_over_http(async_client: AsyncClient, monkeypatch):
    """The request session is rolled back by get_db and the client sees a 422."""
    headers = await register(async_client, "racer")
    await post_article(async_client, headers, "Raced", ["kept"])

    async def never_taken(db, slug, exclude_id=None):
        return False

    monkeypatch.setattr(article_service, "_slug_taken", never_taken)
    resp = await async_client.post("/api/articles", headers=headers, json={"article": {
        "title": "Raced", "description": "again", "body": "again", "tagList": ["dropped"],
    }})
    assert resp.status_code == 422
    assert resp.json() == {"errors": {"title": ["must be unique"]}}

    assert (await async_client.get("/api/articles")).json()["articlesCount"] == 1
    assert (await async_client.get("/api/tags")).json() == {"tags": ["kept"]}


@pytest.mark.asyncio
async def test_tag_created_concurrently_is_reused(db_session: AsyncSession, monkeypatch):
    """When another transaction inserts the tag first, its row is reused."""
    db_session.add(Tag(name="race"))
    await db_session.flush()

    real_find = article_service._find_tag
    lookups: list[str] = []

    async def miss_first_lookup(db, name):
        lookups.append(name)
        if len(lookups) == 1:
            return None
        return await real_find(db, name)

    monkeypatch.setattr(article_service, "_find_tag", miss_first_lookup)
    tags = await article_service._resolve_tags(db_session, ["race"])

    assert [t.name for t in tags] == ["race"]
    assert len(lookups) == 2
    count = (await db_session.execute(
        select(func.count()).select_from(Tag).where(Tag.name == "race")
    )).scalar_one()
    assert count == 1


@pytest.mark.asyncio
async def test_email_unique_violation_reports_email(db_session: AsyncSession, monkeypatch):
    await _create_user(db_session, "first", "shared@example.com")

    async def nothing_taken(*args, **kwargs):
        return None

    monkeypatch.setattr(user_service, "_check_available", nothing_taken)
    with pytest.raises(ValidationError) as exc_info:
        await _create_user(db_session, "second", "shared@example.com")
    assert exc_info.value.errors == {"email": ["has already been taken"]}


@pytest.mark.asyncio
async def test_update_user_strips_username_and_email(db_session: AsyncSession):
    await _create_user(db_session, "padded")
    user = await user_service.update_user(
        db_session, "padded", UserUpdate(username="  trimmed  ", email=" trimmed@example.com ")
    )
    assert user.username == "trimmed"
    assert user.email == "trimmed@example.com"


# ---------------------------------------------------------------------------
# 3. Slug length
# ---------------------------------------------------------------------------

def test_transliterated_slug_fits_column():
    title = "щ" * 300
    assert ArticleCreate(title=title).title == title

    slug = article_service.make_slug(title, 12345)
    assert len(slug) <= article_service.SLUG_MAX_LENGTH
    assert slug.endswith("-12345")


def test_long_slug_is_cut_on_a_word_boundary():
    title = "Щука щука " * 30
    slug = article_service.make_slug(title, 7)
    assert len(slug) <= article_service.SLUG_MAX_LENGTH
    assert slug.endswith("-7")
    words = slug[: -len("-7")].split("-")
    assert len(words) < 60
    assert set(words) == {"shchuka"}


@pytest.mark.asyncio
async def test_create_article_with_long_cyrillic_title(async_client: AsyncClient):
    headers = await register(async_client, "longtitle")
    article = await post_article(async_client, headers, "ж" * 300)
    assert len(article["slug"]) <= article_service.SLUG_MAX_LENGTH

    resp = await async_client.get(f"/api/articles/{article['slug']}")
    assert resp.status_code == 200


# ---------------------------------------------------------------------------
# 4. Tag cache follows renames
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_rename_invalidates_cached_tags(db_session: AsyncSession, monkeypatch):
    invalidations: list[bool] = []

    async def record():
        invalidations.append(True)

    monkeypatch.setattr(cache, "invalidate_tags", record)
    await _create_user(db_session, "oldname")

    await user_service.update_user(db_session, "oldname", UserUpdate(bio="no rename"))
    assert invalidations == []

    await user_service.update_user(db_session, "oldname", UserUpdate(username="newname"))
    assert invalidations == [True]


# ---------------------------------------------------------------------------
# 5. Pagination fallbacks
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_feed_non_numeric_pagination(async_client: AsyncClient):
    headers = await register(async_client, "feeder")
    resp = await async_client.get("/api/articles/feed?offset=one&limit=-5", headers=headers)
    assert resp.status_code == 200
    assert resp.json() == {"articles": [], "articlesCount": 0}


@pytest.mark.asyncio
async def test_limit_is_capped(async_client: AsyncClient):
    headers = await register(async_client, "capped")
    await post_article(async_client, headers, "Capped")
    resp = await async_client.get("/api/articles", params={"limit": 100000})
    assert resp.status_code == 200
    assert len(resp.json()["articles"]) == 1


# ---------------------------------------------------------------------------
# 6. CORS headers
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_cors_no_credentials_with_wildcard_origin(async_client: AsyncClient):
    """
    When allow_origins=["*"], the response must NOT include
    Access-Control-Allow-Credentials: true.
    """
    resp = await async_client.options(
        "/api/articles",
        headers={
            "Origin": "https://example.com",
            "Access-Control-Request-Method": "GET",
        },
    )
    cred_header = resp.headers.get("access-control-allow-credentials", "").lower()
    assert cred_header != "true", (
        "CORS must not combine allow_origins=* with allow_credentials=true"
    )


@pytest.mark.asyncio
async def test_health(async_client: AsyncClient):
    resp = await async_client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "healthy"
    assert data["cache"] is False
