"""
Endpoint tests for /api/articles/{slug}/comments.
"""
import pytest
from httpx import AsyncClient

from conftest import post_article, register


async def _comment(client: AsyncClient, headers: dict, slug: str, body: str) -> dict:
    resp = await client.post(
        f"/api/articles/{slug}/comments", headers=headers, json={"comment": {"body": body}}
    )
    assert resp.status_code == 201, resp.text
    return resp.json()["comment"]


@pytest.mark.asyncio
async def test_add_and_list_comments(async_client: AsyncClient):
    alice = await register(async_client, "alice")
    bob = await register(async_client, "bob")
    article = await post_article(async_client, alice, "Discussed")

    comment = await _comment(async_client, bob, article["slug"], "First!")
    assert comment["body"] == "First!"
    assert comment["author"]["username"] == "bob"
    assert isinstance(comment["id"], int)
    await _comment(async_client, alice, article["slug"], "Reply")

    resp = await async_client.get(f"/api/articles/{article['slug']}/comments")
    assert resp.status_code == 200
    assert [c["body"] for c in resp.json()["comments"]] == ["Reply", "First!"]


@pytest.mark.asyncio
async def test_list_comments_by_author(async_client: AsyncClient):
    alice = await register(async_client, "alice")
    bob = await register(async_client, "bob")
    article = await post_article(async_client, alice, "Filtered")
    await _comment(async_client, bob, article["slug"], "from bob")
    await _comment(async_client, alice, article["slug"], "from alice")

    resp = await async_client.get(
        f"/api/articles/{article['slug']}/comments", params={"author": "bob"}
    )
    assert [c["body"] for c in resp.json()["comments"]] == ["from bob"]


@pytest.mark.asyncio
async def test_comments_missing_article(async_client: AsyncClient):
    headers = await register(async_client, "lost")
    assert (await async_client.get("/api/articles/missing/comments")).status_code == 404
    resp = await async_client.post(
        "/api/articles/missing/comments", headers=headers, json={"comment": {"body": "hi"}}
    )
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_add_comment_blank_body(async_client: AsyncClient):
    headers = await register(async_client, "quiet")
    article = await post_article(async_client, headers, "Silent")
    resp = await async_client.post(
        f"/api/articles/{article['slug']}/comments", headers=headers, json={"comment": {"body": ""}}
    )
    assert resp.status_code == 422
    assert resp.json() == {"errors": {"body": ["can't be blank"]}}


@pytest.mark.asyncio
async def test_add_comment_requires_auth(async_client: AsyncClient):
    headers = await register(async_client, "owner")
    article = await post_article(async_client, headers, "Closed")
    resp = await async_client.post(
        f"/api/articles/{article['slug']}/comments", json={"comment": {"body": "anon"}}
    )
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_delete_comment(async_client: AsyncClient):
    alice = await register(async_client, "alice")
    bob = await register(async_client, "bob")
    article = await post_article(async_client, alice, "Moderated")
    comment = await _comment(async_client, bob, article["slug"], "mine")
    url = f"/api/articles/{article['slug']}/comments/{comment['id']}"

    # Only the comment's author may delete it; anyone else sees a 404.
    resp = await async_client.delete(url, headers=alice)
    assert resp.status_code == 404
    resp = await async_client.get(f"/api/articles/{article['slug']}/comments")
    assert len(resp.json()["comments"]) == 1

    resp = await async_client.delete(url, headers=bob)
    assert resp.status_code == 204
    resp = await async_client.get(f"/api/articles/{article['slug']}/comments")
    assert resp.json()["comments"] == []


@pytest.mark.asyncio
async def test_delete_comment_wrong_article(async_client: AsyncClient):
    headers = await register(async_client, "writer")
    first = await post_article(async_client, headers, "First")
    second = await post_article(async_client, headers, "Second")
    comment = await _comment(async_client, headers, first["slug"], "on first")

    resp = await async_client.delete(
        f"/api/articles/{second['slug']}/comments/{comment['id']}", headers=headers
    )
    assert resp.status_code == 404
