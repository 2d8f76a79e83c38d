"""
Demo content that survives the weekly cleanup.
"""
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from conduit.config import settings
from conduit.models import User
from conduit.schemas import ArticleCreate, UserCreate
from conduit.services import article_service, user_service

logger = logging.getLogger(__name__)

DEMO_USERNAME = "Gerome"
DEMO_EMAIL = "gerome@me"
DEMO_IMAGE = "https://api.realworld.io/images/demo-avatar.png"

WELCOME_ARTICLE = ArticleCreate(
    title="Welcome to RealWorld project",
    description=(
        "Exemplary fullstack Medium.com clone powered by React, Angular, Node, "
        "Django, and many more"
    ),
    body=(
        "See how the exact same Medium.com clone (called Conduit) is built using "
        "different frontends and backends. Yes, you can mix and match them, because "
        "they all adhere to the same API spec"
    ),
    tagList=["welcome", "introduction"],
)


async def generate_demo_user(db: AsyncSession) -> User:
    """Return the demo account, creating it if needed."""
    user = await user_service.get_user_by_username(db, DEMO_USERNAME)
    if user is not None:
        return user

    user = await user_service.create_user(
        db,
        UserCreate(username=DEMO_USERNAME, email=DEMO_EMAIL, password=settings.DEMO_PASSWORD),
        demo=True,
    )
    user.image = DEMO_IMAGE
    await db.flush()
    return user


async def generate_demo_data(db: AsyncSession) -> dict:
    """Create the demo account and its welcome article.  Safe to re-run."""
    user = await generate_demo_user(db)
    slug = article_service.make_slug(WELCOME_ARTICLE.title, user.id)

    article = await article_service.get_article(db, slug, user.username)
    if article is None:
        article = await article_service.create_article(db, WELCOME_ARTICLE, user.username)
        logger.info("Demo article %r created", slug)
    return article
