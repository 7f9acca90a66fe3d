from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from newsblog.config import Settings
from newsblog.database import get_db
from newsblog.errors import UnauthorizedError
from newsblog.kvstore import KeyValueStore
from newsblog.security import decode_access_token
from newsblog.services.logging_service import LoggingService
from newsblog.services.posts_service import PostsService
from newsblog.services.user_service import UserService
from newsblog.stores import SqlCategoryStore, SqlPostStore, SqlUserStore

ALL_CATEGORIES = "All Genres"

_bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


class PaginationParams:
    """
    Reusable FastAPI dependency that parses the post listing query.

    Attributes
    ----------
    page:
        0-based page number.
    size:
        Number of posts per page, clamped to ``settings.MAX_PAGE_SIZE``
        regardless of the value supplied by the caller.
    category:
        Category name to filter by.  The client's catch-all choice
        ``"All Genres"`` (and an empty string) mean no filter.
    """

    def __init__(
        self,
        page: int = Query(0, ge=0, description="Page number (0-based)."),
        size: int | None = Query(None, ge=1, description="Number of posts per page."),
        category: str | None = Query(None, description="Category to filter by."),
        settings: Settings = Depends(get_settings),
    ) -> None:
        self.page = page
        self.size = min(size or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
        self.category = None if category in (None, "", ALL_CATEGORIES) else category


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def get_optional_user_id(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    settings: Settings = Depends(get_settings),
) -> str | None:
    """Id of the bearer-token user, or None for anonymous requests."""
    if credentials is None:
        return None
    return decode_access_token(credentials.credentials, settings)["userId"]


async def get_current_user_id(user_id: str | None = Depends(get_optional_user_id)) -> str:
    if user_id is None:
        raise UnauthorizedError("User not authenticated")
    return user_id


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------

async def get_posts_service(db: AsyncSession = Depends(get_db)) -> PostsService:
    return PostsService(SqlPostStore(db), SqlUserStore(db), SqlCategoryStore(db))


def get_kv_store(request: Request) -> KeyValueStore:
    return request.app.state.kv_store


def get_user_service(
    store: KeyValueStore = Depends(get_kv_store),
    settings: Settings = Depends(get_settings),
) -> UserService:
    return UserService(store, settings)


def get_logging_service(request: Request) -> LoggingService:
    return request.app.state.logging_service
