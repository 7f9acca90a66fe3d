"""
Storage ports used by the posts service, with their SQLAlchemy
implementations.

The service layer only sees the ``PostStore`` / ``UserStore`` /
``CategoryStore`` protocols.  The ``Sql*`` classes wrap the request's
``AsyncSession``; they flush but never commit, so the transaction boundary
stays with the ``get_db`` dependency.
"""
from dataclasses import dataclass
from typing import Protocol

from sqlalchemy import and_, desc, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import joinedload

from newsblog.models import Category, Post, User


@dataclass(frozen=True)
class PostFilter:
    """
    Which posts a listing may return.

    ``viewer_id`` widens visibility to the viewer's own drafts;
    ``category`` is matched case-insensitively.
    """

    viewer_id: str | None = None
    category: str | None = None


# ---------------------------------------------------------------------------
# Ports
# ---------------------------------------------------------------------------

class PostStore(Protocol):
    async def find_page(self, flt: PostFilter, offset: int, limit: int) -> tuple[list[Post], int]: ...

    async def get(self, post_id: str) -> Post | None: ...

    async def slug_exists(self, slug: str, exclude_id: str | None = None) -> bool: ...

    async def add(self, post: Post) -> Post: ...

    async def save(self, post: Post) -> Post: ...


class UserStore(Protocol):
    async def get(self, user_id: str) -> User | None: ...


class CategoryStore(Protocol):
    async def list_all(self) -> list[Category]: ...


# ---------------------------------------------------------------------------
# SQLAlchemy implementations
# ---------------------------------------------------------------------------

def _visible_to(viewer_id: str | None):
    if viewer_id:
        return or_(
            Post.is_published.is_(True),
            and_(Post.is_published.is_(False), Post.author_id == viewer_id),
        )
    return Post.is_published.is_(True)


class SqlPostStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def find_page(self, flt: PostFilter, offset: int, limit: int) -> tuple[list[Post], int]:
        """
        Return one page of matching posts (newest first) and the total
        number of matches.  Soft-deleted posts never match.
        """
        conditions = [Post.deleted.is_(False), _visible_to(flt.viewer_id)]
        if flt.category:
            conditions.append(func.lower(Post.category) == flt.category.lower())

        count_q = select(func.count()).select_from(Post).where(*conditions)
        total: int = (await self.db.execute(count_q)).scalar_one()

        posts_q = (
            select(Post)
            .where(*conditions)
            .options(joinedload(Post.author))
            .order_by(desc(Post.created_at))
            .offset(offset)
            .limit(limit)
        )
        result = await self.db.execute(posts_q)
        return list(result.unique().scalars().all()), total

    async def get(self, post_id: str) -> Post | None:
        q = (
            select(Post)
            .where(Post.id == post_id, Post.deleted.is_(False))
            .options(joinedload(Post.author))
        )
        result = await self.db.execute(q)
        return result.unique().scalar_one_or_none()

    async def slug_exists(self, slug: str, exclude_id: str | None = None) -> bool:
        # Deleted posts keep their slug, so they are included here.
        q = select(Post.id).where(Post.slug == slug)
        if exclude_id is not None:
            q = q.where(Post.id != exclude_id)
        return (await self.db.execute(q.limit(1))).first() is not None

    async def add(self, post: Post) -> Post:
        self.db.add(post)
        await self.db.flush()
        return post

    async def save(self, post: Post) -> Post:
        await self.db.flush()
        return post


class SqlUserStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get(self, user_id: str) -> User | None:
        q = select(User).where(User.id == user_id, User.deleted.is_(False))
        return (await self.db.execute(q)).scalar_one_or_none()


class SqlCategoryStore:
    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def list_all(self) -> list[Category]:
        result = await self.db.execute(select(Category).order_by(Category.name))
        return list(result.scalars().all())
