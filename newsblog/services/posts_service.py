"""
Posts service — business rules for the Post aggregate.

Design notes
------------
- Storage is reached only through the ``PostStore`` / ``UserStore`` /
  ``CategoryStore`` ports, so the rules below can run against any backend.
- Visibility: anonymous readers see published posts; an authenticated
  reader additionally sees their own drafts.  Soft-deleted posts are
  invisible to everyone, including their author.
- Only the author may update or delete a post.  Deletion is a soft delete:
  the row keeps its slug, so a new post cannot take it over.
- ``slug`` is re-derived only when the header changes and ``reading_time``
  only when the content changes.
"""
import logging
import math
import re
from datetime import datetime, timezone

from newsblog.errors import ForbiddenError, InvalidInputError, NotFoundError
from newsblog.models import Category, Post
from newsblog.schemas import PaginatedPosts, PaginationMeta, PostCreate, PostUpdate
from newsblog.stores import CategoryStore, PostFilter, PostStore, UserStore

logger = logging.getLogger(__name__)

WORDS_PER_MINUTE = 200

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_SLUG_QUOTE_RE = re.compile(r"['\"`“”‘’«»]")
_SLUG_STRIP_RE = re.compile(r"[^\w\s-]")
_SLUG_SPACE_RE = re.compile(r"[\s_]+")
_SLUG_DASH_RE = re.compile(r"-+")

# Fields that cannot be cleared by sending an explicit null.
_REQUIRED_FIELDS = frozenset({"header", "content", "is_published", "is_featured"})


def slugify(text: str) -> str:
    """
    Return a URL-safe, lowercase slug derived from *text*.

    Letters and digits of any script are kept, so ``"Новини дня"`` becomes
    ``"новини-дня"``.
    """
    text = _SLUG_QUOTE_RE.sub("", text.lower())
    text = _SLUG_STRIP_RE.sub("", text)
    text = _SLUG_SPACE_RE.sub("-", text)
    return _SLUG_DASH_RE.sub("-", text).strip("-")


def reading_time(content: str) -> int:
    """Minutes needed to read *content* at 200 words/minute (at least 1)."""
    words = len(content.split())
    return max(1, math.ceil(words / WORDS_PER_MINUTE))


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _post_to_dict(post: Post) -> dict:
    return {
        "id": post.id,
        "header": post.header,
        "content": post.content,
        "excerpt": post.excerpt,
        "image": post.image,
        "category": post.category,
        "tags": post.tags,
        "author_id": post.author_id,
        "author_email": post.author.email if post.author else "Unknown",
        "is_published": post.is_published,
        "is_featured": post.is_featured,
        "views_count": post.views_count,
        "likes_count": post.likes_count,
        "slug": post.slug,
        "meta_title": post.meta_title,
        "meta_description": post.meta_description,
        "reading_time": post.reading_time,
        "created_at": _iso(post.created_at),
        "updated_at": _iso(post.updated_at),
        "published_at": _iso(post.published_at),
        "deleted": post.deleted,
    }


def _category_to_dict(category: Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "description": category.description,
        "slug": category.slug,
        "color": category.color,
        "color_active": category.color_active,
    }


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class PostsService:
    def __init__(self, posts: PostStore, users: UserStore, categories: CategoryStore) -> None:
        self.posts = posts
        self.users = users
        self.categories = categories

    async def _unique_slug(self, header: str, exclude_id: str | None = None) -> str:
        """Slug for *header*, suffixed with ``-2``, ``-3``, ... while taken."""
        base = slugify(header) or "post"
        candidate = base
        suffix = 2
        while await self.posts.slug_exists(candidate, exclude_id):
            candidate = f"{base}-{suffix}"
            suffix += 1
        return candidate

    async def _owned_post(self, post_id: str, author_id: str, action: str) -> Post:
        post = await self.posts.get(post_id)
        if post is None:
            raise NotFoundError("Post not found")
        if post.author_id != author_id:
            logger.warning("User %s tried to %s post %s owned by %s", author_id, action, post_id, post.author_id)
            raise ForbiddenError(f"Unauthorized: You can only {action} your own posts")
        return post

    async def get_all_posts(
        self,
        page: int = 0,
        size: int = 10,
        category: str | None = None,
        user_id: str | None = None,
    ) -> PaginatedPosts:
        """
        Return page *page* (0-based) of the posts visible to *user_id*,
        newest first, optionally restricted to *category*.
        """
        if page < 0:
            raise InvalidInputError("page must be zero or greater")
        if size < 1:
            raise InvalidInputError("size must be at least 1")

        posts, total = await self.posts.find_page(
            PostFilter(viewer_id=user_id, category=category),
            offset=page * size,
            limit=size,
        )
        return PaginatedPosts(
            data=[_post_to_dict(p) for p in posts],
            pagination=PaginationMeta(
                page=page,
                size=size,
                total=total,
                total_pages=math.ceil(total / size),
            ),
        )

    async def get_post_by_id(self, post_id: str, user_id: str | None = None) -> dict:
        """
        Return a single post, counting the read when the post is published.

        Drafts are reported as missing to everyone but their author.
        """
        post = await self.posts.get(post_id)
        if post is None:
            raise NotFoundError("Post not found")
        if not post.is_published and post.author_id != user_id:
            raise NotFoundError("Post not found or not accessible")

        if post.is_published:
            post.views_count += 1
            await self.posts.save(post)
        return _post_to_dict(post)

    async def create_post(self, data: PostCreate, author_id: str) -> dict:
        author = await self.users.get(author_id)
        if author is None:
            raise NotFoundError("Author not found")

        is_published = True if data.is_published is None else data.is_published
        post = Post(
            header=data.header,
            content=data.content,
            excerpt=data.excerpt,
            image=data.image,
            category=data.category,
            tags=data.tags,
            meta_title=data.meta_title,
            meta_description=data.meta_description,
            author_id=author.id,
            slug=await self._unique_slug(data.header),
            reading_time=reading_time(data.content),
            is_published=is_published,
            is_featured=bool(data.is_featured),
            views_count=0,
            likes_count=0,
            deleted=False,
            published_at=datetime.now(timezone.utc) if is_published else None,
        )
        post.author = author

        await self.posts.add(post)
        logger.info("Post %s created by %s (slug=%s)", post.id, author_id, post.slug)
        return _post_to_dict(post)

    async def update_post(self, post_id: str, data: PostUpdate, author_id: str) -> dict:
        """
        Apply the fields explicitly present in *data* to the author's post.

        Nothing is written when the requester is not the author.
        """
        post = await self._owned_post(post_id, author_id, "update")

        changes = {
            field: value
            for field, value in data.model_dump(exclude_unset=True).items()
            if value is not None or field not in _REQUIRED_FIELDS
        }

        if "header" in changes and changes["header"] != post.header:
            post.slug = await self._unique_slug(changes["header"], exclude_id=post.id)
        if "content" in changes and changes["content"] != post.content:
            post.reading_time = reading_time(changes["content"])
        if changes.get("is_published") and post.published_at is None:
            post.published_at = datetime.now(timezone.utc)

        for field, value in changes.items():
            setattr(post, field, value)

        await self.posts.save(post)
        logger.info("Post %s updated by %s: %s", post_id, author_id, sorted(changes))
        return _post_to_dict(post)

    async def delete_post(self, post_id: str, author_id: str) -> None:
        post = await self._owned_post(post_id, author_id, "delete")
        post.deleted = True
        await self.posts.save(post)
        logger.info("Post %s soft-deleted by %s", post_id, author_id)

    async def get_categories(self) -> list[dict]:
        return [_category_to_dict(c) for c in await self.categories.list_all()]
