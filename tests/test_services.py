"""
Direct posts-service tests — exercise business rules without HTTP overhead.

The service is built on the SQLAlchemy stores over the test session, so the
visibility, pagination and soft-delete queries run for real against SQLite.
"""
import math
import re

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from newsblog.errors import ForbiddenError, InvalidInputError, NotFoundError, UnauthorizedError
from newsblog.models import Post
from newsblog.schemas import PostCreate, PostUpdate
from newsblog.services.posts_service import PostsService, reading_time, slugify
from newsblog.stores import SqlCategoryStore, SqlPostStore, SqlUserStore


def _service(db: AsyncSession) -> PostsService:
    return PostsService(SqlPostStore(db), SqlUserStore(db), SqlCategoryStore(db))


async def _create(db: AsyncSession, author_id: str, header: str = "Hello", **fields) -> dict:
    data = PostCreate(header=header, content=fields.pop("content", "Some content"), **fields)
    return await _service(db).create_post(data, author_id)


# ---------------------------------------------------------------------------
# slugify / reading_time
# ---------------------------------------------------------------------------

_SLUG_SHAPE = re.compile(r"^[^\W_]+(-[^\W_]+)*$")


@pytest.mark.parametrize(
    "header, expected",
    [
        ("Hello World!", "hello-world"),
        ("  Spaces  Everywhere  ", "spaces-everywhere"),
        ("UPPER-case---dashes", "upper-case-dashes"),
        ("It's \"quoted\" “smart” ‘text’", "its-quoted-smart-text"),
        ("a & b @ c", "a-b-c"),
        ("snake_case_title", "snake-case-title"),
        ("Новини дня: економіка", "новини-дня-економіка"),
        ("Test Post With Special Characters!@#$%", "test-post-with-special-characters"),
        ("--Leading and trailing--", "leading-and-trailing"),
    ],
)
def test_slugify(header, expected):
    assert slugify(header) == expected


@pytest.mark.parametrize(
    "header",
    ["Hello, World", "  -- weird -- spacing -- ", "Mixed_CASE & symbols!!", "Ünïcödé Çafé", "2024: a year", "日本語 タイトル"],
)
def test_slugify_shape(header):
    slug = slugify(header)
    assert slug == slug.lower()
    assert _SLUG_SHAPE.match(slug)


def test_slugify_nothing_left():
    assert slugify("!!! ???") == ""


@pytest.mark.parametrize(
    "words, expected",
    [(0, 1), (1, 1), (199, 1), (200, 1), (201, 2), (400, 2), (401, 3)],
)
def test_reading_time(words, expected):
    assert reading_time(" ".join(["word"] * words)) == expected


def test_reading_time_counts_any_whitespace():
    assert reading_time("word\n" * 200 + "word") == 2


# ---------------------------------------------------------------------------
# create_post
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_create_post_defaults(db_session: AsyncSession, make_user):
    author = await make_user()
    post = await _create(db_session, author.id, header="My First Post", content="word " * 250)

    assert post["slug"] == "my-first-post"
    assert post["reading_time"] == 2
    assert post["is_published"] is True
    assert post["is_featured"] is False
    assert post["views_count"] == 0
    assert post["likes_count"] == 0
    assert post["published_at"] is not None
    assert post["deleted"] is False
    assert post["author_id"] == author.id
    assert post["author_email"] == "author@example.com"


@pytest.mark.asyncio
async def test_create_draft_has_no_published_at(db_session: AsyncSession, make_user):
    author = await make_user()
    post = await _create(db_session, author.id, is_published=False)
    assert post["is_published"] is False
    assert post["published_at"] is None


@pytest.mark.asyncio
async def test_create_post_unknown_author(db_session: AsyncSession):
    with pytest.raises(NotFoundError, match="Author not found"):
        await _create(db_session, "00000000-0000-0000-0000-000000000000")


@pytest.mark.asyncio
async def test_create_post_deleted_author(db_session: AsyncSession, make_user):
    author = await make_user(deleted=True)
    with pytest.raises(NotFoundError):
        await _create(db_session, author.id)


@pytest.mark.asyncio
async def test_create_post_duplicate_slug(db_session: AsyncSession, make_user):
    author = await make_user()
    first = await _create(db_session, author.id, header="Same Title")
    second = await _create(db_session, author.id, header="Same Title")
    third = await _create(db_session, author.id, header="Same  title!")
    assert first["slug"] == "same-title"
    assert second["slug"] == "same-title-2"
    assert third["slug"] == "same-title-3"


@pytest.mark.asyncio
async def test_create_post_header_without_slug_characters(db_session: AsyncSession, make_user):
    author = await make_user()
    post = await _create(db_session, author.id, header="???")
    assert post["slug"] == "post"


# ---------------------------------------------------------------------------
# get_all_posts
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_all_posts_empty(db_session: AsyncSession):
    result = await _service(db_session).get_all_posts()
    assert result.data == []
    assert result.pagination.total == 0
    assert result.pagination.total_pages == 0


@pytest.mark.asyncio
async def test_get_all_posts_pagination(db_session: AsyncSession, make_user):
    author = await make_user()
    for i in range(25):
        await _create(db_session, author.id, header=f"Post {i}")

    service = _service(db_session)
    first = await service.get_all_posts(page=0, size=10)
    last = await service.get_all_posts(page=2, size=10)

    assert first.pagination.total == 25
    assert first.pagination.total_pages == 3 == math.ceil(25 / 10)
    assert len(first.data) == 10
    assert len(last.data) == 5
    # Newest first
    assert first.data[0].header == "Post 24"
    assert last.data[-1].header == "Post 0"


@pytest.mark.asyncio
async def test_get_all_posts_anonymous_sees_only_published(db_session: AsyncSession, make_user):
    author = await make_user()
    await _create(db_session, author.id, header="Public")
    await _create(db_session, author.id, header="Draft", is_published=False)

    result = await _service(db_session).get_all_posts()
    assert [p.header for p in result.data] == ["Public"]
    assert all(p.is_published for p in result.data)


@pytest.mark.asyncio
async def test_get_all_posts_author_sees_own_drafts(db_session: AsyncSession, make_user):
    author = await make_user()
    other = await make_user("other@example.com")
    await _create(db_session, author.id, header="Mine public")
    await _create(db_session, author.id, header="Mine draft", is_published=False)
    await _create(db_session, other.id, header="Their public")
    await _create(db_session, other.id, header="Their draft", is_published=False)

    result = await _service(db_session).get_all_posts(user_id=author.id)
    headers = {p.header for p in result.data}
    assert headers == {"Mine public", "Mine draft", "Their public"}
    assert result.pagination.total == 3


@pytest.mark.asyncio
async def test_get_all_posts_category_is_case_insensitive(db_session: AsyncSession, make_user):
    author = await make_user()
    await _create(db_session, author.id, header="Tech", category="Technology")
    await _create(db_session, author.id, header="Health", category="Health")

    result = await _service(db_session).get_all_posts(category="technology")
    assert [p.header for p in result.data] == ["Tech"]


@pytest.mark.asyncio
async def test_get_all_posts_skips_deleted(db_session: AsyncSession, make_user):
    author = await make_user()
    post = await _create(db_session, author.id)
    await _service(db_session).delete_post(post["id"], author.id)

    result = await _service(db_session).get_all_posts(user_id=author.id)
    assert result.data == []


@pytest.mark.asyncio
@pytest.mark.parametrize("page, size", [(-1, 10), (0, 0)])
async def test_get_all_posts_rejects_bad_paging(db_session: AsyncSession, page, size):
    with pytest.raises(InvalidInputError):
        await _service(db_session).get_all_posts(page=page, size=size)


# ---------------------------------------------------------------------------
# get_post_by_id
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_post_by_id_counts_views(db_session: AsyncSession, make_user):
    author = await make_user()
    post = await _create(db_session, author.id)
    service = _service(db_session)

    assert (await service.get_post_by_id(post["id"]))["views_count"] == 1
    assert (await service.get_post_by_id(post["id"]))["views_count"] == 2


@pytest.mark.asyncio
async def test_get_post_by_id_missing(db_session: AsyncSession):
    with pytest.raises(NotFoundError, match="Post not found"):
        await _service(db_session).get_post_by_id("missing")


@pytest.mark.asyncio
async def test_get_draft_by_id(db_session: AsyncSession, make_user):
    author = await make_user()
    other = await make_user("other@example.com")
    draft = await _create(db_session, author.id, is_published=False)
    service = _service(db_session)

    with pytest.raises(NotFoundError, match="not accessible"):
        await service.get_post_by_id(draft["id"])
    with pytest.raises(NotFoundError):
        await service.get_post_by_id(draft["id"], other.id)

    own = await service.get_post_by_id(draft["id"], author.id)
    assert own["id"] == draft["id"]
    # Drafts are not counted
    assert own["views_count"] == 0


# ---------------------------------------------------------------------------
# update_post
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_update_post_rederives_slug_and_reading_time(db_session: AsyncSession, make_user):
    author = await make_user()
    post = await _create(db_session, author.id, header="Before", content="short")

    updated = await _service(db_session).update_post(
        post["id"], PostUpdate(header="After Update", content="word " * 401), author.id
    )
    assert updated["header"] == "After Update"
    assert updated["slug"] == "after-update"
    assert updated["reading_time"] == 3


@pytest.mark.asyncio
async def test_update_post_keeps_slug_when_header_unchanged(db_session: AsyncSession, make_user):
    author = await make_user()
    post = await _create(db_session, author.id, header="Stable Header")

    updated = await _service(db_session).update_post(
        post["id"], PostUpdate(header="Stable Header", excerpt="New excerpt"), author.id
    )
    assert updated["slug"] == "stable-header"
    assert updated["excerpt"] == "New excerpt"
    assert updated["reading_time"] == post["reading_time"]


@pytest.mark.asyncio
async def test_update_post_ignores_null_for_required_fields(db_session: AsyncSession, make_user):
    author = await make_user()
    post = await _create(db_session, author.id, header="Keep me", category="Health")

    updated = await _service(db_session).update_post(
        post["id"], PostUpdate(header=None, category=None), author.id
    )
    assert updated["header"] == "Keep me"
    assert updated["category"] is None


@pytest.mark.asyncio
async def test_update_post_first_publish_sets_published_at(db_session: AsyncSession, make_user):
    author = await make_user()
    draft = await _create(db_session, author.id, is_published=False)
    service = _service(db_session)

    published = await service.update_post(draft["id"], PostUpdate(is_published=True), author.id)
    assert published["published_at"] is not None

    await service.update_post(draft["id"], PostUpdate(is_published=False), author.id)
    republished = await service.update_post(draft["id"], PostUpdate(is_published=True), author.id)
    assert republished["published_at"] == published["published_at"]


@pytest.mark.asyncio
async def test_update_post_missing(db_session: AsyncSession, make_user):
    author = await make_user()
    with pytest.raises(NotFoundError):
        await _service(db_session).update_post("missing", PostUpdate(header="Ghost"), author.id)


@pytest.mark.asyncio
async def test_update_post_by_non_author_leaves_post_unchanged(db_session: AsyncSession, make_user):
    author = await make_user()
    intruder = await make_user("intruder@example.com")
    post = await _create(db_session, author.id, header="Original")

    with pytest.raises(UnauthorizedError, match="only update your own posts") as exc_info:
        await _service(db_session).update_post(post["id"], PostUpdate(header="Hijacked"), intruder.id)
    assert isinstance(exc_info.value, ForbiddenError)

    row = (await db_session.execute(select(Post).where(Post.id == post["id"]))).scalar_one()
    assert row.header == "Original"
    assert row.slug == "original"


# ---------------------------------------------------------------------------
# delete_post
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_delete_post_is_soft(db_session: AsyncSession, make_user):
    author = await make_user()
    post = await _create(db_session, author.id)
    service = _service(db_session)

    await service.delete_post(post["id"], author.id)

    row = (await db_session.execute(select(Post).where(Post.id == post["id"]))).scalar_one()
    assert row.deleted is True
    with pytest.raises(NotFoundError):
        await service.get_post_by_id(post["id"], author.id)
    with pytest.raises(NotFoundError):
        await service.delete_post(post["id"], author.id)


@pytest.mark.asyncio
async def test_deleted_post_keeps_its_slug(db_session: AsyncSession, make_user):
    author = await make_user()
    post = await _create(db_session, author.id, header="Reused")
    await _service(db_session).delete_post(post["id"], author.id)

    again = await _create(db_session, author.id, header="Reused")
    assert again["slug"] == "reused-2"


@pytest.mark.asyncio
async def test_delete_post_by_non_author(db_session: AsyncSession, make_user):
    author = await make_user()
    intruder = await make_user("intruder@example.com")
    post = await _create(db_session, author.id)

    with pytest.raises(ForbiddenError, match="only delete your own posts"):
        await _service(db_session).delete_post(post["id"], intruder.id)

    row = (await db_session.execute(select(Post).where(Post.id == post["id"]))).scalar_one()
    assert row.deleted is False


# ---------------------------------------------------------------------------
# get_categories
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_categories_sorted_by_name(db_session: AsyncSession, make_categories):
    await make_categories("Technology", "Business", "Health")
    categories = await _service(db_session).get_categories()
    assert [c["name"] for c in categories] == ["Business", "Health", "Technology"]
