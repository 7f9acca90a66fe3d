"""Development database seeder: categories, a standard user and sample posts."""
import asyncio
import argparse
import random
import time
from datetime import datetime, timezone, timedelta

from sqlalchemy import func, select

from newsblog.database import engine, async_session, Base
from newsblog.models import Category, Post, User
from newsblog.security import hash_password
from newsblog.services.posts_service import reading_time, slugify

CATEGORIES = ["Business", "Health", "Other", "Technology"]

STANDARD_EMAIL = "admin@example.com"
STANDARD_PASSWORD = "password123"

WORDS = ("market growth research team report policy data city health study "
         "energy cloud startup patient device budget launch survey climate").split()


def _sentence(min_words: int, max_words: int) -> str:
    words = random.choices(WORDS, k=random.randint(min_words, max_words))
    return " ".join(words).capitalize()


async def seed(num_posts: int, reset: bool) -> None:
    start = time.perf_counter()

    async with engine.begin() as conn:
        if reset:
            await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with async_session() as session:
        existing = {c.name for c in (await session.execute(select(Category))).scalars()}
        for name in CATEGORIES:
            if name not in existing:
                session.add(Category(name=name, slug=slugify(name)))
        await session.flush()
        print(f"  Categories: {', '.join(CATEGORIES)}")

        author = (await session.execute(select(User).where(User.email == STANDARD_EMAIL))).scalar_one_or_none()
        if author is None:
            author = User(email=STANDARD_EMAIL, password_hash=hash_password(STANDARD_PASSWORD))
            session.add(author)
            await session.flush()
            print(f"  Created standard user: {STANDARD_EMAIL} / {STANDARD_PASSWORD}")
        else:
            print("  Standard user already exists")

        existing_posts = (await session.execute(select(func.count()).select_from(Post))).scalar_one()
        if existing_posts >= num_posts:
            print("  Posts already exist, skipping creation")
        else:
            for i in range(existing_posts, num_posts):
                created = datetime.now(timezone.utc) - timedelta(days=random.randint(0, 60))
                header = f"{_sentence(4, 9)} {i}"
                content = "\n\n".join(_sentence(40, 120) + "." for _ in range(random.randint(3, 7)))
                is_published = random.random() > 0.1
                session.add(Post(
                    header=header,
                    content=content,
                    excerpt=content[:150] + "...",
                    category=random.choice(CATEGORIES),
                    tags=random.sample(WORDS, k=3),
                    slug=slugify(header),
                    reading_time=reading_time(content),
                    is_published=is_published,
                    published_at=created if is_published else None,
                    views_count=random.randint(0, 500),
                    created_at=created,
                    updated_at=created,
                    author_id=author.id,
                ))
            print(f"  Created {num_posts - existing_posts} posts")

        await session.commit()

    await engine.dispose()
    print(f"\nSeeding complete in {time.perf_counter() - start:.1f}s")


def main():
    parser = argparse.ArgumentParser(description="Seed the news posts database")
    parser.add_argument("--posts", type=int, default=20, help="Number of posts to have in total")
    parser.add_argument("--reset", action="store_true", help="Drop and recreate all tables first")
    args = parser.parse_args()
    asyncio.run(seed(args.posts, args.reset))


if __name__ == "__main__":
    main()
