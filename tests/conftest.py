"""Shared fixtures: an in-memory database and a small seeded collection."""

from collections.abc import AsyncGenerator, Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from review_engine.models import Base, CardState, Category, Collection, Item, ReviewLog, User
from review_engine.srs.scheduler import FSRSScheduler, SchedulerSettings

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Fixed clock for every test: a Tuesday at noon UTC.
NOW = datetime(2026, 3, 10, 12, 0, 0)


@dataclass
class Deck:
    """A user plus one collection with one category of items."""

    user: User
    collection: Collection
    category: Category
    items: list[Item] = field(default_factory=list)


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def scheduler() -> FSRSScheduler:
    """Default FSRS scheduler without interval fuzzing, so results are repeatable."""
    return FSRSScheduler(SchedulerSettings(enable_fuzzing=False))


@pytest_asyncio.fixture
async def make_items(db: AsyncSession) -> Callable[..., Awaitable[list[Item]]]:
    async def _make(category: Category, count: int, prefix: str = "Question") -> list[Item]:
        items = [
            Item(category_id=category.id, prompt=f"{prefix} {i}", answer=f"Answer {i}")
            for i in range(1, count + 1)
        ]
        db.add_all(items)
        await db.commit()
        return items

    return _make


@pytest_asyncio.fixture
async def deck(db: AsyncSession, make_items: Callable[..., Awaitable[list[Item]]]) -> Deck:
    user = User(name="Asha")
    collection = Collection(name="Capitals")
    db.add_all([user, collection])
    await db.commit()

    category = Category(collection_id=collection.id, name="Europe", color="#3b82f6")
    db.add(category)
    await db.commit()

    items = await make_items(category, 4)
    return Deck(user=user, collection=collection, category=category, items=items)


@pytest_asyncio.fixture
async def make_card_state(db: AsyncSession) -> Callable[..., Awaitable[CardState]]:
    """Insert a card state directly, bypassing the scheduler."""

    async def _make(user: User, item: Item, state: str, due: datetime, **fields) -> CardState:
        values = {
            "stability": 5.0,
            "difficulty": 5.0,
            "reps": 3,
            "last_review": due - timedelta(days=5),
        }
        values.update(fields)
        card_state = CardState(user_id=user.id, item_id=item.id, state=state, due=due, **values)
        db.add(card_state)
        await db.commit()
        return card_state

    return _make


@pytest_asyncio.fixture
async def make_trainable_history(
    db: AsyncSession, make_items: Callable[..., Awaitable[list[Item]]]
) -> Callable[..., Awaitable[list[Item]]]:
    """Seed items that each carry a first review and a review two days later."""

    async def _make(deck: Deck, count: int) -> list[Item]:
        items = await make_items(deck.category, count, prefix="Trained")
        for item in items:
            db.add_all(
                [
                    ReviewLog(
                        user_id=deck.user.id,
                        item_id=item.id,
                        card_state_id=item.id,
                        rating=3,
                        mode="quiz",
                        answer_time_ms=3000,
                        reviewed_at=NOW - timedelta(days=2),
                    ),
                    ReviewLog(
                        user_id=deck.user.id,
                        item_id=item.id,
                        card_state_id=item.id,
                        rating=3,
                        mode="quiz",
                        answer_time_ms=2500,
                        state_before="learning",
                        elapsed_days_before=2.0,
                        reviewed_at=NOW,
                    ),
                ]
            )
        await db.commit()
        return items

    return _make
