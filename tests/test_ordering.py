"""Tests for study queue ordering."""

import random
from datetime import datetime, timedelta

import pytest
import pytest_asyncio

from review_engine.errors import ValidationError
from review_engine.models import Category, User
from review_engine.srs.ordering import (
    LEARNING_DUE,
    NEW,
    NOT_DUE,
    REVIEW_DUE,
    OrderingOptions,
    SubMode,
    get_empty_state_context,
    get_ordered_items,
    get_submode_counts,
    parse_sub_mode,
    priority_bucket,
)
from review_engine.srs.reviews import apply_review
from review_engine.srs.suspensions import suspend_item

NOW = datetime(2026, 3, 10, 12, 0, 0)


def _ids(entries) -> list[int]:
    return [entry.item.id for entry in entries]


@pytest_asyncio.fixture
async def mixed_deck(deck, make_card_state):
    """R: review due yesterday, N: new, L: learning due 10 min ago, F: review due in 2 days."""
    r, n, lrn, f = deck.items
    await make_card_state(deck.user, r, "review", NOW - timedelta(days=1))
    await make_card_state(deck.user, lrn, "learning", NOW - timedelta(minutes=10), reps=1)
    await make_card_state(deck.user, f, "review", NOW + timedelta(days=2))
    return deck, (r, n, lrn, f)


class TestPriorityBucket:
    def test_buckets(self) -> None:
        class Row:
            def __init__(self, state: str, due: datetime) -> None:
                self.state = state
                self.due = due

        assert priority_bucket(Row("review", NOW), NOW) == REVIEW_DUE
        assert priority_bucket(Row("relearning", NOW - timedelta(hours=1)), NOW) == REVIEW_DUE
        assert priority_bucket(None, NOW) == NEW
        assert priority_bucket(Row("learning", NOW - timedelta(minutes=1)), NOW) == LEARNING_DUE
        assert priority_bucket(Row("review", NOW + timedelta(seconds=1)), NOW) == NOT_DUE
        assert priority_bucket(Row("new", NOW + timedelta(hours=12)), NOW) == NOT_DUE

    def test_parse_sub_mode(self) -> None:
        assert parse_sub_mode("quick_review") == SubMode.QUICK_REVIEW
        with pytest.raises(ValidationError):
            parse_sub_mode("cram")


class TestGetOrderedItems:
    @pytest.mark.asyncio
    async def test_full_mode_order(self, db, mixed_deck) -> None:
        deck, (r, n, lrn, f) = mixed_deck
        entries = await get_ordered_items(db, deck.user.id, deck.collection.id, now=NOW)
        assert _ids(entries) == [r.id, n.id, lrn.id, f.id]

    @pytest.mark.asyncio
    async def test_entries_carry_category_and_state(self, db, mixed_deck) -> None:
        deck, (r, n, _, _) = mixed_deck
        entries = await get_ordered_items(db, deck.user.id, deck.collection.id, now=NOW)
        assert entries[0].card_state.state == "review"
        assert entries[1].card_state is None
        assert entries[1].category_name == "Europe"
        assert entries[1].category_color == "#3b82f6"

    @pytest.mark.asyncio
    async def test_most_overdue_review_first(self, db, deck, make_card_state) -> None:
        older, newer = deck.items[0], deck.items[1]
        await make_card_state(deck.user, newer, "review", NOW - timedelta(hours=1))
        await make_card_state(deck.user, older, "review", NOW - timedelta(days=3))
        entries = await get_ordered_items(
            db, deck.user.id, deck.collection.id, OrderingOptions(sub_mode=SubMode.SPACED_REPETITION), now=NOW
        )
        assert _ids(entries) == [older.id, newer.id]

    @pytest.mark.asyncio
    async def test_spaced_repetition_only_due_reviews(self, db, mixed_deck) -> None:
        deck, (r, _, _, _) = mixed_deck
        options = OrderingOptions(sub_mode=SubMode.SPACED_REPETITION)
        entries = await get_ordered_items(db, deck.user.id, deck.collection.id, options, now=NOW)
        assert _ids(entries) == [r.id]

    @pytest.mark.asyncio
    async def test_quick_review_only_seen_items(self, db, mixed_deck) -> None:
        deck, (r, n, lrn, f) = mixed_deck
        options = OrderingOptions(sub_mode=SubMode.QUICK_REVIEW)
        entries = await get_ordered_items(db, deck.user.id, deck.collection.id, options, now=NOW)
        assert _ids(entries) == [r.id, lrn.id, f.id]

    @pytest.mark.asyncio
    async def test_quick_review_truncated_to_twenty(self, db, deck, make_items, make_card_state) -> None:
        extra = await make_items(deck.category, 21, prefix="Extra")
        for i, item in enumerate(extra):
            await make_card_state(deck.user, item, "review", NOW + timedelta(days=i + 1))
        options = OrderingOptions(sub_mode=SubMode.QUICK_REVIEW)
        entries = await get_ordered_items(db, deck.user.id, deck.collection.id, options, now=NOW)
        assert len(entries) == 20
        assert all(entry.card_state is not None for entry in entries)

    @pytest.mark.asyncio
    async def test_explicit_limit(self, db, mixed_deck) -> None:
        deck, (r, n, _, _) = mixed_deck
        entries = await get_ordered_items(
            db, deck.user.id, deck.collection.id, OrderingOptions(limit=2), now=NOW
        )
        assert _ids(entries) == [r.id, n.id]

    @pytest.mark.asyncio
    async def test_suspended_items_are_excluded(self, db, mixed_deck) -> None:
        deck, (r, n, lrn, f) = mixed_deck
        await suspend_item(db, deck.user.id, r.id)
        entries = await get_ordered_items(db, deck.user.id, deck.collection.id, now=NOW)
        assert _ids(entries) == [n.id, lrn.id, f.id]

    @pytest.mark.asyncio
    async def test_inactive_items_are_excluded(self, db, mixed_deck) -> None:
        deck, (r, n, lrn, f) = mixed_deck
        n.is_active = False
        await db.commit()
        entries = await get_ordered_items(db, deck.user.id, deck.collection.id, now=NOW)
        assert _ids(entries) == [r.id, lrn.id, f.id]

    @pytest.mark.asyncio
    async def test_other_users_state_is_ignored(self, db, mixed_deck) -> None:
        deck, (r, n, lrn, f) = mixed_deck
        other = User(name="Bilal")
        db.add(other)
        await db.commit()
        entries = await get_ordered_items(db, other.id, deck.collection.id, now=NOW)
        assert all(entry.card_state is None for entry in entries)
        assert sorted(_ids(entries)) == sorted([r.id, n.id, lrn.id, f.id])

    @pytest.mark.asyncio
    async def test_category_focus(self, db, deck, make_items) -> None:
        other = Category(collection_id=deck.collection.id, name="Asia", color="#ef4444")
        db.add(other)
        await db.commit()
        asia = await make_items(other, 2, prefix="Asia")

        options = OrderingOptions(sub_mode=SubMode.CATEGORY_FOCUS, category_id=other.id)
        entries = await get_ordered_items(db, deck.user.id, deck.collection.id, options, now=NOW)
        assert sorted(_ids(entries)) == sorted(item.id for item in asia)
        assert {entry.category_name for entry in entries} == {"Asia"}

    @pytest.mark.asyncio
    async def test_new_items_shuffled_with_injected_rng(self, db, deck, make_items) -> None:
        await make_items(deck.category, 8, prefix="More")
        first = await get_ordered_items(db, deck.user.id, deck.collection.id, now=NOW, rng=random.Random(7))
        second = await get_ordered_items(db, deck.user.id, deck.collection.id, now=NOW, rng=random.Random(7))
        assert _ids(first) == _ids(second)
        assert len(first) == 12


class TestNewCardCap:
    @pytest.mark.asyncio
    async def test_daily_cap(self, db, mixed_deck, make_items) -> None:
        deck, (r, n, lrn, f) = mixed_deck
        await make_items(deck.category, 4, prefix="Fresh")
        options = OrderingOptions(new_cards_per_day=2)
        entries = await get_ordered_items(db, deck.user.id, deck.collection.id, options, now=NOW)
        assert sum(1 for entry in entries if entry.card_state is None) == 2
        assert {r.id, lrn.id, f.id} <= set(_ids(entries))

    @pytest.mark.asyncio
    async def test_new_items_studied_today_use_up_the_cap(self, db, deck, scheduler) -> None:
        await apply_review(db, deck.user.id, deck.items[0].id, 3, scheduler=scheduler, now=NOW - timedelta(hours=1))
        options = OrderingOptions(new_cards_per_day=2)
        entries = await get_ordered_items(db, deck.user.id, deck.collection.id, options, now=NOW)
        assert sum(1 for entry in entries if entry.card_state is None) == 1

    @pytest.mark.asyncio
    async def test_ramp_up_first_day(self, db, deck, make_items) -> None:
        await make_items(deck.category, 10, prefix="Fresh")
        options = OrderingOptions(new_cards_per_day=20, new_cards_ramp_up=True)
        entries = await get_ordered_items(db, deck.user.id, deck.collection.id, options, now=NOW)
        assert len(entries) == 6

    @pytest.mark.asyncio
    async def test_ramp_up_third_day(self, db, deck, make_items, scheduler) -> None:
        await make_items(deck.category, 10, prefix="Fresh")
        await apply_review(db, deck.user.id, deck.items[0].id, 3, scheduler=scheduler, now=NOW - timedelta(days=2))
        options = OrderingOptions(new_cards_per_day=20, new_cards_ramp_up=True)
        entries = await get_ordered_items(db, deck.user.id, deck.collection.id, options, now=NOW)
        # Day 3 allows 8 new items; the reviewed item is in the queue as well.
        assert sum(1 for entry in entries if entry.card_state is None) == 8
        assert len(entries) == 9


class TestSubModeCounts:
    @pytest.mark.asyncio
    async def test_counts(self, db, mixed_deck) -> None:
        deck, _ = mixed_deck
        counts = await get_submode_counts(db, deck.user.id, deck.collection.id, now=NOW)
        assert counts.full == 4
        assert counts.quick_review == 3
        assert counts.spaced_repetition == 1

    @pytest.mark.asyncio
    async def test_counts_exclude_suspended(self, db, mixed_deck) -> None:
        deck, (r, _, _, _) = mixed_deck
        await suspend_item(db, deck.user.id, r.id)
        counts = await get_submode_counts(db, deck.user.id, deck.collection.id, now=NOW)
        assert counts.full == 3
        assert counts.spaced_repetition == 0

    @pytest.mark.asyncio
    async def test_quick_review_count_capped(self, db, deck, make_items, make_card_state) -> None:
        extra = await make_items(deck.category, 25, prefix="Extra")
        for item in extra:
            await make_card_state(deck.user, item, "review", NOW + timedelta(days=1))
        counts = await get_submode_counts(db, deck.user.id, deck.collection.id, now=NOW)
        assert counts.full == 29
        assert counts.quick_review == 20


class TestEmptyState:
    @pytest.mark.asyncio
    async def test_nothing_due(self, db, deck, make_card_state) -> None:
        soon = NOW + timedelta(hours=3)
        await make_card_state(deck.user, deck.items[0], "review", soon)
        await make_card_state(deck.user, deck.items[1], "review", NOW + timedelta(days=4))
        options = OrderingOptions(sub_mode=SubMode.SPACED_REPETITION)

        assert await get_ordered_items(db, deck.user.id, deck.collection.id, options, now=NOW) == []
        context = await get_empty_state_context(db, deck.user.id, deck.collection.id, options, now=NOW)
        assert context.remaining_new_items == 2
        assert context.next_due_at == soon
        assert context.effective_limit == 20

    @pytest.mark.asyncio
    async def test_empty_collection(self, db, deck) -> None:
        context = await get_empty_state_context(db, deck.user.id, 9999, now=NOW)
        assert context.remaining_new_items == 0
        assert context.next_due_at is None
