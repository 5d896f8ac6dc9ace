"""Tests for the HTTP API."""

from collections.abc import AsyncGenerator

import fsrs
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from review_engine import main
from review_engine.config import settings
from review_engine.database import get_session
from review_engine.main import app


@pytest_asyncio.fixture
async def client(session_factory, monkeypatch) -> AsyncGenerator[AsyncClient, None]:
    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    monkeypatch.setattr(main, "async_session", session_factory)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.mark.asyncio
async def test_health_check(client) -> None:
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


class TestReviewRoutes:
    @pytest.mark.asyncio
    async def test_submit_review(self, client, deck) -> None:
        payload = {"user_id": deck.user.id, "item_id": deck.items[0].id, "rating": 3, "was_correct": True}
        response = await client.post("/api/reviews", json=payload)
        assert response.status_code == 200
        data = response.json()
        assert data["card"]["state"] == "learning"
        assert data["card"]["reps"] == 1
        assert data["times_correct"] == 1
        assert data["log_written"] is True

    @pytest.mark.asyncio
    async def test_flashcard_review_derives_correctness(self, client, deck) -> None:
        payload = {"user_id": deck.user.id, "item_id": deck.items[0].id, "rating": 2, "mode": "flashcard"}
        data = (await client.post("/api/reviews", json=payload)).json()
        assert data["times_incorrect"] == 1

    @pytest.mark.asyncio
    async def test_invalid_mode(self, client, deck) -> None:
        payload = {"user_id": deck.user.id, "item_id": deck.items[0].id, "rating": 3, "mode": "exam"}
        response = await client.post("/api/reviews", json=payload)
        assert response.status_code == 422
        assert "mode" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_out_of_range_rating(self, client, deck) -> None:
        payload = {"user_id": deck.user.id, "item_id": deck.items[0].id, "rating": 7}
        response = await client.post("/api/reviews", json=payload)
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_item(self, client, deck) -> None:
        payload = {"user_id": deck.user.id, "item_id": 9999, "rating": 3}
        response = await client.post("/api/reviews", json=payload)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_undo_and_bury(self, client, deck) -> None:
        item_id = deck.items[0].id
        body = {"user_id": deck.user.id, "item_id": item_id}
        await client.post("/api/reviews", json={**body, "rating": 3})

        assert (await client.post("/api/reviews/undo", json=body)).json() == {"undone": True}
        assert (await client.post("/api/reviews/undo", json=body)).json() == {"undone": False}

        response = await client.post("/api/reviews/bury", json=body)
        assert response.status_code == 200
        assert response.json()["due"].endswith("T00:00:00")

    @pytest.mark.asyncio
    async def test_reset_today(self, client, deck) -> None:
        for item in deck.items[:2]:
            await client.post("/api/reviews", json={"user_id": deck.user.id, "item_id": item.id, "rating": 3})
        response = await client.post(
            "/api/reviews/reset-today", json={"user_id": deck.user.id, "collection_id": deck.collection.id}
        )
        assert response.json() == {"reviews_removed": 2}


class TestQueueRoutes:
    @pytest.mark.asyncio
    async def test_queue(self, client, deck) -> None:
        response = await client.get(f"/api/queue/{deck.user.id}/{deck.collection.id}")
        assert response.status_code == 200
        data = response.json()
        assert data["sub_mode"] == "full"
        assert data["total"] == 4
        assert all(item["state"] is None for item in data["items"])
        assert data["items"][0]["category_name"] == "Europe"

    @pytest.mark.asyncio
    async def test_quick_review_after_a_review(self, client, deck) -> None:
        item_id = deck.items[0].id
        await client.post("/api/reviews", json={"user_id": deck.user.id, "item_id": item_id, "rating": 3})
        response = await client.get(
            f"/api/queue/{deck.user.id}/{deck.collection.id}", params={"sub_mode": "quick_review"}
        )
        assert [item["item_id"] for item in response.json()["items"]] == [item_id]

    @pytest.mark.asyncio
    async def test_unknown_sub_mode(self, client, deck) -> None:
        response = await client.get(
            f"/api/queue/{deck.user.id}/{deck.collection.id}", params={"sub_mode": "cram"}
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_counts(self, client, deck) -> None:
        response = await client.get(f"/api/queue/{deck.user.id}/{deck.collection.id}/counts")
        assert response.json() == {"full": 4, "quick_review": 0, "spaced_repetition": 0}

    @pytest.mark.asyncio
    async def test_empty_state(self, client, deck) -> None:
        response = await client.get(f"/api/queue/{deck.user.id}/{deck.collection.id}/empty-state")
        data = response.json()
        assert data["remaining_new_items"] == 4
        assert data["next_due_at"] is None

    @pytest.mark.asyncio
    async def test_preview(self, client, deck) -> None:
        response = await client.get(f"/api/queue/{deck.user.id}/items/{deck.items[0].id}/preview")
        data = response.json()
        assert set(data["intervals"]) == {"1", "2", "3", "4"}
        assert data["intervals"]["1"] == "1m"
        assert data["retrievability"] is None


class TestSuspensionRoutes:
    @pytest.mark.asyncio
    async def test_suspend_cycle(self, client, deck) -> None:
        item_id = deck.items[0].id
        response = await client.post(f"/api/suspensions/{deck.user.id}/{item_id}")
        assert response.json() == {"item_id": item_id, "suspended": True}
        assert (await client.get(f"/api/suspensions/{deck.user.id}")).json()["item_ids"] == [item_id]

        counts = (await client.get(f"/api/queue/{deck.user.id}/{deck.collection.id}/counts")).json()
        assert counts["full"] == 3

        await client.delete(f"/api/suspensions/{deck.user.id}/{item_id}")
        assert (await client.get(f"/api/suspensions/{deck.user.id}")).json()["item_ids"] == []

    @pytest.mark.asyncio
    async def test_membership(self, client, deck) -> None:
        suspended_id, other_id = deck.items[0].id, deck.items[1].id
        await client.post(f"/api/suspensions/{deck.user.id}/{suspended_id}")

        response = await client.get(f"/api/suspensions/{deck.user.id}/{suspended_id}")
        assert response.status_code == 200
        assert response.json() == {"item_id": suspended_id, "suspended": True}
        response = await client.get(f"/api/suspensions/{deck.user.id}/{other_id}")
        assert response.json() == {"item_id": other_id, "suspended": False}

        await client.delete(f"/api/suspensions/{deck.user.id}/{suspended_id}")
        response = await client.get(f"/api/suspensions/{deck.user.id}/{suspended_id}")
        assert response.json()["suspended"] is False


class TestStatsAndSettingsRoutes:
    @pytest.mark.asyncio
    async def test_daily_stats(self, client, deck) -> None:
        await client.post(
            "/api/reviews",
            json={"user_id": deck.user.id, "item_id": deck.items[0].id, "rating": 4, "was_correct": True},
        )
        data = (await client.get(f"/api/stats/{deck.user.id}/{deck.collection.id}/daily")).json()
        assert data["reviews_today"] == 1
        assert data["new_items_today"] == 1
        assert data["correct_rate"] == 1.0

    @pytest.mark.asyncio
    async def test_settings_round_trip(self, client, deck) -> None:
        data = (await client.get(f"/api/settings/{deck.user.id}")).json()
        assert data["desired_retention"] == 0.9
        assert data["has_custom_weights"] is False

        response = await client.put(f"/api/settings/{deck.user.id}", json={"desired_retention": 0.8})
        assert response.json()["desired_retention"] == 0.8

    @pytest.mark.asyncio
    async def test_invalid_settings(self, client, deck) -> None:
        response = await client.put(f"/api/settings/{deck.user.id}", json={"desired_retention": 1.5})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_unknown_user_settings(self, client) -> None:
        response = await client.get("/api/settings/9999")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_optimizer_status_and_run(self, client, deck) -> None:
        status = (await client.get(f"/api/settings/{deck.user.id}/optimizer")).json()
        assert status == {"valid_items": 0, "min_items": 50, "can_optimize": False}

        run = (await client.post(f"/api/settings/{deck.user.id}/optimizer")).json()
        assert run["optimized"] is False
        assert run["weights"] is None

    @pytest.mark.asyncio
    async def test_optimizer_without_extra_is_unavailable(
        self, client, deck, make_trainable_history, monkeypatch
    ) -> None:
        class MissingOptimizer:
            def __init__(self, *args, **kwargs) -> None:
                raise ImportError("Optimizer is not installed.")

        monkeypatch.setattr(fsrs, "Optimizer", MissingOptimizer, raising=False)
        await make_trainable_history(deck, settings.min_items_for_optimization)

        status = (await client.get(f"/api/settings/{deck.user.id}/optimizer")).json()
        assert status["can_optimize"] is True

        response = await client.post(f"/api/settings/{deck.user.id}/optimizer")
        assert response.status_code == 503
        assert "optimizer" in response.json()["detail"]
