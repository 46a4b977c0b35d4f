"""End-to-end tests for the HTTP API over an isolated database."""

from collections.abc import AsyncIterator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.database import get_session
from backend.main import app


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncClient]:
    async def override_session() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


async def _start_run(client: AsyncClient, cards: int = 4) -> tuple[int, dict]:
    deck = (await client.post("/api/decks", json={"title": "Colours", "language": "fr"})).json()
    for i in range(cards):
        response = await client.post(
            f"/api/decks/{deck['id']}/cards", json={"front": f"rouge {i}", "back": f"red {i}"}
        )
        assert response.status_code == 201
    await client.post(f"/api/decks/{deck['id']}/publish", json={"is_published": True})
    response = await client.post(f"/api/decks/{deck['id']}/run")
    assert response.status_code == 201
    return deck["id"], response.json()


async def _join(client: AsyncClient, code: str, nickname: str = "Sam") -> dict:
    response = await client.post("/api/run/join", json={"code": code, "nickname": nickname})
    assert response.status_code == 200
    return response.json()


class TestPracticeFlow:
    @pytest.mark.asyncio
    async def test_play_a_run_to_completion(self, client: AsyncClient) -> None:
        deck_id, run = await _start_run(client, cards=2)
        joined = await _join(client, run["code"].lower())
        run_id, player_id = joined["run_id"], joined["player_id"]
        assert run_id == run["id"]
        assert joined["deck_title"] == "Colours"

        answers = 0
        while True:
            next_card = (
                await client.get(f"/api/run/{run_id}/next", params={"player_id": player_id})
            ).json()
            if next_card["finished"]:
                break
            assert next_card["stats"]["refresher_count"] == 0
            response = await client.post(
                f"/api/run/{run_id}/answer",
                json={"player_id": player_id, "card_id": next_card["card"]["id"], "label": "KNOW"},
            )
            assert response.status_code == 200
            answers += 1
            assert answers <= 6

        assert answers == 6
        progress = (
            await client.get(f"/api/run/{run_id}/progress", params={"player_id": player_id})
        ).json()
        assert progress == {"mastered_count": 2, "total": 2, "finished": True}

        summary = (
            await client.get(f"/api/run/{run_id}/summary", params={"player_id": player_id})
        ).json()
        assert sorted(c["front"] for c in summary["cards"]) == ["rouge 0", "rouge 1"]

        analytics = (await client.get(f"/api/decks/{deck_id}/analytics")).json()
        assert analytics["players"] == 1
        assert analytics["responses"] == 6
        assert [m["average_know_to_mastery"] for m in analytics["cards"]] == [3.0, 3.0]

    @pytest.mark.asyncio
    async def test_answer_reports_mastery_and_progress(self, client: AsyncClient) -> None:
        _, run = await _start_run(client, cards=3)
        joined = await _join(client, run["code"])
        next_card = (
            await client.get(
                f"/api/run/{joined['run_id']}/next", params={"player_id": joined["player_id"]}
            )
        ).json()
        url = f"/api/run/{joined['run_id']}/answer"
        body = {"player_id": joined["player_id"], "card_id": next_card["card"]["id"], "label": "KNOW"}

        results = [(await client.post(url, json=body)).json() for _ in range(3)]

        assert [r["mastered"] for r in results] == [False, False, True]
        assert results[-1]["progress"] == {"mastered_count": 1, "total": 3, "finished": False}

    @pytest.mark.asyncio
    async def test_ended_run_rejects_practice(self, client: AsyncClient) -> None:
        _, run = await _start_run(client)
        joined = await _join(client, run["code"])

        response = await client.post(f"/api/run/{run['id']}/end")
        assert response.json() == {"id": run["id"], "status": "ENDED"}

        response = await client.get(
            f"/api/run/{run['id']}/next", params={"player_id": joined["player_id"]}
        )
        assert response.status_code == 400
        assert response.json()["code"] == "RUN_INACTIVE"

        response = await client.post(
            f"/api/run/{run['id']}/answer",
            json={"player_id": joined["player_id"], "card_id": 1, "label": "REFRESHER"},
        )
        assert response.status_code == 400

        response = await client.post("/api/run/join", json={"code": run["code"]})
        assert response.status_code == 400


class TestErrors:
    @pytest.mark.asyncio
    async def test_unknown_code(self, client: AsyncClient) -> None:
        response = await client.post("/api/run/join", json={"code": "ZZZZZZ"})
        assert response.status_code == 400
        assert response.json() == {"detail": "Invalid or expired code.", "code": "RUN_NOT_FOUND"}

    @pytest.mark.asyncio
    async def test_unknown_run(self, client: AsyncClient) -> None:
        response = await client.get("/api/run/999/next", params={"player_id": 1})
        assert response.status_code == 400
        assert response.json()["code"] == "RUN_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_player_not_in_run(self, client: AsyncClient) -> None:
        _, run = await _start_run(client)
        response = await client.get(f"/api/run/{run['id']}/next", params={"player_id": 999})
        assert response.status_code == 404
        assert response.json()["code"] == "PLAYER_NOT_IN_RUN"

    @pytest.mark.asyncio
    async def test_unknown_card_state(self, client: AsyncClient) -> None:
        _, run = await _start_run(client)
        joined = await _join(client, run["code"])
        response = await client.post(
            f"/api/run/{run['id']}/answer",
            json={"player_id": joined["player_id"], "card_id": 999, "label": "KNOW"},
        )
        assert response.status_code == 404
        assert response.json()["code"] == "STATE_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_invalid_label(self, client: AsyncClient) -> None:
        _, run = await _start_run(client)
        joined = await _join(client, run["code"])
        response = await client.post(
            f"/api/run/{run['id']}/answer",
            json={"player_id": joined["player_id"], "card_id": 1, "label": "MAYBE"},
        )
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_progress_for_unknown_player(self, client: AsyncClient) -> None:
        _, run = await _start_run(client)
        response = await client.get(f"/api/run/{run['id']}/progress", params={"player_id": 999})
        assert response.status_code == 404
        assert response.json()["code"] == "PLAYER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_unpublished_deck(self, client: AsyncClient) -> None:
        deck = (await client.post("/api/decks", json={"title": "Draft"})).json()
        await client.post(f"/api/decks/{deck['id']}/cards", json={"front": "a", "back": "b"})
        response = await client.post(f"/api/decks/{deck['id']}/run")
        assert response.status_code == 400
        assert response.json()["code"] == "DECK_NOT_PUBLISHED"

    @pytest.mark.asyncio
    async def test_empty_deck(self, client: AsyncClient) -> None:
        deck = (await client.post("/api/decks", json={"title": "Empty"})).json()
        await client.post(f"/api/decks/{deck['id']}/publish", json={"is_published": True})
        response = await client.post(f"/api/decks/{deck['id']}/run")
        assert response.status_code == 400
        assert response.json()["code"] == "DECK_EMPTY"

    @pytest.mark.asyncio
    async def test_missing_deck(self, client: AsyncClient) -> None:
        response = await client.get("/api/decks/404/analytics")
        assert response.status_code == 404
        assert response.json()["code"] == "DECK_NOT_FOUND"


class TestDecks:
    @pytest.mark.asyncio
    async def test_create_and_publish(self, client: AsyncClient) -> None:
        response = await client.post("/api/decks", json={"title": "  Animals ", "language": "de"})
        assert response.status_code == 201
        deck = response.json()
        assert (deck["title"], deck["language"], deck["is_published"]) == ("Animals", "de", False)

        published = (
            await client.post(f"/api/decks/{deck['id']}/publish", json={"is_published": True})
        ).json()
        assert published["is_published"] is True

    @pytest.mark.asyncio
    async def test_card_image_passthrough(self, client: AsyncClient) -> None:
        deck = (await client.post("/api/decks", json={"title": "Animals"})).json()
        response = await client.post(
            f"/api/decks/{deck['id']}/cards",
            json={"front": "Hund", "back": "dog", "image_url": "https://img.example/dog.png"},
        )
        assert response.json()["image_url"] == "https://img.example/dog.png"

    @pytest.mark.asyncio
    async def test_blank_title_rejected(self, client: AsyncClient) -> None:
        response = await client.post("/api/decks", json={"title": ""})
        assert response.status_code == 422
