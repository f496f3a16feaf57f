import pytest
from fastapi.testclient import TestClient

from database.database import get_db
from database.models import QuestionStatus
from generation.duplicate_detector import DuplicateDetector
from generation.question_generator import QuestionGenerator
from generation.validator import ValidationAgent
from routers import deps
from services.errors import UpstreamServiceError
from services.lifecycle import LifecycleCoordinator
from tests.factories import choice_item, completion, deepl_client, make_question
from translation.translator import TranslationOrchestrator
from trivia_api import app


@pytest.fixture
def client(session_factory, gpt, cache, usage, legacy_store):
    def _db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    translator = TranslationOrchestrator(deepl_client(fail_targets=["TR"]), usage)
    app.dependency_overrides.update({
        get_db: _db,
        deps.get_usage: lambda: usage,
        deps.get_generator: lambda: QuestionGenerator(gpt, cache, usage),
        deps.get_duplicate_detector: lambda: DuplicateDetector(gpt),
        deps.get_validator: lambda: ValidationAgent(gpt),
        deps.get_translator: lambda: translator,
        deps.get_lifecycle: lambda: LifecycleCoordinator(translator, legacy_store),
    })
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_generate_then_list_and_get(client, db, category, gpt):
    gpt.complete.return_value = completion({"questions": [choice_item("Who taught Plato?")]})

    response = client.post(
        "/questions/generate",
        json={"prompt": "philosophers", "count": 1, "category": 1, "required_languages": ["en"]},
    )

    assert response.status_code == 200
    question = response.json()["questions"][0]
    assert question["status"] == "generated"
    assert len(question["locales"][0]["wrong"]) == 3

    listing = client.get("/questions", params={"status": "generated", "title": "PLATO"}).json()
    assert listing["total"] == 1 and listing["total_pages"] == 1
    assert client.get(f"/questions/{question['id']}").json()["id"] == question["id"]


def test_generation_failure_maps_to_bad_gateway(client, category, gpt):
    gpt.complete.side_effect = UpstreamServiceError("down", "generate_questions")

    response = client.post(
        "/questions/generate",
        json={"prompt": "philosophers", "count": 1, "category": 1, "required_languages": ["en"]},
    )

    assert response.status_code == 502
    assert response.json()["error"] == "GenerationFailed"


def test_unknown_question_is_404(client):
    response = client.get("/questions/does-not-exist")

    assert response.status_code == 404
    assert response.json()["error"] == "NotFound"


def test_confirm_reports_failed_locale_and_keeps_status(client, db, category):
    question = make_question(db)

    response = client.post(f"/questions/{question.id}/confirm")

    body = response.json()
    assert response.status_code == 200
    assert body["status"] == "in_progress"
    failed = [r["language"] for r in body["translation_results"] if not r["ok"]]
    assert failed == ["tr"]


def test_reject_many_with_a_missing_id_is_multi_status(client, db, category):
    question = make_question(db)

    response = client.post("/questions/reject-many", json={"ids": [question.id, "missing"]})

    assert response.status_code == 207
    items = {item["id"]: item for item in response.json()["items"]}
    assert items[question.id]["ok"] is True
    assert items["missing"]["error_kind"] == "NotFound"


def test_promote_twice_conflicts_only_for_wrong_state(client, db, category):
    question = make_question(db)

    assert client.post(f"/questions/{question.id}/promote").status_code == 409

    client.post(f"/questions/{question.id}/confirm")
    first = client.post(f"/questions/{question.id}/promote").json()
    second = client.post(f"/questions/{question.id}/promote").json()
    assert first["main_db_id"] == second["main_db_id"] == 1
    assert second["created"] is False


def test_delete_last_locale_is_conflict(client, db, category):
    question = make_question(db)

    response = client.delete(f"/questions/{question.id}/locales/en")

    assert response.status_code == 409


def test_translate_and_delete_locale(client, db, category):
    question = make_question(db, text="Who taught Plato?")

    translated = client.post(f"/questions/{question.id}/translate", json={"language": "de"}).json()
    assert translated["locale"]["question"] == "[DE] Who taught Plato?"

    remaining = client.delete(f"/questions/{question.id}/locales/de").json()
    assert [loc["language"] for loc in remaining["locales"]] == ["en"]


def test_category_creation_and_cache_clear(client, category, cache):
    response = client.post("/categories", json={"name": "Ancient Philosophy", "parent_id": 1})

    assert response.status_code == 201
    assert response.json()["ancestors"] == [1]
    assert client.post("/categories", json={"name": "Ancient Philosophy"}).status_code == 409

    cache.set(1, "resp_1", 10)
    assert client.delete("/categories/1/cache").json() == {"category_id": 1, "cleared": True}
    assert cache.get(1) is None


def test_stats_endpoints(client, db, category):
    question = make_question(db)
    client.post(f"/questions/{question.id}/translate", json={"language": "de"})

    totals = client.get("/stats/translation-logs/totals").json()
    assert totals["total_requests"] == 5

    page = client.get("/stats/translation-logs", params={"limit": 2}).json()
    assert len(page["logs"]) == 2 and page["total_pages"] == 3

    assert client.delete("/stats/translation-logs").json() == {"deleted": 5}


def test_duplicates_endpoint(client, db, category, gpt):
    make_question(db, text="Who taught Plato?")
    make_question(db, text="who taught plato?")
    gpt.complete.return_value = completion({"groups": []})

    body = client.get("/questions/duplicates/1").json()

    assert len(body["duplicates"]) == 1
    assert len(body["duplicates"][0]) == 2


def test_update_moves_a_question_into_review(client, db, category):
    question = make_question(db, status=QuestionStatus.IN_PROGRESS)

    response = client.put(f"/questions/{question.id}", json={"status": "proof_reading", "tags": ["greece"]})

    assert response.status_code == 200
    assert response.json()["status"] == "proof_reading"
    assert response.json()["tags"] == ["greece"]


def test_update_status_conflicts_and_empty_locales_are_refused(client, db, category):
    question = make_question(db)

    assert client.put(f"/questions/{question.id}", json={"status": "pending"}).status_code == 409
    assert client.put(f"/questions/{question.id}", json={"locales": []}).status_code == 422
    assert client.put("/questions/missing", json={"tags": []}).status_code == 404


def test_category_translation_endpoint(client, category):
    response = client.post("/categories/1/translate", json={"languages": ["es"], "source_language": "en"})

    assert response.status_code == 200
    assert response.json()["locales"][-1] == {"language": "es", "value": "[ES] Philosophy"}
