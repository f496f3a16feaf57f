import pytest

from database.models import Question
from services.errors import Conflict
from services.legacy_promotion import remap_locales, to_legacy_document


def _loc(language, text="q", **extra):
    doc = {"language": language, "question": text, "correct": "a", "wrong": ["b", "c", "d"], "is_valid": True}
    doc.update(extra)
    return doc


def test_uk_is_renamed_to_ua():
    projected = remap_locales([_loc("en"), _loc("uk", "питання")], "choice")

    assert [loc["language"] for loc in projected] == ["en", "ua"]
    assert projected[1]["question"] == "питання"


def test_renamed_copy_is_dropped_when_target_exists():
    projected = remap_locales([_loc("en", "base"), _loc("en-US", "us copy"), _loc("ua", "ua"), _loc("uk", "uk")], "choice")

    assert [(loc["language"], loc["question"]) for loc in projected] == [("en", "base"), ("ua", "ua")]


def test_en_us_becomes_en_when_no_en_exists():
    projected = remap_locales([_loc("de"), _loc("en-US", "us")], "choice")

    assert [loc["language"] for loc in projected] == ["de", "en"]


def test_sources_dropped_and_is_valid_renamed():
    projected = remap_locales([_loc("en", sources=["https://example.org"])], "choice")[0]

    assert "sources" not in projected
    assert projected["isValid"] is True
    assert "is_valid" not in projected


def test_map_locales_carry_no_wrong():
    projected = remap_locales([{"language": "en", "question": "Where?", "correct": [1.0, 2.0]}], "map")[0]

    assert "wrong" not in projected
    assert projected["correct"] == [1.0, 2.0]


def test_document_recomputes_required_languages():
    question = Question(
        id="3f1c2d3e-0000-4000-8000-000000000001",
        category_id=4,
        status="approved",
        type="choice",
        difficulty=2,
        required_languages=["en"],
        tags=["greece"],
        locales=[_loc("en"), _loc("uk"), _loc("en-US"), _loc("de")],
        is_valid=True,
    )

    document = to_legacy_document(question, 41)

    assert document["id"] == 41
    assert document["origin_id"] == question.id
    assert document["required_languages"] == ["en", "ua", "de"]
    assert document["tags"] == ["greece"]
    assert document["status"] == "approved"


@pytest.mark.asyncio
async def test_sql_store_round_trip(legacy_store):
    assert await legacy_store.find_max_key() == 0

    created = await legacy_store.upsert(5, {"origin_id": "x", "category_id": 1, "status": "approved", "type": "choice",
                                             "difficulty": 3, "locales": [], "required_languages": [], "tags": []})
    assert created is True
    assert await legacy_store.find_max_key() == 5
    assert (await legacy_store.find_by_origin("x"))["id"] == 5

    created = await legacy_store.upsert(5, {"origin_id": "x", "category_id": 1, "status": "rejected", "type": "choice",
                                             "difficulty": 3, "locales": [], "required_languages": [], "tags": []})
    assert created is False
    assert (await legacy_store.get(5))["status"] == "rejected"


@pytest.mark.asyncio
async def test_sql_store_insert_on_taken_key_is_conflict(legacy_store):
    doc = {"origin_id": "x", "category_id": 1, "status": "approved", "type": "choice", "difficulty": 3,
           "locales": [], "required_languages": [], "tags": []}
    await legacy_store.insert(1, doc)

    with pytest.raises(Conflict):
        await legacy_store.insert(1, dict(doc, origin_id="y"))
