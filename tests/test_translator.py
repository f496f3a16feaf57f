import pytest

from database.models import TranslationUsageLog
from services.errors import Conflict, NotFound, UpstreamServiceError
from tests.factories import deepl_client, make_question
from translation.translator import TranslationOrchestrator


@pytest.fixture
def translator(deepl, usage):
    return TranslationOrchestrator(deepl, usage)


@pytest.mark.asyncio
async def test_choice_translation_covers_question_wrong_and_correct(db, category, translator):
    question = make_question(db, text="Who taught Plato?")

    result = await translator.translate(db, question.id, "de")

    assert result.replaced is False
    assert result.locale.question == "[DE] Who taught Plato?"
    assert result.locale.correct == "[DE] Socrates"
    assert result.locale.wrong == ["[DE] Aristotle", "[DE] Epicurus", "[DE] Zeno"]
    assert result.billed_characters == len("Who taught Plato?") + len("Socrates") + len("AristotleEpicurusZeno")
    db.refresh(question)
    assert [loc["language"] for loc in question.locales] == ["en", "de"]


@pytest.mark.asyncio
async def test_each_string_is_logged(db, category, translator):
    question = make_question(db, text="Who taught Plato?")

    await translator.translate(db, question.id, "fr")

    logs = db.query(TranslationUsageLog).order_by(TranslationUsageLog.id).all()
    assert len(logs) == 5
    assert {log.subject_id for log in logs} == {question.id}
    assert logs[0].request_text == "Who taught Plato?"
    assert logs[0].result_text == "[FR] Who taught Plato?"
    assert logs[0].source_language == "en" and logs[0].target_language == "fr"


@pytest.mark.asyncio
async def test_translating_twice_replaces_the_locale(db, category, translator):
    question = make_question(db)

    await translator.translate(db, question.id, "de")
    second = await translator.translate(db, question.id, "de")

    assert second.replaced is True
    db.refresh(question)
    assert len(question.locales) == 2
    assert [loc["language"] for loc in question.locales] == ["en", "de"]


@pytest.mark.asyncio
async def test_map_translates_only_the_question_text(db, category, usage):
    calls = []
    translator = TranslationOrchestrator(deepl_client(calls=calls), usage)
    question = make_question(db, type="map", text="Where is the Eiffel Tower?")

    result = await translator.translate(db, question.id, "it")

    assert calls[0]["text"] == ["Where is the Eiffel Tower?"]
    assert tuple(result.locale.correct) == (48.8584, 2.2945)
    assert result.locale.wrong is None
    db.refresh(question)
    assert question.locales[1]["correct"] == [48.8584, 2.2945]
    assert "wrong" not in question.locales[1]


@pytest.mark.asyncio
async def test_reference_language_is_a_conflict(db, category, translator):
    question = make_question(db)

    with pytest.raises(Conflict):
        await translator.translate(db, question.id, "en")


@pytest.mark.asyncio
async def test_failed_translation_leaves_question_and_log_untouched(db, category, usage):
    translator = TranslationOrchestrator(deepl_client(fail_targets=["DE"]), usage)
    question = make_question(db)

    with pytest.raises(UpstreamServiceError):
        await translator.translate(db, question.id, "de")

    db.refresh(question)
    assert len(question.locales) == 1
    assert db.query(TranslationUsageLog).count() == 0


@pytest.mark.asyncio
async def test_unknown_question(db, translator):
    with pytest.raises(NotFound):
        await translator.translate(db, "missing", "de")


@pytest.mark.asyncio
async def test_fan_out_reports_failures_per_locale(db, category, usage):
    translator = TranslationOrchestrator(deepl_client(fail_targets=["PL"]), usage)
    question = make_question(db)

    outcomes = await translator.translate_many_locales(db, question, ["en", "de", "pl", "en-US"])

    assert [(o.language, o.ok) for o in outcomes] == [("de", True), ("pl", False), ("en-US", True)]
    db.refresh(question)
    assert [loc["language"] for loc in question.locales] == ["en", "de", "en-US"]


@pytest.mark.asyncio
async def test_category_name_translation_replaces_and_adds_display_names(db, category, usage):
    translator = TranslationOrchestrator(deepl_client(fail_targets=["FR"]), usage)

    result = await translator.translate_category(db, category.id, ["de", "fr", "it"])

    assert [(o.language, o.ok) for o in result.translation_results] == [("de", True), ("fr", False), ("it", True)]
    db.refresh(category)
    assert category.locales == [
        {"language": "de", "value": "[DE] Philosophy"},
        {"language": "it", "value": "[IT] Philosophy"},
    ]
    assert category.display_name("it") == "[IT] Philosophy"
    logs = db.query(TranslationUsageLog).all()
    assert {log.subject_id for log in logs} == {"category:1"}
    assert sum(log.characters_used for log in logs) == 2 * len("Philosophy")


@pytest.mark.asyncio
async def test_category_translation_with_no_success_changes_nothing(db, category, usage):
    translator = TranslationOrchestrator(deepl_client(fail_targets=["DE", "FR"]), usage)

    with pytest.raises(UpstreamServiceError):
        await translator.translate_category(db, category.id, ["de", "fr"])

    db.refresh(category)
    assert category.locales == [{"language": "de", "value": "Philosophie"}]
    assert db.query(TranslationUsageLog).count() == 0


@pytest.mark.asyncio
async def test_category_source_language_is_skipped(db, category, usage):
    calls = []
    translator = TranslationOrchestrator(deepl_client(calls=calls), usage)

    result = await translator.translate_category(db, category.id, ["en", "pl"], source_language="en")

    assert [o.language for o in result.translation_results] == ["pl"]
    assert calls[0]["source_lang"] == "EN"
    assert calls[0]["text"] == ["Philosophy"]


@pytest.mark.asyncio
async def test_unknown_category(db, translator):
    with pytest.raises(NotFound):
        await translator.translate_category(db, 99, ["de"])
