from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from database import crud
from database.models import Question, QuestionGenerationLog, QuestionType
from generation import gpt_client
from generation.gpt_client import GptClient
from generation.question_generator import QuestionGenerator
from generation.schemas import GenerateQuestionsRequest, ImportQuestionsRequest
from services.errors import GenerationFailed, NotFound, UpstreamServiceError
from tests.factories import choice_item, completion


def _request(**overrides):
    values = dict(prompt="famous philosophers", count=1, category=1, required_languages=["en"])
    values.update(overrides)
    return GenerateQuestionsRequest(**values)


@pytest.fixture
def generator(gpt, cache, usage):
    return QuestionGenerator(gpt, cache, usage)


@pytest.mark.asyncio
async def test_generates_one_choice_question_in_philosophy(db, category, gpt, generator):
    gpt.complete.return_value = completion({"questions": [choice_item("Who taught Plato?")]})

    result = await generator.generate(db, _request())

    assert len(result.questions) == 1
    question = result.questions[0]
    assert question.status.value == "generated"
    assert question.locales[0].language == "en"
    assert len(question.locales[0].wrong) == 3
    assert question.required_languages == ["en"]
    assert result.total_tokens_used == 120
    assert result.completion_tokens_used == 80
    assert db.query(Question).count() == 1


@pytest.mark.asyncio
async def test_usage_links_category_questions_tokens_and_prompt(db, category, gpt, generator):
    gpt.complete.return_value = completion({"questions": [choice_item("Who taught Plato?")]})

    result = await generator.generate(db, _request())

    entry = db.query(QuestionGenerationLog).one()
    assert entry.category_id == 1
    assert entry.question_ids == [result.questions[0].id]
    assert entry.tokens_used == 120
    assert "famous philosophers" in entry.request_prompt


@pytest.mark.asyncio
async def test_second_call_continues_the_conversation(db, category, gpt, cache, generator):
    gpt.complete.side_effect = [
        completion({"questions": [choice_item("Who taught Plato?")]}, total_tokens=300, response_id="resp_1"),
        completion({"questions": [choice_item("Who taught Aristotle?", correct="Plato")]}, total_tokens=200, response_id="resp_2"),
    ]

    await generator.generate(db, _request())
    await generator.generate(db, _request())

    first, second = [call.args[0] for call in gpt.complete.call_args_list]
    assert first.instructions is not None and first.previous_response_id is None
    assert second.instructions is None and second.previous_response_id == "resp_1"
    handle = cache.get(1)
    assert handle.conversation_handle_id == "resp_2"
    assert handle.tokens_consumed == 500


@pytest.mark.asyncio
async def test_conversation_restarts_after_token_ceiling(db, category, gpt, cache, generator):
    gpt.complete.side_effect = [
        completion({"questions": [choice_item("Q1?")]}, total_tokens=900, response_id="resp_1"),
        completion({"questions": [choice_item("Q2?")]}, total_tokens=200, response_id="resp_2"),
        completion({"questions": [choice_item("Q3?")]}, total_tokens=100, response_id="resp_3"),
    ]

    await generator.generate(db, _request())
    await generator.generate(db, _request())   # 1100 > 1000: retired
    await generator.generate(db, _request())

    third = gpt.complete.call_args_list[2].args[0]
    assert third.previous_response_id is None
    assert third.instructions is not None


@pytest.mark.asyncio
async def test_upstream_failure_evicts_cache_and_raises_generation_failed(db, category, gpt, cache, generator):
    cache.set(1, "resp_old", 100)
    gpt.complete.side_effect = UpstreamServiceError("boom", "generate_questions")

    with pytest.raises(GenerationFailed) as excinfo:
        await generator.generate(db, _request())

    assert isinstance(excinfo.value, UpstreamServiceError)
    assert cache.get(1) is None
    assert db.query(Question).count() == 0
    assert db.query(QuestionGenerationLog).count() == 0


@pytest.mark.asyncio
async def test_malformed_batch_persists_nothing_but_records_billed_usage(db, category, gpt, cache, generator):
    bad = choice_item("Who taught Plato?")
    bad["wrong"] = ["Aristotle"]
    gpt.complete.return_value = completion({"questions": [bad]}, total_tokens=90)

    with pytest.raises(GenerationFailed):
        await generator.generate(db, _request())

    assert db.query(Question).count() == 0
    entry = db.query(QuestionGenerationLog).one()
    assert entry.question_ids == []
    assert entry.tokens_used == 90
    assert cache.get(1) is None


@pytest.mark.asyncio
async def test_unknown_category_is_not_found(db, gpt, generator):
    with pytest.raises(NotFound):
        await generator.generate(db, _request(category=99))
    gpt.complete.assert_not_called()


@pytest.mark.asyncio
async def test_category_display_name_follows_language(db, category, gpt, generator):
    gpt.complete.return_value = completion({"questions": [choice_item("Wer war Platons Lehrer?", language="de")]})

    await generator.generate(db, _request(required_languages=["de"]))

    sent = gpt.complete.call_args.args[0]
    assert '"Philosophie" category' in sent.input


@pytest.mark.asyncio
async def test_import_keeps_three_wrong_answers_and_no_continuation(db, category, gpt, cache, generator):
    gpt.complete.return_value = completion({"questions": [choice_item("Who wrote the Republic?", correct="Plato")]})

    result = await generator.import_questions(
        db, ImportQuestionsRequest(text="Who wrote the Republic? Plato (correct), Kant", language="en", category=1)
    )

    assert len(result.questions[0].locales[0].wrong) == 3
    assert gpt.complete.call_args.args[0].previous_response_id is None
    assert cache.get(1) is None


@pytest.mark.asyncio
async def test_map_generation(db, category, gpt, generator):
    gpt.complete.return_value = completion(
        {"questions": [{"language": "en", "question": "Where is the Parthenon?", "correct": [37.9715, 23.7257], "source": "x"}]}
    )

    result = await generator.generate(db, _request(type=QuestionType.MAP))

    locale = result.questions[0].locales[0]
    assert tuple(locale.correct) == (37.9715, 23.7257)
    assert locale.wrong is None


@pytest.mark.asyncio
async def test_storage_failure_still_records_billed_usage(db, category, gpt, cache, generator):
    cache.set(1, "resp_old", 100)
    gpt.complete.return_value = completion({"questions": [choice_item("Who taught Plato?")]}, total_tokens=500)

    with patch.object(crud, "add_questions", side_effect=OperationalError("INSERT", {}, Exception("disk full"))):
        with pytest.raises(GenerationFailed):
            await generator.generate(db, _request())

    assert db.query(Question).count() == 0
    entry = db.query(QuestionGenerationLog).one()
    assert entry.question_ids == []
    assert entry.tokens_used == 500
    assert cache.get(1) is None


@pytest.mark.asyncio
async def test_import_storage_failure_still_records_billed_usage(db, category, gpt, generator):
    gpt.complete.return_value = completion({"questions": [choice_item("Who wrote the Republic?", correct="Plato")]},
                                           total_tokens=70)

    with patch.object(crud, "add_questions", side_effect=OperationalError("INSERT", {}, Exception("disk full"))):
        with pytest.raises(GenerationFailed):
            await generator.import_questions(
                db, ImportQuestionsRequest(text="Who wrote the Republic? Plato", language="en", category=1)
            )

    entry = db.query(QuestionGenerationLog).one()
    assert entry.question_ids == [] and entry.tokens_used == 70


@pytest.mark.asyncio
async def test_missing_completion_key_evicts_the_conversation(db, category, cache, usage, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    monkeypatch.setattr(gpt_client, "_client", None)
    cache.set(1, "resp_old", 100)

    with pytest.raises(GenerationFailed):
        await QuestionGenerator(GptClient(), cache, usage).generate(db, _request())

    assert cache.get(1) is None
    assert db.query(QuestionGenerationLog).count() == 0
