import pytest

from database.models import QuestionType
from generation.response_parser import build_questions, parse_locales
from generation.schemas import GeoPoint
from services.errors import ValidationFailed
from tests.factories import choice_item


def test_choice_items_become_reference_locales_with_sources():
    data = {"questions": [choice_item("Who taught Plato?"), choice_item("Who drank hemlock?")]}

    locales = parse_locales(data, QuestionType.CHOICE, "en")

    assert [loc.question for loc in locales] == ["Who taught Plato?", "Who drank hemlock?"]
    assert locales[0].wrong == ["Plato", "Aristotle", "Diogenes"]
    assert locales[0].sources == ["https://en.wikipedia.org/wiki/Socrates"]
    assert locales[0].is_valid is False


def test_map_item_gets_geopoint_and_no_wrong():
    data = {"questions": [{"language": "en", "question": "Where is Delphi?", "correct": [38.48, 22.50], "source": "x"}]}

    locale = parse_locales(data, QuestionType.MAP, "en")[0]

    assert locale.correct == GeoPoint(38.48, 22.50)
    assert locale.wrong is None


@pytest.mark.parametrize("wrong", [["a", "b"], ["a", "b", "c", "d"], []])
def test_choice_without_exactly_three_wrong_fails_closed(wrong):
    item = choice_item("Who taught Plato?")
    item["wrong"] = wrong
    data = {"questions": [choice_item("Fine one?"), item]}

    with pytest.raises(ValidationFailed) as excinfo:
        parse_locales(data, QuestionType.CHOICE, "en")
    assert excinfo.value.context["index"] == 1


def test_map_with_text_answer_fails_closed():
    data = {"questions": [{"language": "en", "question": "Where is Delphi?", "correct": "Greece", "source": "x"}]}

    with pytest.raises(ValidationFailed):
        parse_locales(data, QuestionType.MAP, "en")


def test_missing_question_list_fails():
    with pytest.raises(ValidationFailed):
        parse_locales({"items": []}, QuestionType.CHOICE, "en")


def test_extra_items_are_trimmed_to_requested_count():
    data = {"questions": [choice_item(f"Question {i}?") for i in range(4)]}

    locales = parse_locales(data, QuestionType.CHOICE, "en", expected_count=2)

    assert len(locales) == 2


def test_build_questions_sets_generated_defaults():
    locales = parse_locales({"questions": [choice_item("Who taught Plato?")]}, QuestionType.CHOICE, "en")

    question = build_questions(locales, 3, QuestionType.CHOICE, 4, "en")[0]

    assert question.status == "generated"
    assert question.required_languages == ["en"]
    assert question.is_valid is False
    assert question.difficulty == 4
    assert len(question.id) == 36
    assert question.locales[0]["language"] == "en"
    assert question.locales[0]["is_valid"] is False
