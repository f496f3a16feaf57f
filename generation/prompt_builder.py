"""
Prompt Builder

Pure functions: pipeline parameters → CompletionRequest payloads
(strict JSON schema + natural-language instructions).

Every generation prompt states the question count, type, category,
difficulty, target language, and requires a fact-checking source per item.
"""

import json
from typing import Any, Dict, List, Optional

from database.models import QuestionType
from generation.gpt_client import CompletionRequest
from generation.schemas import (
    WRONG_ANSWERS_PER_CHOICE,
    GenerateQuestionsRequest,
    ImportQuestionsRequest,
    Locale,
)


# ─── Schemas ───────────────────────────────────────────────────────────────────

def _correct_schema(question_type: QuestionType) -> Dict[str, Any]:
    if question_type == QuestionType.MAP:
        return {
            "type": "array",
            "items": {"type": "number"},
            "minItems": 2,
            "maxItems": 2,
            "description": "Coordinates of the answer as [latitude, longitude]",
        }
    return {"type": "string", "description": "The correct answer"}


def question_item_schema(question_type: QuestionType, with_source: bool = True) -> Dict[str, Any]:
    """JSON schema of one generated question (strict mode: every key required)."""
    properties: Dict[str, Any] = {
        "language": {"type": "string", "description": "Language code of the question (e.g. en, de, pl)"},
        "question": {"type": "string", "description": "The question text"},
        "correct": _correct_schema(question_type),
    }
    if question_type == QuestionType.CHOICE:
        properties["wrong"] = {
            "type": "array",
            "items": {"type": "string"},
            "minItems": WRONG_ANSWERS_PER_CHOICE,
            "maxItems": WRONG_ANSWERS_PER_CHOICE,
            "description": f"Exactly {WRONG_ANSWERS_PER_CHOICE} plausible incorrect answers",
        }
    if with_source:
        properties["source"] = {
            "type": "string",
            "description": "URL or reference (Wikipedia, Britannica, government site) confirming the answer",
        }
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


def questions_schema(question_type: QuestionType) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "questions": {"type": "array", "items": question_item_schema(question_type)},
        },
        "required": ["questions"],
        "additionalProperties": False,
    }


DUPLICATE_SCHEMA = {
    "type": "object",
    "properties": {
        "groups": {
            "type": "array",
            "description": "Each group lists the exact texts of questions with the same meaning",
            "items": {"type": "array", "items": {"type": "string"}},
        },
    },
    "required": ["groups"],
    "additionalProperties": False,
}

FACT_CHECK_SCHEMA = {
    "type": "object",
    "properties": {
        "isValid": {"type": "boolean"},
        "source": {"type": "string", "description": "URL of the page used to verify the answer"},
        "suggestion": {
            "type": ["string", "null"],
            "description": "Corrected answer or rewording when isValid is false, otherwise null",
        },
    },
    "required": ["isValid", "source", "suggestion"],
    "additionalProperties": False,
}


def translation_check_schema(question_type: QuestionType) -> Dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "isValid": {"type": "boolean"},
            "suggestions": {
                "type": "array",
                "description": "Improved translations when isValid is false, otherwise empty",
                "items": question_item_schema(question_type, with_source=False),
            },
        },
        "required": ["isValid", "suggestions"],
        "additionalProperties": False,
    }


# ─── Generation ────────────────────────────────────────────────────────────────

GENERATION_INSTRUCTIONS = """\
You are an expert trivia question writer for a multilingual quiz product.

RULES:
1. Every question must have exactly ONE unambiguous correct answer that is verifiable today
2. Each item must cite a reliable source (Wikipedia, Britannica, official or government websites); prefer direct links
3. Wrong answers must be plausible, of the same kind as the correct answer, and clearly wrong
4. Do NOT use "All of the above" or "None of the above"
5. Never repeat a question you already produced in this conversation
6. Write the question, the answers and nothing else in the requested language
7. For map questions the answer is a point: [latitude, longitude] in decimal degrees
"""


def _type_phrase(question_type: QuestionType) -> str:
    if question_type == QuestionType.MAP:
        return "map (answer is a location given as [latitude, longitude])"
    return f"multiple-choice (one correct answer and {WRONG_ANSWERS_PER_CHOICE} wrong answers)"


def build_generation_prompt(params: GenerateQuestionsRequest, category_name: str) -> str:
    return (
        f'Generate {params.count} {_type_phrase(params.type)} questions using the prompt: "{params.prompt}".\n'
        f'Each question must be in the "{category_name}" category, have a difficulty level of '
        f"{params.difficulty} on a 1-5 scale, and be in the \"{params.locale}\" language.\n"
        "Additionally, provide a reliable source for fact-checking each question. "
        "If possible, include a direct link."
    )


def build_generation_request(
    params: GenerateQuestionsRequest,
    category_name: str,
    model: str,
    previous_response_id: Optional[str] = None,
) -> CompletionRequest:
    """
    Fresh conversation: instructions + schema + prompt.
    Continued conversation: prompt + schema only; the handle carries the instructions.
    """
    return CompletionRequest(
        input=build_generation_prompt(params, category_name),
        schema_name="create_questions",
        json_schema=questions_schema(params.type),
        instructions=None if previous_response_id else GENERATION_INSTRUCTIONS,
        model=model,
        temperature=params.temperature,
        previous_response_id=previous_response_id,
    )


# ─── Boilerplate import ────────────────────────────────────────────────────────

IMPORT_INSTRUCTIONS = """\
You extract trivia questions from pasted text into a fixed structure.

RULES:
1. Keep every question found in the text, in the order it appears; do not invent new questions
2. Detect correctness markers: checkmarks (✓, ✔, ✅, +, *), bold or underlined options, and words such as
   "correct", "right", "true", "richtig", "correcto", "correct(e)", "правильно", "правильний", "poprawna", "doğru"
   versus "incorrect", "wrong", "false", "falsch", "incorrecto", "faux", "неправильно", "błędna", "yanlış"
3. When no option is marked, decide the correct answer from your own knowledge
4. If the text is not in the target language, translate the question and answers into it
5. Choice questions always get exactly 3 wrong answers: drop the least plausible extras, or write new
   plausible ones when the text has fewer
6. Cite a reliable source confirming each correct answer
"""


def build_import_request(params: ImportQuestionsRequest, category_name: str, model: str) -> CompletionRequest:
    prompt = (
        f'Target language: "{params.language}". Question type: {_type_phrase(params.type)}. '
        f'Category: "{category_name}".\n\n'
        f"TEXT:\n---\n{params.text}\n---"
    )
    return CompletionRequest(
        input=prompt,
        schema_name="extract_questions",
        json_schema=questions_schema(params.type),
        instructions=IMPORT_INSTRUCTIONS,
        model=model,
        temperature=0.2,
    )


# ─── Duplicate detection ──────────────────────────────────────────────────────

DUPLICATE_INSTRUCTIONS = """\
You find duplicate trivia questions.
Two questions are duplicates when they ask for the same fact, even if worded differently
or written in different languages. Questions about related but different facts are NOT duplicates.
Return only groups with two or more questions, and copy each question text exactly as given.
"""


def build_duplicate_request(entries: List[Dict[str, Any]], model: str) -> CompletionRequest:
    """entries: [{"index", "language", "question"}]"""
    listing = "\n".join(
        f'{e["index"]}. [{e["language"]}] {e["question"]}' for e in entries
    )
    return CompletionRequest(
        input=f"Group the questions whose meaning is equivalent:\n\n{listing}",
        schema_name="group_duplicates",
        json_schema=DUPLICATE_SCHEMA,
        instructions=DUPLICATE_INSTRUCTIONS,
        model=model,
        temperature=0,
    )


# ─── Validation ───────────────────────────────────────────────────────────────

FACT_CHECK_INSTRUCTIONS = """\
You are a meticulous trivia fact-checker. Search the web before answering.
A question is valid when the correct answer is true today, it is the only correct option,
and none of the wrong answers is also correct.
If it is not valid, put a corrected answer or rewording in "suggestion"; otherwise "suggestion" is null.
Always return the URL of the page you relied on in "source".
"""


def build_fact_check_request(question_type: QuestionType, locale: Locale, model: str) -> CompletionRequest:
    item: Dict[str, Any] = {
        "language": locale.language,
        "question": locale.question,
        "correct": list(locale.correct) if question_type == QuestionType.MAP else locale.correct,
    }
    if question_type == QuestionType.CHOICE:
        item["wrong"] = locale.wrong or []
    return CompletionRequest(
        input="Fact-check this question:\n" + json.dumps(item, ensure_ascii=False, indent=2),
        schema_name="fact_check",
        json_schema=FACT_CHECK_SCHEMA,
        instructions=FACT_CHECK_INSTRUCTIONS,
        model=model,
        web_search=True,
    )


TRANSLATION_CHECK_INSTRUCTIONS = """\
You review translations of trivia questions.
A translation is valid when it asks the same thing as the reference, keeps the same correct answer
and the same wrong answers, and reads naturally in the target language.
If it is not valid, return one or more improved translations in "suggestions"; otherwise return an empty list.
"""


def build_translation_check_request(
    question_type: QuestionType,
    reference: Locale,
    target: Locale,
    model: str,
) -> CompletionRequest:
    def _doc(loc: Locale) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"language": loc.language, "question": loc.question}
        doc["correct"] = list(loc.correct) if question_type == QuestionType.MAP else loc.correct
        if question_type == QuestionType.CHOICE:
            doc["wrong"] = loc.wrong or []
        return doc

    prompt = (
        "REFERENCE:\n" + json.dumps(_doc(reference), ensure_ascii=False, indent=2)
        + "\n\nTRANSLATION:\n" + json.dumps(_doc(target), ensure_ascii=False, indent=2)
    )
    return CompletionRequest(
        input=prompt,
        schema_name="check_translation",
        json_schema=translation_check_schema(question_type),
        instructions=TRANSLATION_CHECK_INSTRUCTIONS,
        model=model,
        temperature=0,
    )
