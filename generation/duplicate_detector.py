"""
Step 2: Duplicate Detection

Two passes over every question of a category, merged into disjoint clusters:
  1. exact - same canonical-language text after strip + casefold
  2. semantic - the completion service groups questions with equivalent meaning;
                groups come back as texts and are resolved to ids by exact match
                against each question's reference locale

Output is deterministic for unchanged input: ids sorted within a group,
groups sorted by their first id.
"""

import logging
import os
from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from database import crud
from database.models import Question
from generation.gpt_client import GPT_MODEL, GptClient
from generation.prompt_builder import build_duplicate_request
from generation.schemas import DuplicateReport, QuestionOut, locales_of
from services.errors import PipelineError, ValidationFailed, describe

log = logging.getLogger("generation.pipeline")

DUPLICATE_CANONICAL_LANGUAGE = os.getenv("DUPLICATE_CANONICAL_LANGUAGE", "en")


def normalize_text(text: str) -> str:
    return " ".join(text.split()).casefold()


# ─── Union-find ────────────────────────────────────────────────────────────────

class _DisjointSets:
    def __init__(self):
        self.parent: Dict[str, str] = {}

    def find(self, item: str) -> str:
        self.parent.setdefault(item, item)
        root = item
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[item] != root:
            self.parent[item], item = root, self.parent[item]
        return root

    def union(self, a: str, b: str) -> None:
        ra, rb = self.find(a), self.find(b)
        if ra != rb:
            # smaller id wins so the structure does not depend on input order
            if rb < ra:
                ra, rb = rb, ra
            self.parent[rb] = ra

    def groups(self) -> List[List[str]]:
        members: Dict[str, List[str]] = defaultdict(list)
        for item in list(self.parent):
            members[self.find(item)].append(item)
        clusters = [sorted(ids) for ids in members.values() if len(ids) > 1]
        return sorted(clusters)


def merge_groups(*group_sets: Iterable[Iterable[str]]) -> List[List[str]]:
    """Union of overlapping groups; singletons are dropped."""
    sets = _DisjointSets()
    for groups in group_sets:
        for group in groups:
            ids = list(dict.fromkeys(group))
            for item in ids:
                sets.find(item)
            for other in ids[1:]:
                sets.union(ids[0], other)
    return sets.groups()


# ─── Passes ────────────────────────────────────────────────────────────────────

def exact_groups(questions: List[Question], language: str = DUPLICATE_CANONICAL_LANGUAGE) -> List[List[str]]:
    """Ids sharing the same normalized text in `language`; questions without that locale are skipped."""
    by_text: Dict[str, List[str]] = defaultdict(list)
    for question in questions:
        for locale in question.locales or []:
            if locale.get("language") == language and locale.get("question"):
                by_text[normalize_text(locale["question"])].append(question.id)
                break
    return [ids for ids in by_text.values() if len(ids) > 1]


class DuplicateDetector:
    def __init__(self, gpt: GptClient, model: Optional[str] = None):
        self.gpt = gpt
        self.model = model or GPT_MODEL

    async def semantic_groups(self, questions: List[Question]) -> List[List[str]]:
        if len(questions) < 2:
            return []

        entries = []
        ids_by_text: Dict[str, List[str]] = defaultdict(list)
        for index, question in enumerate(questions):
            locales = locales_of(question)
            if not locales:
                continue
            reference = locales[0]
            entries.append({"index": index, "language": reference.language, "question": reference.question})
            ids_by_text[reference.question.strip()].append(question.id)

        result = await self.gpt.complete(build_duplicate_request(entries, self.model), "detect_duplicates")
        raw_groups = result.data.get("groups")
        if not isinstance(raw_groups, list) or not all(isinstance(g, list) for g in raw_groups):
            raise ValidationFailed("duplicate grouping has an unexpected shape", "detect_duplicates")

        groups: List[List[str]] = []
        unresolved = 0
        for raw in raw_groups:
            ids: List[str] = []
            for text in raw:
                matched = ids_by_text.get(str(text).strip())
                if matched:
                    ids.extend(matched)
                else:
                    unresolved += 1
            if len(set(ids)) > 1:
                groups.append(ids)
        if unresolved:
            log.warning(f"[DUP] {unresolved} grouped texts did not match any question and were ignored")
        return groups

    async def detect(self, db: Session, category_id: int) -> DuplicateReport:
        """
        Raises:
            NotFound:             unknown category
            UpstreamServiceError: the semantic pass failed
        """
        crud.get_category_or_404(db, category_id, "detect_duplicates")
        questions = crud.get_questions_by_category(db, category_id)

        exact = exact_groups(questions)
        try:
            semantic = await self.semantic_groups(questions)
        except PipelineError as e:
            log.error(f"[DUP] category={category_id} semantic pass failed: {describe(e)}")
            raise

        duplicates = merge_groups(exact, semantic)
        log.info(
            f"[DUP] category={category_id} questions={len(questions)} exact={len(exact)} "
            f"semantic={len(semantic)} merged={len(duplicates)}"
        )
        return DuplicateReport(
            duplicates=duplicates,
            questions=[QuestionOut.model_validate(q) for q in questions],
        )
