"""
Service wiring for the routers.

Each collaborator is built once, on first use, so importing the app never
needs a live OpenAI key, DeepL key or Redis server. Tests swap these out
through app.dependency_overrides.
"""

from functools import lru_cache

from database.redis_client import get_redis
from generation.continuation_cache import ContinuationCache
from generation.duplicate_detector import DuplicateDetector
from generation.gpt_client import GptClient
from generation.question_generator import QuestionGenerator
from generation.usage_tracker import UsageMeter
from generation.validator import ValidationAgent
from services.legacy_promotion import SqlLegacyStore
from services.lifecycle import LifecycleCoordinator
from translation.deepl_client import DeepLClient
from translation.translator import TranslationOrchestrator


@lru_cache
def get_gpt() -> GptClient:
    return GptClient()


@lru_cache
def get_usage() -> UsageMeter:
    return UsageMeter()


@lru_cache
def get_cache() -> ContinuationCache:
    return ContinuationCache(get_redis())


@lru_cache
def get_generator() -> QuestionGenerator:
    return QuestionGenerator(get_gpt(), get_cache(), get_usage())


@lru_cache
def get_duplicate_detector() -> DuplicateDetector:
    return DuplicateDetector(get_gpt())


@lru_cache
def get_validator() -> ValidationAgent:
    return ValidationAgent(get_gpt())


@lru_cache
def get_translator() -> TranslationOrchestrator:
    return TranslationOrchestrator(DeepLClient(), get_usage())


@lru_cache
def get_lifecycle() -> LifecycleCoordinator:
    return LifecycleCoordinator(get_translator(), SqlLegacyStore())
