"""
Trivia Question Pipeline API: Main Application

Generation, duplicate detection, validation, translation and promotion of
trivia questions into the legacy store read by the quiz product.
"""

from dotenv import load_dotenv
load_dotenv()

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from database.database import Base, LegacyBase, engine, legacy_engine
from database import legacy_models, models  # noqa: F401  (register tables)
from routers import categories, questions, stats
from services.errors import (
    Conflict,
    NotFound,
    PartialBatchFailure,
    PipelineError,
    UpstreamServiceError,
    ValidationFailed,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")
log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup: create tables in both stores."""
    Base.metadata.create_all(bind=engine)
    LegacyBase.metadata.create_all(bind=legacy_engine)
    yield


app = FastAPI(
    title="Trivia Question Pipeline API",
    description="LLM question generation, quality gates, DeepL translation and legacy promotion",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ─── Routers ───────────────────────────────────────────────────────────────────

app.include_router(questions.router)       # /questions/*
app.include_router(categories.router)      # /categories/*
app.include_router(stats.router)           # /stats/*


# ─── Error mapping ─────────────────────────────────────────────────────────────

def _body(error: PipelineError) -> dict:
    return {
        "error": type(error).__name__,
        "detail": error.message,
        "operation": error.operation,
        "context": {k: str(v) for k, v in error.context.items()},
    }


@app.exception_handler(PartialBatchFailure)
async def partial_batch_handler(request: Request, error: PartialBatchFailure):
    body = _body(error)
    body["items"] = [item.model_dump(mode="json") for item in error.outcome.items]
    return JSONResponse(status_code=207, content=body)


@app.exception_handler(PipelineError)
async def pipeline_error_handler(request: Request, error: PipelineError):
    if isinstance(error, NotFound):
        code = 404
    elif isinstance(error, Conflict):
        code = 409
    elif isinstance(error, ValidationFailed):
        code = 422
    elif isinstance(error, UpstreamServiceError):
        code = 502
    else:
        code = 500
    log.warning(f"[API] {request.method} {request.url.path} → {code}: {error}")
    return JSONResponse(status_code=code, content=_body(error))


@app.get("/")
def root():
    return {
        "name": "Trivia Question Pipeline API",
        "version": "1.0.0",
        "endpoints": {
            "docs": "/docs",
            "questions": "/questions",
            "categories": "/categories",
            "stats": "/stats",
        },
    }


@app.get("/health")
def health():
    return {"status": "ok"}
