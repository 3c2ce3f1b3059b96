import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import Depends, FastAPI, HTTPException
from pydantic import BaseModel, Field

from cadence.application.factory import Engine, build_engine
from cadence.application.quiz_rounds import result_from_counts
from cadence.application.utils.time import format_interval, utcnow
from cadence.consts import VERSION
from cadence.domain.errors import (
    CadenceError,
    InvalidRatingError,
    InvalidTransitionError,
    NotFoundError,
    SessionExhaustedError,
)
from cadence.domain.lessons.models import LessonProgress, LessonStatus, TransitionResult
from cadence.domain.memory.models import CardMemoryState

# Setup logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("cadence.server")

_engine: Engine | None = None


def get_engine() -> Engine:
    """Build the engine from resolved configuration on first use."""
    global _engine
    if _engine is None:
        from cadence.application.config import resolve_config

        _engine = build_engine(resolve_config())
    return _engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info(f"Cadence Server v{VERSION} starting up...")
    yield
    # Shutdown
    logger.info("Cadence Server shutting down...")


app = FastAPI(
    title="Cadence Server",
    description="Scheduling and lesson mastery engine.",
    version=VERSION,
    lifespan=lifespan,
)


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


start_time = time.time()


def _http_error(e: CadenceError) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, InvalidRatingError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, (InvalidTransitionError, SessionExhaustedError)):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def _card_payload(engine: Engine, state: CardMemoryState) -> dict:
    level = engine.scheduler.classifier.classify(state)
    return {
        "card_id": state.card_id,
        "state": state.state.value,
        "stability": state.stability,
        "difficulty": state.difficulty,
        "due_at": state.due_at.isoformat(),
        "last_reviewed_at": state.last_reviewed_at.isoformat() if state.last_reviewed_at else None,
        "reps": state.reps,
        "lapses": state.lapses,
        "mastery": level.label,
        "mastery_score": engine.scheduler.classifier.score(level),
        "interval": (
            format_interval(state.scheduled_interval) if state.scheduled_interval else None
        ),
    }


def _progress_payload(progress: LessonProgress) -> dict:
    return {
        "lesson_id": progress.lesson_id,
        "status": progress.status.value,
        "completed_at": progress.completed_at.isoformat() if progress.completed_at else None,
        "started_at": progress.started_at.isoformat() if progress.started_at else None,
        "sections_read": sorted(progress.sections_read),
        "review_locked": progress.review_locked,
        "quiz_attempts": progress.quiz_attempts,
        "best_quiz_score": progress.best_quiz_score,
        "quiz_passed": progress.quiz_passed,
    }


def _transition_payload(result: TransitionResult) -> dict:
    return {
        "lesson_id": result.lesson_id,
        "previous": result.previous.value,
        "current": result.current.value,
        "changed": result.changed,
        "reason": result.reason,
    }


@app.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Simple health check to verify server is reachable.
    """
    return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)


@app.get("/version")
async def get_version():
    return {"version": VERSION}


# ---------------------------------------------------------------------------
# Cards
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    card_ids: list[str]
    now: datetime | None = None


@app.post("/cards")
async def register_cards(req: RegisterRequest, engine: Engine = Depends(get_engine)):
    created = await engine.scheduler.register_cards(req.card_ids, req.now or utcnow())
    return {"created": [s.card_id for s in created]}


@app.get("/cards/due")
async def get_due_cards(
    limit: int = 50, now: datetime | None = None, engine: Engine = Depends(get_engine)
):
    due = await engine.scheduler.due_cards(now or utcnow(), limit=limit)
    return [_card_payload(engine, s) for s in due]


@app.get("/cards/count-due")
async def count_due(now: datetime | None = None, engine: Engine = Depends(get_engine)):
    return {"count": await engine.scheduler.count_due(now or utcnow())}


@app.get("/cards/{card_id}")
async def get_card(card_id: str, engine: Engine = Depends(get_engine)):
    try:
        state = await engine.scheduler.get_state(card_id)
    except CadenceError as e:
        raise _http_error(e) from e
    return _card_payload(engine, state)


@app.get("/cards/{card_id}/preview")
async def preview_card(
    card_id: str, now: datetime | None = None, engine: Engine = Depends(get_engine)
):
    try:
        labels = await engine.scheduler.preview(card_id, now or utcnow())
    except CadenceError as e:
        raise _http_error(e) from e
    return {rating.name.lower(): label for rating, label in labels.items()}


@app.get("/cards/{card_id}/history")
async def card_history(card_id: str, engine: Engine = Depends(get_engine)):
    entries = await engine.scheduler.review_history([card_id])
    return [
        {
            "log_id": e.log_id,
            "rating": int(e.rating),
            "reviewed_at": e.reviewed_at.isoformat(),
            "state_before": e.state_before.value,
            "elapsed_days": e.elapsed_days,
            "scheduled_days": e.scheduled_days,
            "context": e.context,
        }
        for e in entries
    ]


class ReviewRequest(BaseModel):
    card_id: str
    rating: int
    context: str = "review-session"
    now: datetime | None = None


@app.post("/review")
async def submit_review(req: ReviewRequest, engine: Engine = Depends(get_engine)):
    """
    Commit one rating and return the rescheduled card.

    Lessons containing the card are re-evaluated afterwards; any status they
    changed to is listed under lesson_changes.
    """
    logger.info(f"Review requested via API: {req.card_id} rating={req.rating}")
    now = req.now or utcnow()
    try:
        state = await engine.scheduler.apply_rating(
            req.card_id, req.rating, now, context=req.context
        )
        changes = await engine.gate.card_reviewed(req.card_id, now)
    except CadenceError as e:
        raise _http_error(e) from e
    except Exception as e:
        logger.error(f"Review failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e)) from e
    return {
        **_card_payload(engine, state),
        "lesson_changes": [_transition_payload(r) for r in changes],
    }


# ---------------------------------------------------------------------------
# Lessons
# ---------------------------------------------------------------------------


class TimedRequest(BaseModel):
    now: datetime | None = None


class QuizResultRequest(BaseModel):
    correct: int = Field(ge=0)
    total: int = Field(ge=0)
    rounds_played: int = Field(default=1, ge=1)
    now: datetime | None = None


class TransitionRequest(BaseModel):
    target: LessonStatus
    now: datetime | None = None


@app.get("/lessons")
async def list_lessons(engine: Engine = Depends(get_engine)):
    await engine.gate.refresh_unlocks(utcnow())
    return [_progress_payload(p) for p in await engine.gate.list_progress()]


@app.get("/lessons/{lesson_id}")
async def get_lesson(lesson_id: str, engine: Engine = Depends(get_engine)):
    try:
        progress = await engine.gate.get_progress(lesson_id)
    except CadenceError as e:
        raise _http_error(e) from e
    return _progress_payload(progress)


@app.get("/lessons/{lesson_id}/mastery")
async def lesson_mastery(lesson_id: str, engine: Engine = Depends(get_engine)):
    try:
        summary = await engine.stats.lesson_summary(lesson_id, utcnow())
    except CadenceError as e:
        raise _http_error(e) from e
    return {
        "lesson_id": summary.lesson_id,
        "level": summary.level.label,
        "total_cards": summary.total_cards,
        "state_distribution": {s.value: n for s, n in summary.state_distribution.items()},
        "average_stability": summary.average_stability,
        "average_retrievability": summary.average_retrievability,
        "mastered_fraction": summary.mastered_fraction,
    }


@app.post("/lessons/{lesson_id}/interaction")
async def lesson_interaction(
    lesson_id: str, req: TimedRequest | None = None, engine: Engine = Depends(get_engine)
):
    now = (req.now if req else None) or utcnow()
    try:
        result = await engine.gate.record_interaction(lesson_id, now)
    except CadenceError as e:
        raise _http_error(e) from e
    return _transition_payload(result)


@app.post("/lessons/{lesson_id}/sections/{section_id}/read")
async def lesson_section_read(
    lesson_id: str,
    section_id: str,
    req: TimedRequest | None = None,
    engine: Engine = Depends(get_engine),
):
    now = (req.now if req else None) or utcnow()
    try:
        result = await engine.gate.mark_section_read(lesson_id, section_id, now)
    except CadenceError as e:
        raise _http_error(e) from e
    return _transition_payload(result)


@app.post("/lessons/{lesson_id}/quiz")
async def lesson_quiz(lesson_id: str, req: QuizResultRequest, engine: Engine = Depends(get_engine)):
    """Record a finished quiz attempt scored by the client."""
    try:
        result = result_from_counts(
            req.correct, req.total, engine.config.quiz_passing_score, req.rounds_played
        )
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    try:
        outcome = await engine.gate.record_quiz_result(lesson_id, result, req.now or utcnow())
    except CadenceError as e:
        raise _http_error(e) from e
    return {**_transition_payload(outcome), "score": result.percent, "passed": result.passed}


@app.post("/lessons/{lesson_id}/complete")
async def lesson_complete(
    lesson_id: str, req: TimedRequest | None = None, engine: Engine = Depends(get_engine)
):
    now = (req.now if req else None) or utcnow()
    try:
        result = await engine.gate.try_complete(lesson_id, now)
    except CadenceError as e:
        raise _http_error(e) from e
    return _transition_payload(result)


@app.post("/lessons/{lesson_id}/evaluate")
async def lesson_evaluate(
    lesson_id: str, req: TimedRequest | None = None, engine: Engine = Depends(get_engine)
):
    now = (req.now if req else None) or utcnow()
    try:
        result = await engine.gate.evaluate_mastery(lesson_id, now)
    except CadenceError as e:
        raise _http_error(e) from e
    return _transition_payload(result)


@app.post("/lessons/{lesson_id}/transition")
async def lesson_transition(
    lesson_id: str, req: TransitionRequest, engine: Engine = Depends(get_engine)
):
    try:
        result = await engine.gate.transition(lesson_id, req.target, req.now or utcnow())
    except CadenceError as e:
        raise _http_error(e) from e
    return _transition_payload(result)


@app.get("/modules/{module_id}/mastery")
async def module_mastery(module_id: str, engine: Engine = Depends(get_engine)):
    try:
        summary = await engine.stats.module_summary(module_id, utcnow())
    except CadenceError as e:
        raise _http_error(e) from e
    return {
        "module_id": summary.module_id,
        "level": summary.level.label,
        "total_lessons": summary.total_lessons,
        "lesson_distribution": {lvl.label: n for lvl, n in summary.lesson_distribution.items()},
        "lessons": {lesson.lesson_id: lesson.level.label for lesson in summary.lessons},
    }
