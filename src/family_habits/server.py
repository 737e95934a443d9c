"""FastAPI server for the family habits app."""
from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from backend.scoreboard.ledger import LedgerUnavailableError
from backend.scoreboard.models import Completion, Family, Habit, Member
from backend.scoreboard.notifications import ChangeNotifier
from backend.scoreboard.server import app as scoreboard_app
from backend.scoreboard.service import ScoreboardService
from backend.scoreboard.timeframe import InvalidTimeframeError, Timeframe

from .configuration import FamilyHabitsConfig, load_app_config
from .families import CrossFamilyReferenceError, FamilyDirectory, JoinCodeCollisionError
from .storage import SQLLedgerStore

logger = logging.getLogger(__name__)


class CreateFamilyRequest(BaseModel):
    name: str = Field(..., min_length=1)


class JoinFamilyRequest(BaseModel):
    join_code: str = Field(..., min_length=1)


class FamilyResponse(BaseModel):
    id: str
    name: str
    join_code: str


class MemberRequest(BaseModel):
    name: str = Field(..., min_length=1)
    avatar: Optional[str] = None
    color: Optional[str] = None


class MemberResponse(BaseModel):
    id: str
    family_id: str
    name: str
    avatar: str
    color: str


class HabitRequest(BaseModel):
    name: str = Field(..., min_length=1)
    points: Optional[int] = Field(None, ge=0)
    icon: Optional[str] = None
    unit: Optional[str] = None
    daily_target: Optional[int] = Field(None, ge=0)
    weekly_target: Optional[int] = Field(None, ge=0)
    monthly_target: Optional[int] = Field(None, ge=0)
    category: Optional[str] = None


class HabitResponse(BaseModel):
    id: str
    family_id: str
    name: str
    icon: str
    points: int
    unit: str
    daily_target: int
    weekly_target: int
    monthly_target: int
    category: Optional[str] = None


class CompletionDeltaRequest(BaseModel):
    member_id: str
    habit_id: str
    delta: int = 1
    date: Optional[dt.date] = None


class CompletionSetRequest(BaseModel):
    member_id: str
    habit_id: str
    count: int
    date: Optional[dt.date] = None


class CompletionResponse(BaseModel):
    id: str
    member_id: str
    habit_id: str
    date: dt.date
    count: int


class ProgressResponse(BaseModel):
    habit_id: str
    habit_name: str
    unit: str
    count: int
    target: int
    ratio: float


def _family_response(family: Family) -> FamilyResponse:
    return FamilyResponse(id=family.id, name=family.name, join_code=family.join_code)


def _member_response(member: Member) -> MemberResponse:
    return MemberResponse(
        id=member.id,
        family_id=member.family_id,
        name=member.name,
        avatar=member.avatar,
        color=member.color,
    )


def _habit_response(habit: Habit) -> HabitResponse:
    return HabitResponse(
        id=habit.id,
        family_id=habit.family_id,
        name=habit.name,
        icon=habit.icon,
        points=habit.points,
        unit=habit.unit,
        daily_target=habit.daily_target,
        weekly_target=habit.weekly_target,
        monthly_target=habit.monthly_target,
        category=habit.category,
    )


def _completion_response(completion: Completion) -> CompletionResponse:
    return CompletionResponse(
        id=completion.id,
        member_id=completion.member_id,
        habit_id=completion.habit_id,
        date=completion.date,
        count=completion.count,
    )


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(LookupError)
    async def _not_found(request: Request, exc: LookupError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidTimeframeError)
    async def _bad_timeframe(request: Request, exc: InvalidTimeframeError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(CrossFamilyReferenceError)
    async def _cross_family(request: Request, exc: CrossFamilyReferenceError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ValueError)
    async def _invalid(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(LedgerUnavailableError)
    async def _store_down(request: Request, exc: LedgerUnavailableError) -> JSONResponse:
        logger.warning("Ledger unavailable while serving %s: %s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Ledger temporarily unavailable."})

    @app.exception_handler(JoinCodeCollisionError)
    async def _code_collision(request: Request, exc: JoinCodeCollisionError) -> JSONResponse:
        return JSONResponse(status_code=503, content={"detail": str(exc)})


def create_app(
    config: Optional[FamilyHabitsConfig] = None,
    store: Optional[SQLLedgerStore] = None,
) -> FastAPI:
    config = config or load_app_config()
    store = store or SQLLedgerStore.from_config(config.database)
    notifier = ChangeNotifier()
    directory = FamilyDirectory(store, notifier=notifier, config=config)
    scoreboards = ScoreboardService(store, timezone_name=config.timezone)

    app = FastAPI(title="Family Habits API", version="0.1.0")
    app.state.directory = directory
    app.state.scoreboards = scoreboards
    app.state.notifier = notifier

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    _register_error_handlers(app)
    app.mount("/scoreboard", scoreboard_app)

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    # ----- families -----

    @app.post("/families", response_model=FamilyResponse, status_code=201)
    def create_family(request: CreateFamilyRequest) -> FamilyResponse:
        return _family_response(directory.create_family(request.name))

    @app.post("/families/join", response_model=FamilyResponse)
    def join_family(request: JoinFamilyRequest) -> FamilyResponse:
        return _family_response(directory.join_family(request.join_code))

    @app.get("/families/{family_id}", response_model=FamilyResponse)
    def get_family(family_id: str) -> FamilyResponse:
        return _family_response(directory.get_family(family_id))

    # ----- members -----

    @app.get("/families/{family_id}/members", response_model=List[MemberResponse])
    def list_members(family_id: str) -> List[MemberResponse]:
        return [_member_response(member) for member in directory.list_members(family_id)]

    @app.post("/families/{family_id}/members", response_model=MemberResponse, status_code=201)
    def add_member(family_id: str, request: MemberRequest) -> MemberResponse:
        member = directory.add_member(family_id, request.name, avatar=request.avatar, color=request.color)
        return _member_response(member)

    @app.delete("/families/{family_id}/members/{member_id}", status_code=204)
    def remove_member(family_id: str, member_id: str) -> None:
        directory.remove_member(family_id, member_id)

    @app.get("/families/{family_id}/members/{member_id}/progress", response_model=List[ProgressResponse])
    def member_progress(family_id: str, member_id: str, on: Optional[dt.date] = None) -> List[ProgressResponse]:
        return [
            ProgressResponse(
                habit_id=item.habit.id,
                habit_name=item.habit.name,
                unit=item.habit.unit,
                count=item.count,
                target=item.target,
                ratio=item.ratio,
            )
            for item in directory.daily_progress(family_id, member_id, on=on)
        ]

    # ----- habits -----

    @app.get("/families/{family_id}/habits", response_model=List[HabitResponse])
    def list_habits(family_id: str) -> List[HabitResponse]:
        return [_habit_response(habit) for habit in directory.list_habits(family_id)]

    @app.post("/families/{family_id}/habits", response_model=HabitResponse, status_code=201)
    def add_habit(family_id: str, request: HabitRequest) -> HabitResponse:
        habit = directory.add_habit(family_id, **request.model_dump())
        return _habit_response(habit)

    @app.delete("/families/{family_id}/habits/{habit_id}", status_code=204)
    def remove_habit(family_id: str, habit_id: str) -> None:
        directory.remove_habit(family_id, habit_id)

    # ----- completions -----

    @app.post("/families/{family_id}/completions", response_model=CompletionResponse)
    def record_completion(family_id: str, request: CompletionDeltaRequest) -> CompletionResponse:
        completion = directory.record_completion(
            family_id,
            request.member_id,
            request.habit_id,
            delta=request.delta,
            on=request.date,
        )
        return _completion_response(completion)

    @app.put("/families/{family_id}/completions", response_model=CompletionResponse)
    def set_completion(family_id: str, request: CompletionSetRequest) -> CompletionResponse:
        completion = directory.set_completion(
            family_id,
            request.member_id,
            request.habit_id,
            request.count,
            on=request.date,
        )
        return _completion_response(completion)

    # ----- scoreboards -----

    def _ensure_family(family_id: str) -> None:
        # With the store down the scoreboard service answers from its last result.
        try:
            directory.get_family(family_id)
        except LedgerUnavailableError as exc:
            logger.warning("Skipping family check for %s: %s", family_id, exc)

    @app.get("/families/{family_id}/leaderboard")
    def leaderboard(family_id: str, timeframe: str = Query(Timeframe.TODAY.value)) -> Dict[str, Any]:
        _ensure_family(family_id)
        return scoreboards.leaderboard(family_id, timeframe).as_dict()

    @app.get("/families/{family_id}/badges")
    def badges(family_id: str) -> Dict[str, Any]:
        _ensure_family(family_id)
        return scoreboards.badges(family_id).as_dict()

    return app


def main() -> None:  # pragma: no cover - manual entry point
    import uvicorn

    logging.basicConfig(level=logging.INFO)
    uvicorn.run(create_app(), host="0.0.0.0", port=8000)
