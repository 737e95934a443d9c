from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field

from .ledger import InMemoryCompletionLedger
from .models import Completion, Habit, Member
from .service import ScoreboardService
from .timeframe import InvalidTimeframeError, Timeframe

app = FastAPI(title="Family Habit Scoreboard API", version="0.1.0")


class MemberPayload(BaseModel):
    id: str
    name: str
    avatar: str = ""
    color: str = ""


class HabitPayload(BaseModel):
    id: str
    name: str = ""
    points: int = Field(..., ge=0)
    icon: str = ""
    unit: str = "times"


class CompletionPayload(BaseModel):
    id: Optional[str] = None
    member_id: str
    habit_id: str
    date: dt.date
    count: int = Field(0, ge=0)


class ScoreboardRequest(BaseModel):
    family_id: str = "inline"
    timeframe: str = Timeframe.TODAY.value
    reference_date: Optional[dt.date] = None
    members: List[MemberPayload] = Field(default_factory=list)
    habits: List[HabitPayload] = Field(default_factory=list)
    completions: List[CompletionPayload] = Field(default_factory=list)


class ScoreboardResponse(BaseModel):
    leaderboard: Dict[str, Any]
    badges: Dict[str, Any]
    source: str


@app.get("/health")
async def health() -> Dict[str, str]:
    return {"status": "ok"}


@app.post("/", response_model=ScoreboardResponse)
async def scoreboard_endpoint(request: ScoreboardRequest) -> ScoreboardResponse:
    ledger = _build_ledger(request)
    service = ScoreboardService(ledger)
    try:
        leaderboard = service.leaderboard(
            request.family_id,
            request.timeframe,
            reference=request.reference_date,
        )
    except InvalidTimeframeError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    badges = service.badges(request.family_id)
    return ScoreboardResponse(
        leaderboard=leaderboard.as_dict(),
        badges=badges.as_dict(),
        source="inline",
    )


def _build_ledger(request: ScoreboardRequest) -> InMemoryCompletionLedger:
    family_id = request.family_id
    members = [
        Member(id=payload.id, family_id=family_id, name=payload.name, avatar=payload.avatar, color=payload.color)
        for payload in request.members
    ]
    habits = [
        Habit(
            id=payload.id,
            family_id=family_id,
            name=payload.name,
            points=payload.points,
            icon=payload.icon,
            unit=payload.unit,
        )
        for payload in request.habits
    ]
    completions = [
        Completion(
            id=payload.id or f"{payload.member_id}:{payload.habit_id}:{payload.date.isoformat()}",
            family_id=family_id,
            member_id=payload.member_id,
            habit_id=payload.habit_id,
            date=payload.date,
            count=payload.count,
        )
        for payload in request.completions
    ]
    return InMemoryCompletionLedger(members=members, habits=habits, completions=completions)
