"""
Configuration for the family habits app.

Values come from, in order of precedence: environment variables, the
``overrides`` mapping passed to ``load_app_config`` and the model defaults.
"""

from __future__ import annotations

import os
import string
from typing import Any, Dict, Optional

from pydantic import BaseModel

JOIN_CODE_ALPHABET = string.ascii_uppercase + string.digits


# ========== 1. Database ==========

class DatabaseConfig(BaseModel):
    url: str = "sqlite:///family_habits.db"
    """SQLAlchemy URL of the relational ledger store"""

    echo: bool = False
    """Log emitted SQL"""


# ========== 2. Join codes ==========

class JoinCodeConfig(BaseModel):
    length: int = 6
    alphabet: str = JOIN_CODE_ALPHABET
    max_attempts: int = 5
    """How many fresh codes to try when the store reports a collision"""


# ========== 3. Form defaults ==========

class MemberDefaults(BaseModel):
    avatar: str = "👨"
    color: str = "#ef4444"


class HabitDefaults(BaseModel):
    icon: str = "💪"
    points: int = 10
    unit: str = "times"
    daily_target: int = 1
    weekly_target: int = 7
    monthly_target: int = 30


# ========== 4. Combined ==========

class FamilyHabitsConfig(BaseModel):
    """Configuration for the family habits app."""

    database: DatabaseConfig = DatabaseConfig()
    join_code: JoinCodeConfig = JoinCodeConfig()
    member_defaults: MemberDefaults = MemberDefaults()
    habit_defaults: HabitDefaults = HabitDefaults()

    timezone: str = "UTC"
    """Zone whose calendar date counts as "today" for completions and windows"""


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def load_app_config(overrides: Optional[Dict[str, Any]] = None) -> FamilyHabitsConfig:
    cfg = FamilyHabitsConfig()
    overrides = overrides or {}

    db_cfg = overrides.get("database", {})
    cfg.database = DatabaseConfig(
        url=os.getenv("HABITS_DATABASE_URL", db_cfg.get("url", cfg.database.url)),
        echo=_env_bool("HABITS_DATABASE_ECHO", db_cfg.get("echo", cfg.database.echo)),
    )

    code_cfg = overrides.get("join_code", {})
    cfg.join_code = JoinCodeConfig(
        length=_env_int("HABITS_JOIN_CODE_LENGTH", code_cfg.get("length", cfg.join_code.length)),
        alphabet=code_cfg.get("alphabet", cfg.join_code.alphabet),
        max_attempts=_env_int(
            "HABITS_JOIN_CODE_ATTEMPTS",
            code_cfg.get("max_attempts", cfg.join_code.max_attempts),
        ),
    )

    if "member_defaults" in overrides:
        cfg.member_defaults = MemberDefaults(**overrides["member_defaults"])
    if "habit_defaults" in overrides:
        cfg.habit_defaults = HabitDefaults(**overrides["habit_defaults"])

    cfg.timezone = os.getenv("HABITS_TIMEZONE", overrides.get("timezone", cfg.timezone))
    return cfg
