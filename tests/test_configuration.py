from family_habits.configuration import FamilyHabitsConfig, load_app_config


def test_defaults(monkeypatch):
    for name in ("HABITS_DATABASE_URL", "HABITS_TIMEZONE", "HABITS_JOIN_CODE_LENGTH", "HABITS_JOIN_CODE_ATTEMPTS", "HABITS_DATABASE_ECHO"):
        monkeypatch.delenv(name, raising=False)
    cfg = load_app_config()
    assert cfg.model_dump() == FamilyHabitsConfig().model_dump()
    assert cfg.join_code.length == 6
    assert cfg.habit_defaults.points == 10


def test_overrides_mapping():
    cfg = load_app_config(
        {
            "database": {"url": "sqlite://"},
            "join_code": {"length": 8},
            "habit_defaults": {"points": 3, "unit": "minutes"},
            "timezone": "Europe/Berlin",
        }
    )
    assert cfg.database.url == "sqlite://"
    assert cfg.join_code.length == 8
    assert (cfg.habit_defaults.points, cfg.habit_defaults.unit) == (3, "minutes")
    assert cfg.timezone == "Europe/Berlin"


def test_environment_wins_over_overrides(monkeypatch):
    monkeypatch.setenv("HABITS_DATABASE_URL", "sqlite:///env.db")
    monkeypatch.setenv("HABITS_DATABASE_ECHO", "yes")
    monkeypatch.setenv("HABITS_JOIN_CODE_LENGTH", "not-a-number")
    monkeypatch.setenv("HABITS_TIMEZONE", "Asia/Tokyo")

    cfg = load_app_config({"database": {"url": "sqlite://"}, "join_code": {"length": 4}})

    assert cfg.database.url == "sqlite:///env.db"
    assert cfg.database.echo is True
    assert cfg.join_code.length == 4
    assert cfg.timezone == "Asia/Tokyo"
