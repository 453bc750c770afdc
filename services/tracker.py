from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from models.tracker import TrackerLog, TrackerSettings, DEFAULT_REMINDER_TIMES
from services.exceptions import NotFoundError

STREAK_LOOKBACK_DAYS = 30
STREAK_THRESHOLD = 0.8
VIEW_DAYS = {"today": 1, "week": 7, "month": 30}


def get_settings(db: Session, user_id: int) -> TrackerSettings:
    tracker_settings = db.query(TrackerSettings).filter(TrackerSettings.user_id == user_id).one_or_none()
    if tracker_settings is None:
        tracker_settings = TrackerSettings(
            user_id=user_id,
            daily_goal_ml=3000,
            glass_size_ml=250,
            reminder_enabled=True,
            reminder_times=list(DEFAULT_REMINDER_TIMES),
        )
        db.add(tracker_settings)
        db.flush()
    return tracker_settings


def _today_log(db: Session, user_id: int, today: date) -> Optional[TrackerLog]:
    return db.query(TrackerLog).filter(TrackerLog.user_id == user_id, TrackerLog.log_date == today).one_or_none()


def update_settings(db: Session, user_id: int, changes: dict, today: Optional[date] = None) -> TrackerSettings:
    tracker_settings = get_settings(db, user_id)
    for field, value in changes.items():
        setattr(tracker_settings, field, value)
    if "daily_goal_ml" in changes:
        log = _today_log(db, user_id, today or date.today())
        if log is not None:
            log.goal_ml = tracker_settings.daily_goal_ml
            log.goal_met = log.intake_ml >= log.goal_ml
    db.flush()
    return tracker_settings


def log_intake(
    db: Session,
    user_id: int,
    amount_ml: int,
    drink_type: str = "water",
    time: Optional[str] = None,
    now: Optional[datetime] = None,
) -> TrackerLog:
    now = now or datetime.now()
    goal = get_settings(db, user_id).daily_goal_ml
    log = _today_log(db, user_id, now.date())
    if log is None:
        log = TrackerLog(user_id=user_id, log_date=now.date(), intake_ml=0, goal_ml=goal, entries=[])
        db.add(log)
    entry = {"amount": amount_ml, "type": drink_type, "time": time or now.strftime("%H:%M")}
    # reassign so the JSON column is flagged dirty
    log.entries = list(log.entries or []) + [entry]
    log.intake_ml = (log.intake_ml or 0) + amount_ml
    log.goal_ml = goal
    log.goal_met = log.intake_ml >= log.goal_ml
    db.flush()
    return log


def undo_last_entry(db: Session, user_id: int, today: Optional[date] = None) -> TrackerLog:
    log = _today_log(db, user_id, today or date.today())
    if log is None or not log.entries:
        raise NotFoundError("No entries to remove")
    entries = list(log.entries)
    last = entries.pop()
    log.entries = entries
    log.intake_ml = max((log.intake_ml or 0) - int(last.get("amount", 0)), 0)
    log.goal_met = log.intake_ml >= log.goal_ml
    db.flush()
    return log


def _percentage(intake: int, goal: int) -> int:
    if not goal:
        return 0
    return min(round(intake * 100 / goal), 100)


def compute_streak(logs_by_day: dict, today: date) -> int:
    """Consecutive days at or above 80% of goal. An unfinished today does not break it."""
    streak = 0
    for offset in range(STREAK_LOOKBACK_DAYS):
        day = today - timedelta(days=offset)
        log = logs_by_day.get(day)
        if log is not None and log.goal_ml and log.intake_ml >= log.goal_ml * STREAK_THRESHOLD:
            streak += 1
        elif offset == 0:
            continue
        else:
            break
    return streak


def summary(db: Session, user_id: int, view: str = "today", today: Optional[date] = None) -> dict:
    today = today or date.today()
    tracker_settings = get_settings(db, user_id)
    since = today - timedelta(days=STREAK_LOOKBACK_DAYS)
    logs = (
        db.query(TrackerLog)
        .filter(TrackerLog.user_id == user_id, TrackerLog.log_date > since, TrackerLog.log_date <= today)
        .all()
    )
    by_day = {log.log_date: log for log in logs}

    todays = by_day.get(today)
    intake = todays.intake_ml if todays else 0
    goal = todays.goal_ml if todays else tracker_settings.daily_goal_ml

    week_total = sum(by_day[d].intake_ml for d in by_day if d > today - timedelta(days=7))

    days = VIEW_DAYS.get(view, 1)
    history = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        log = by_day.get(day)
        day_intake = log.intake_ml if log else 0
        day_goal = log.goal_ml if log else tracker_settings.daily_goal_ml
        history.append({
            "date": day.isoformat(),
            "intake_ml": day_intake,
            "goal_ml": day_goal,
            "goal_met": day_intake >= day_goal,
            "percentage": _percentage(day_intake, day_goal),
        })

    return {
        "view": view,
        "today": {
            "date": today.isoformat(),
            "intake_ml": intake,
            "goal_ml": goal,
            "percentage": _percentage(intake, goal),
            "goal_met": intake >= goal,
            "remaining_ml": max(goal - intake, 0),
            "entries": list(todays.entries or []) if todays else [],
        },
        "streak": compute_streak(by_day, today),
        "weekly_average": round(week_total / 7),
        "history": history,
        "settings": tracker_settings,
    }
