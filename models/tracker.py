from datetime import date, datetime

from sqlalchemy import String, Date, DateTime, ForeignKey, Integer, Boolean, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from core.db import Base


DEFAULT_REMINDER_TIMES = ["08:00", "12:00", "16:00", "20:00"]


class TrackerSettings(Base):
    __tablename__ = "tracker_settings"

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), unique=True, index=True)
    daily_goal_ml: Mapped[int] = mapped_column(Integer, default=3000)
    glass_size_ml: Mapped[int] = mapped_column(Integer, default=250)
    reminder_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    reminder_times: Mapped[list] = mapped_column(JSON, default=lambda: list(DEFAULT_REMINDER_TIMES))
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class TrackerLog(Base):
    __tablename__ = "tracker_logs"
    __table_args__ = (UniqueConstraint("user_id", "log_date", name="uq_tracker_user_date"),)

    id: Mapped[int] = mapped_column(primary_key=True, index=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    log_date: Mapped[date] = mapped_column(Date, index=True)
    intake_ml: Mapped[int] = mapped_column(Integer, default=0)
    goal_ml: Mapped[int] = mapped_column(Integer, default=3000)
    goal_met: Mapped[bool] = mapped_column(Boolean, default=False)
    # [{"amount": 250, "type": "water", "time": "08:15"}, ...]
    entries: Mapped[list] = mapped_column(JSON, default=list)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
