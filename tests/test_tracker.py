from datetime import date, datetime, timedelta

import pytest

from models.tracker import TrackerLog
from services import tracker as tracker_service
from services.exceptions import NotFoundError

TODAY = date(2024, 6, 15)


def _day(db, user, offset, intake, goal=3000):
    db.add(
        TrackerLog(
            user_id=user.id, log_date=TODAY - timedelta(days=offset), intake_ml=intake,
            goal_ml=goal, goal_met=intake >= goal, entries=[],
        )
    )


class TestStreak:
    """80% of goal keeps a streak alive"""

    def test_consecutive_days(self, db, customer):
        for offset, intake in ((1, 3000), (2, 2400), (3, 2500), (4, 1000)):
            _day(db, customer, offset, intake)
        db.commit()
        data = tracker_service.summary(db, customer.id, today=TODAY)
        # today is unfinished; 2400 is exactly 80%
        assert data["streak"] == 3

    def test_today_counts_when_met(self, db, customer):
        _day(db, customer, 0, 2500)
        _day(db, customer, 1, 3100)
        db.commit()
        assert tracker_service.summary(db, customer.id, today=TODAY)["streak"] == 2

    def test_gap_breaks_streak(self, db, customer):
        _day(db, customer, 1, 3000)
        _day(db, customer, 3, 3000)
        db.commit()
        assert tracker_service.summary(db, customer.id, today=TODAY)["streak"] == 1


class TestLogging:
    def test_log_and_undo(self, db, customer):
        now = datetime(2024, 6, 15, 9, 30)
        tracker_service.log_intake(db, customer.id, 500, now=now)
        log = tracker_service.log_intake(db, customer.id, 250, "tea", now=now.replace(hour=11, minute=0))
        assert log.intake_ml == 750
        assert log.entries[-1] == {"amount": 250, "type": "tea", "time": "11:00"}

        log = tracker_service.undo_last_entry(db, customer.id, today=TODAY)
        assert log.intake_ml == 500
        assert len(log.entries) == 1

    def test_undo_without_entries(self, db, customer):
        with pytest.raises(NotFoundError, match="No entries to remove"):
            tracker_service.undo_last_entry(db, customer.id, today=TODAY)

    def test_goal_change_updates_today(self, db, customer):
        tracker_service.log_intake(db, customer.id, 2000, now=datetime(2024, 6, 15, 8, 0))
        tracker_service.update_settings(db, customer.id, {"daily_goal_ml": 2000}, today=TODAY)
        log = db.query(TrackerLog).filter(TrackerLog.user_id == customer.id).one()
        assert log.goal_ml == 2000
        assert log.goal_met is True

    def test_week_history(self, db, customer):
        _day(db, customer, 2, 1500)
        db.commit()
        data = tracker_service.summary(db, customer.id, view="week", today=TODAY)
        assert len(data["history"]) == 7
        assert data["history"][-3]["percentage"] == 50
        assert data["weekly_average"] == round(1500 / 7)


class TestTrackerRoutes:
    def test_default_settings(self, client, customer_headers):
        resp = client.get("/tracker/settings", headers=customer_headers)
        assert resp.status_code == 200
        assert resp.json()["daily_goal_ml"] == 3000
        assert resp.json()["glass_size_ml"] == 250

    def test_log_endpoint(self, client, customer_headers):
        resp = client.post("/tracker/log", json={"amount_ml": 300, "time": "07:45"}, headers=customer_headers)
        assert resp.status_code == 201
        assert resp.json()["entries"] == [{"amount": 300, "type": "water", "time": "07:45"}]

        summary = client.get("/tracker/?view=today", headers=customer_headers).json()
        assert summary["today"]["intake_ml"] == 300
        assert summary["today"]["percentage"] == 10
        assert summary["settings"]["daily_goal_ml"] == 3000

        resp = client.delete("/tracker/log/last", headers=customer_headers)
        assert resp.json()["intake_ml"] == 0

    def test_reminder_times_validated(self, client, customer_headers):
        resp = client.patch("/tracker/settings", json={"reminder_times": ["25:00"]}, headers=customer_headers)
        assert resp.status_code == 422

        resp = client.patch(
            "/tracker/settings", json={"reminder_times": ["14:00", "08:00", "14:00"]}, headers=customer_headers
        )
        assert resp.json()["reminder_times"] == ["08:00", "14:00"]
