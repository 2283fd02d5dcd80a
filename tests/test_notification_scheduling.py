"""
ProcessFlow
Tests: Notifications + Scheduling.

Covers:
    1. NotificationService (broadcast, list, mark read)
    2. SchedulerService (job registration, execution, toggling, due jobs)
    3. Scheduled jobs (overdue scanner, stalled scanner, demo auto mover)
"""

import random
from datetime import date, datetime, timedelta, timezone

import pytest

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.notification import Notification
from app.models.order import Order
from app.models.scheduling import ScheduledJob
from app.services.notification import NotificationService
from app.services.order_lifecycle import verify_history
from app.services.scheduled_jobs import demo_auto_move
from app.services.scheduler_service import SchedulerService, get_registered_jobs


def _clear_notifications():
    Notification.query.delete()
    db.session.commit()


# ═══════════════════════════════════════════════════════════════════════════
#  NotificationService
# ═══════════════════════════════════════════════════════════════════════════

class TestNotificationService:
    def test_list_newest_first(self, supervisor):
        items, total = NotificationService.list_for_user(supervisor)
        assert total == 2
        assert [n.id for n in items] == ["notif-001", "notif-002"]

    def test_unread_only_and_count(self, admin):
        items, total = NotificationService.list_for_user(admin, unread_only=True)
        assert total == 0
        assert NotificationService.unread_count(admin) == 0

    def test_mark_read(self, supervisor):
        notif = NotificationService.mark_read(supervisor, "notif-001")
        assert notif.is_read
        assert notif.read_at is not None
        assert NotificationService.unread_count(supervisor) == 1

    def test_cannot_mark_someone_elses(self, admin):
        with pytest.raises(NotFoundError):
            NotificationService.mark_read(admin, "notif-001")

    def test_mark_all_read(self, supervisor):
        assert NotificationService.mark_all_read(supervisor) == 2
        assert NotificationService.unread_count(supervisor) == 0

    def test_broadcast_skips_inactive_users(self, admin, supervisor):
        supervisor.is_active = False
        db.session.commit()
        created = NotificationService.broadcast_to_roles(
            tenant_id=admin.tenant_id, roles=("admin", "supervisor"), title="Aviso",
        )
        assert [n.recipient_user_id for n in created] == ["user-admin"]

    def test_unknown_type_rejected(self, admin):
        with pytest.raises(ValueError):
            NotificationService.create(
                tenant_id=admin.tenant_id, recipient_user_id=admin.id, title="x", type="gossip",
            )


# ═══════════════════════════════════════════════════════════════════════════
#  SchedulerService
# ═══════════════════════════════════════════════════════════════════════════

class TestScheduler:
    def test_registry(self):
        assert set(get_registered_jobs()) == {"overdue_scanner", "stalled_order_scanner", "demo_auto_mover"}

    def test_ensure_jobs_registered_is_idempotent(self):
        assert len(SchedulerService.ensure_jobs_registered()) == 3
        assert SchedulerService.ensure_jobs_registered() == []
        assert ScheduledJob.query.count() == 3

    def test_run_records_outcome(self, seeded):
        result = SchedulerService.run_job("overdue_scanner")
        assert result["status"] == "success"
        job = ScheduledJob.query.filter_by(job_name="overdue_scanner").one()
        assert job.run_count == 1
        assert job.last_run_status == "success"

    def test_run_unknown_job(self):
        with pytest.raises(NotFoundError):
            SchedulerService.run_job("nope")

    def test_toggle_and_due_jobs(self, seeded):
        SchedulerService.ensure_jobs_registered()
        assert set(SchedulerService.due_jobs()) == set(get_registered_jobs())

        SchedulerService.toggle_job("demo_auto_mover", False)
        SchedulerService.run_job("overdue_scanner")
        due = SchedulerService.due_jobs()
        assert "demo_auto_mover" not in due
        assert "overdue_scanner" not in due
        assert "stalled_order_scanner" in due

        later = datetime.now(timezone.utc) + timedelta(days=2)
        assert "overdue_scanner" in SchedulerService.due_jobs(now=later)

    def test_toggle_unknown_job(self):
        with pytest.raises(NotFoundError):
            SchedulerService.toggle_job("nope", True)


# ═══════════════════════════════════════════════════════════════════════════
#  Jobs
# ═══════════════════════════════════════════════════════════════════════════

class TestOverdueScanner:
    def test_alerts_late_and_due_soon_orders(self, seeded):
        _clear_notifications()
        soon = db.session.get(Order, "processo-004")
        soon.expected_delivery_date = date.today() + timedelta(days=3)
        db.session.commit()

        result = SchedulerService.run_job("overdue_scanner")["result"]
        assert result["orders_overdue"] == 3
        assert result["orders_due_soon"] == 1
        assert result["notifications_created"] == 8
        assert Notification.query.filter_by(type="delay").count() == 6
        assert Notification.query.filter_by(type="due", order_id="processo-004").count() == 2

    def test_same_day_rerun_does_not_duplicate(self, seeded):
        _clear_notifications()
        SchedulerService.run_job("overdue_scanner")
        again = SchedulerService.run_job("overdue_scanner")["result"]
        assert again["orders_overdue"] == 4
        assert again["notifications_created"] == 0

    def test_delivered_orders_are_ignored(self, seeded):
        _clear_notifications()
        SchedulerService.run_job("overdue_scanner")
        assert Notification.query.filter_by(order_id="processo-005").count() == 0

    def test_only_admins_and_supervisors_receive(self, seeded):
        _clear_notifications()
        SchedulerService.run_job("overdue_scanner")
        recipients = {n.recipient_user_id for n in Notification.query.all()}
        assert recipients == {"user-admin", "user-supervisor"}


class TestStalledScanner:
    def test_alerts_orders_idle_past_stage_limit(self, seeded):
        _clear_notifications()
        result = SchedulerService.run_job("stalled_order_scanner")["result"]
        assert result["orders_stalled"] == 4
        assert result["notifications_created"] == 8

    def test_stage_without_limit_is_skipped(self, admin):
        from app.services import stage_service
        _clear_notifications()
        stage_service.update_stage(admin, "etapa-lead", {"notify_after_days": 0})
        result = SchedulerService.run_job("stalled_order_scanner")["result"]
        assert result["orders_stalled"] == 3
        assert Notification.query.filter_by(order_id="processo-004").count() == 0


class TestDemoAutoMover:
    def test_skipped_outside_demo_mode(self, app, seeded):
        result = SchedulerService.run_job("demo_auto_mover")
        assert result["result"]["skipped"] is True
        assert result["result"]["moved"] == 0

    def test_moves_one_order_in_demo_mode(self, app, seeded, monkeypatch):
        monkeypatch.setitem(app.config, "DEMO_MODE", True)
        result = demo_auto_move(app, rng=random.Random(7))
        assert result["moved"] == 1
        move = result["moves"][0]
        order = db.session.get(Order, move["order_id"])
        assert order.current_stage_id == move["new_stage_id"]
        assert order.movements[-1].automatic is True
        assert order.movements[-1].user_name == "Administrador"
        assert verify_history(order)
