# tests/test_scheduler.py
from datetime import timedelta

from cardlistings import scheduler, services
from cardlistings.db import SessionLocal
from conftest import T0


def test_sweep_job_is_registered():
    job = scheduler.scheduler.get_job("sweep_expired_listings")
    assert job is not None
    assert job.trigger.interval == timedelta(hours=scheduler.SWEEP_INTERVAL_HOURS)


def test_run_sweep_uses_its_own_session(manager):
    listing = manager.create("seller-1", title="Jirachi")
    result = services.run_sweep(SessionLocal, now=T0 + timedelta(hours=49))
    assert result["archived"] == 1
    assert result["archived_ids"] == [listing.id]
    manager.store.db.expire_all()
    assert manager.store.get(listing.id).status == "archived"


def test_sweep_job_logs_and_survives_failures(monkeypatch, caplog):
    def boom():
        raise RuntimeError("database exploded")

    monkeypatch.setattr(scheduler, "run_sweep", boom)
    scheduler.sweep_job()
    assert "Scheduled sweep failed" in caplog.text
