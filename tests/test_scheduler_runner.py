import threading

from market_sync.adapters import CIVIC, FixtureAdapter
from market_sync.config import SyncSettings
from market_sync.domains import DomainSpec
from market_sync.scheduler import DONE, ERROR, IDLE, BackgroundSync
from market_sync.storage import SQLiteStore


PLAN = [DomainSpec("nyc_complaints", CIVIC, ("nyc_311",), "nyc")]


def _runner(db, factory, **kw):
    settings = SyncSettings(db_path=db)
    return BackgroundSync(
        settings,
        coordinator_kwargs={"plan": PLAN, "adapter_factory": factory, **kw},
    )


def test_background_sync_runs_and_reports(tmp_path):
    db = str(tmp_path / "bg.sqlite")

    def factory(key):
        return FixtureAdapter(adapter_key=key, kind=CIVIC, jurisdiction="nyc", records=[{"unique_key": "1"}])

    runner = _runner(db, factory)
    assert runner.status()["state"] == IDLE
    assert runner.start() is True
    runner.join(10)

    status = runner.status()
    assert status["state"] == DONE
    assert status["last_error"] is None
    assert status["last_report"]["synced"] == ["nyc_complaints"]

    store = SQLiteStore(db)
    try:
        assert store.count_by("civic_records", source="nyc_311") == 1
    finally:
        store.close()


def test_start_is_single_flight_and_cancel_stops_run(tmp_path):
    release = threading.Event()
    entered = threading.Event()

    class Slow(FixtureAdapter):
        def fetch(self, window, limit):
            entered.set()
            release.wait(10)
            return super().fetch(window, limit)

    def factory(key):
        return Slow(adapter_key=key, kind=CIVIC, jurisdiction="nyc", records=[{"unique_key": "1"}])

    runner = _runner(str(tmp_path / "bg.sqlite"), factory)
    assert runner.start() is True
    assert entered.wait(10)
    assert runner.start() is False
    assert runner.status()["state"] == "running"

    assert runner.cancel() is True
    release.set()
    runner.join(10)

    status = runner.status()
    assert status["state"] == DONE
    assert status["cancel_requested"] is True
    assert status["last_report"]["cancelled"] == ["nyc_complaints"]
    assert runner.cancel() is False


def test_store_failure_is_reported_not_raised(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("x")
    runner = _runner(str(blocker / "sub" / "db.sqlite"), lambda key: None)
    assert runner.start() is True
    runner.join(10)
    status = runner.status()
    assert status["state"] == ERROR
    assert status["last_error"]
