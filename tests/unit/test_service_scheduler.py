"""
Tests for sync coordination and the auto-sync scheduler.
"""

import asyncio
from datetime import timedelta

import pytest

from sgmc_sync.exceptions import ConfigurationError, DriveAPIError, SyncInProgressError
from sgmc_sync.scheduling import AutoSyncScheduler
from sgmc_sync.scheduling.scheduler import AUTO_SYNC_JOB_ID
from sgmc_sync.sync import RESTART_SCHEDULED, SyncService, SyncState


class StubAuth:
    def __init__(self, authenticated=True):
        self.authenticated = authenticated
        self.logged_out = False

    async def is_authenticated(self):
        return self.authenticated

    async def authenticate(self, timeout=None):
        self.authenticated = True

    async def logout(self):
        self.logged_out = True
        self.authenticated = False


class StubDrive:
    def __init__(self):
        self.cache_clears = 0

    def clear_cache(self):
        self.cache_clears += 1


class StubEngine:
    """Backup engine double whose uploads can be held open."""

    def __init__(self):
        self.release = asyncio.Event()
        self.release.set()
        self.uploads = 0
        self.restored = []
        self.error = None

    async def upload_backup(self):
        self.uploads += 1
        await self.release.wait()
        if self.error:
            raise self.error
        return f"entry-{self.uploads}"

    async def restore_backup(self, entry_id):
        await self.release.wait()
        self.restored.append(entry_id)


def make_service(auth=None, engine=None, state=None, **kwargs):
    return SyncService(
        auth or StubAuth(),
        StubDrive(),
        engine or StubEngine(),
        state or SyncState(),
        **kwargs,
    )


class TestSyncService:
    """Tests for SyncService."""

    @pytest.mark.asyncio
    async def test_sync_now_records_result(self):
        state = SyncState()
        service = make_service(state=state)

        entry_id = await service.sync_now()

        assert entry_id == "entry-1"
        assert state.last_synced_entry_id == "entry-1"
        assert state.last_sync_time is not None
        assert state.is_syncing is False

    @pytest.mark.asyncio
    async def test_sync_flag_is_set_while_running(self):
        state = SyncState()
        engine = StubEngine()
        engine.release.clear()
        service = make_service(engine=engine, state=state)

        task = asyncio.create_task(service.sync_now())
        await asyncio.sleep(0)
        assert state.is_syncing is True
        assert service.is_busy

        engine.release.set()
        await task
        assert state.is_syncing is False
        assert not service.is_busy

    @pytest.mark.asyncio
    async def test_sync_now_rejected_while_busy(self):
        engine = StubEngine()
        engine.release.clear()
        service = make_service(engine=engine)

        first = asyncio.create_task(service.sync_now())
        await asyncio.sleep(0)

        with pytest.raises(SyncInProgressError):
            await service.sync_now()
        with pytest.raises(SyncInProgressError):
            await service.restore("entry-x")

        engine.release.set()
        await first
        assert engine.uploads == 1

    @pytest.mark.asyncio
    async def test_failed_sync_clears_flag(self):
        state = SyncState()
        engine = StubEngine()
        engine.error = DriveAPIError("boom", status_code=500)
        service = make_service(engine=engine, state=state)

        with pytest.raises(DriveAPIError):
            await service.sync_now()

        assert state.is_syncing is False
        assert state.last_synced_entry_id is None
        assert not service.is_busy

    @pytest.mark.asyncio
    async def test_auto_sync_skips_when_offline(self):
        state = SyncState()
        state.set_online(False)
        engine = StubEngine()
        service = make_service(engine=engine, state=state)

        assert await service.run_auto_sync() is None
        assert engine.uploads == 0

    @pytest.mark.asyncio
    async def test_auto_sync_skips_when_not_authenticated(self):
        engine = StubEngine()
        service = make_service(auth=StubAuth(authenticated=False), engine=engine)

        assert await service.run_auto_sync() is None
        assert engine.uploads == 0

    @pytest.mark.asyncio
    async def test_auto_sync_skips_while_manual_sync_runs(self):
        engine = StubEngine()
        engine.release.clear()
        service = make_service(engine=engine)

        manual = asyncio.create_task(service.sync_now())
        await asyncio.sleep(0)

        assert await service.run_auto_sync() is None

        engine.release.set()
        await manual
        assert engine.uploads == 1

    @pytest.mark.asyncio
    async def test_auto_sync_sets_auto_flag(self):
        state = SyncState()
        seen = []
        state.subscribe(lambda event, payload: seen.append(payload.get("is_auto_syncing")))
        service = make_service(state=state)

        assert await service.run_auto_sync() == "entry-1"

        assert True in seen
        assert state.is_auto_syncing is False
        assert state.last_synced_entry_id == "entry-1"

    @pytest.mark.asyncio
    async def test_restore_schedules_restart(self):
        state = SyncState()
        events = []
        state.subscribe(lambda event, payload: events.append(event))
        restarted = asyncio.Event()
        engine = StubEngine()
        service = make_service(
            engine=engine, state=state,
            on_restart_required=restarted.set, restart_delay=0.01,
        )

        await service.restore("entry-7")

        assert engine.restored == ["entry-7"]
        assert state.last_synced_entry_id == "entry-7"
        assert RESTART_SCHEDULED in events
        await asyncio.wait_for(restarted.wait(), timeout=1.0)

    @pytest.mark.asyncio
    async def test_restore_without_restart_handler(self):
        engine = StubEngine()
        service = make_service(engine=engine)

        await service.restore("entry-7")
        assert engine.restored == ["entry-7"]

    @pytest.mark.asyncio
    async def test_disconnect_clears_credentials_and_cache(self):
        auth = StubAuth()
        service = make_service(auth=auth)

        await service.disconnect()

        assert auth.logged_out
        assert service.drive.cache_clears == 1
        assert await service.is_authenticated() is False


class TestAutoSyncScheduler:
    """Tests for AutoSyncScheduler."""

    @pytest.mark.asyncio
    async def test_disabled_by_default(self):
        state = SyncState()
        scheduler = AutoSyncScheduler(make_service(state=state), state)

        await scheduler.start()
        try:
            assert scheduler.is_running
            assert not scheduler.is_armed
        finally:
            await scheduler.stop()

        assert not scheduler.is_running

    @pytest.mark.asyncio
    async def test_enable_arms_interval_job(self):
        state = SyncState()
        scheduler = AutoSyncScheduler(make_service(state=state), state, interval_minutes=15)

        await scheduler.start()
        try:
            scheduler.enable()

            assert state.auto_sync_enabled is True
            job = scheduler.scheduler.get_job(AUTO_SYNC_JOB_ID)
            assert job is not None
            assert job.trigger.interval == timedelta(minutes=15)
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_disable_removes_job(self):
        state = SyncState()
        scheduler = AutoSyncScheduler(make_service(state=state), state)

        await scheduler.start()
        try:
            scheduler.enable()
            scheduler.disable()

            assert state.auto_sync_enabled is False
            assert scheduler.scheduler.get_job(AUTO_SYNC_JOB_ID) is None
            # Disabling twice is harmless
            scheduler.disable()
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_persisted_flag_rearms_on_start(self):
        state = SyncState()
        state.set_auto_sync_enabled(True)
        scheduler = AutoSyncScheduler(make_service(state=state), state)

        await scheduler.start()
        try:
            assert scheduler.is_armed
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_set_interval_rearms(self):
        state = SyncState()
        scheduler = AutoSyncScheduler(make_service(state=state), state, interval_minutes=60)

        await scheduler.start()
        try:
            scheduler.enable()
            scheduler.set_interval(5)

            job = scheduler.scheduler.get_job(AUTO_SYNC_JOB_ID)
            assert job.trigger.interval == timedelta(minutes=5)
            assert len(scheduler.scheduler.get_jobs()) == 1
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_set_interval_while_disabled_does_not_arm(self):
        state = SyncState()
        scheduler = AutoSyncScheduler(make_service(state=state), state)

        await scheduler.start()
        try:
            scheduler.set_interval(5)
            assert scheduler.interval_minutes == 5
            assert not scheduler.is_armed
        finally:
            await scheduler.stop()

    def test_invalid_interval(self):
        state = SyncState()
        scheduler = AutoSyncScheduler(make_service(state=state), state)

        with pytest.raises(ConfigurationError):
            scheduler.set_interval(0)

    @pytest.mark.asyncio
    async def test_tick_runs_auto_sync(self):
        state = SyncState()
        engine = StubEngine()
        scheduler = AutoSyncScheduler(make_service(engine=engine, state=state), state)

        await scheduler._run_tick()

        assert engine.uploads == 1
        assert state.last_synced_entry_id == "entry-1"

    @pytest.mark.asyncio
    async def test_tick_errors_are_contained(self):
        state = SyncState()
        engine = StubEngine()
        engine.error = DriveAPIError("boom", status_code=503)
        scheduler = AutoSyncScheduler(make_service(engine=engine, state=state), state)

        await scheduler._run_tick()

        engine.error = RuntimeError("unexpected")
        await scheduler._run_tick()

        assert engine.uploads == 2
        assert state.is_auto_syncing is False


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
