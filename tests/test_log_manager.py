import asyncio
import os
import shutil

import pytest
from watchdog.events import FileModifiedEvent

from log_manager import ConfigurationError, LogManager, MissingFileError
from log_manager.core.exceptions import TransientIOError
from log_manager.services.retention_reaper import MILLIS_PER_DAY

pytestmark = pytest.mark.asyncio

requires_tail = pytest.mark.skipif(
    shutil.which("tail") is None or shutil.which("head") is None,
    reason="tail/head executables not available",
)

DEAD_PID = 999_999_999


def _log_name(pid, sequence, gz=False):
    return f"ops.{pid}.log.{sequence}" + (".gz" if gz else "")


class TestConstruction:
    async def test_requires_log_dir(self, monkeypatch):
        monkeypatch.delenv("LOG_MANAGER_LOG_DIR", raising=False)

        with pytest.raises(ConfigurationError):
            LogManager()

    async def test_invalid_option(self, log_dir):
        with pytest.raises(ConfigurationError):
            LogManager(log_dir=str(log_dir), max_number_active_files=0)

    async def test_instances_do_not_share_config(self, tmp_path):
        first = LogManager(log_dir=str(tmp_path / "a"), max_number_active_files=2)
        second = LogManager(log_dir=str(tmp_path / "b"))

        assert first.max_number_active_files == 2
        assert second.max_number_active_files == 5
        assert first.log_dir != second.log_dir


class TestLifecycle:
    async def test_start_and_stop_are_idempotent(self, manager):
        await manager.start()
        assert manager.started() is True
        await manager.start()
        assert manager.started() is True

        await manager.stop()
        assert manager.started() is False
        await manager.stop()
        assert manager.started() is False

    async def test_watch_events_are_counted(self, manager, log_dir, eventually):
        await manager.start()
        assert manager.watch_event_count == 0

        log_file = log_dir / _log_name(os.getpid(), "001")
        log_file.write_text("\nSOME DATA")
        for _ in range(3):
            with open(log_file, "a") as f:
                f.write("\ndata to append")

        assert await eventually(lambda: manager.watch_event_count > 0)
        count = manager.watch_event_count
        await manager.stop()
        assert manager.watch_event_count >= count

    async def test_notifications_after_stop_are_dropped(self, manager, log_dir):
        await manager.start()
        await manager.stop()
        count = manager.watch_event_count

        manager._on_watch_event(FileModifiedEvent(str(log_dir / _log_name(1, "001"))))

        assert manager.watch_event_count == count

    async def test_start_with_missing_log_dir(self, tmp_path, liveness_oracle):
        manager = LogManager(log_dir=str(tmp_path / "missing"), liveness_oracle=liveness_oracle)

        with pytest.raises(ConfigurationError):
            await manager.start()
        assert manager.started() is False

    async def test_two_managers_watch_independently(self, tmp_path, liveness_oracle):
        first_dir, second_dir = tmp_path / "a", tmp_path / "b"
        first_dir.mkdir()
        second_dir.mkdir()
        first = LogManager(log_dir=str(first_dir), liveness_oracle=liveness_oracle)
        second = LogManager(log_dir=str(second_dir), liveness_oracle=liveness_oracle)

        await first.start()
        await second.start()
        await first.stop()

        assert first.started() is False
        assert second.started() is True
        await second.stop()


class TestRotation:
    async def test_list_directory_files(self, manager, log_dir):
        (log_dir / _log_name(1, "001")).write_text("data")

        assert await manager.list_directory_files() == [_log_name(1, "001")]

    async def test_gzip(self, manager, log_dir):
        log_file = log_dir / _log_name(1, "001")
        log_file.write_text("\nSOME DATA")

        await manager.gzip(str(log_file))

        assert not log_file.exists()
        assert (log_dir / _log_name(1, "001", gz=True)).exists()

    async def test_gzip_of_missing_file_is_logged_only(self, manager, log_dir):
        assert await manager.gzip(str(log_dir / "fsdfsdfsf")) is False
        assert list(log_dir.iterdir()) == []

    async def test_dead_process_files_are_archived(self, manager, log_dir, eventually):
        for sequence in ("001", "002"):
            (log_dir / _log_name(DEAD_PID, sequence)).write_text("data")
        live_file = log_dir / _log_name(os.getpid(), "001")
        live_file.write_text("data")

        await manager.rescan()

        assert await eventually(
            lambda: all(
                (log_dir / _log_name(DEAD_PID, s, gz=True)).exists()
                and not (log_dir / _log_name(DEAD_PID, s)).exists()
                for s in ("001", "002")
            )
        )
        assert live_file.exists()

    async def test_files_beyond_cap_are_archived_on_watch_event(
        self, manager, log_dir, eventually
    ):
        await manager.start()
        pid = os.getpid()

        for i in range(manager.max_number_active_files + 1):
            (log_dir / _log_name(pid, f"00{i}")).write_text("\nSOME DATA")

        assert await eventually(
            lambda: (log_dir / _log_name(pid, "000", gz=True)).exists()
            and not (log_dir / _log_name(pid, "000")).exists()
        )
        for i in range(1, manager.max_number_active_files + 1):
            assert (log_dir / _log_name(pid, f"00{i}")).exists()

    async def test_initial_rescan_on_start(self, manager, log_dir, liveness_oracle, eventually):
        (log_dir / _log_name(DEAD_PID, "001")).write_text("data")

        await manager.start()

        assert await eventually(lambda: (log_dir / _log_name(DEAD_PID, "001", gz=True)).exists())
        assert liveness_oracle.calls >= 1

    async def test_liveness_failure_aborts_rescan(self, log_dir, caplog):
        class FailingOracle:
            async def snapshot(self):
                raise TransientIOError("process table listing", PermissionError("denied"))

        manager = LogManager(log_dir=str(log_dir), liveness_oracle=FailingOracle())
        log_file = log_dir / _log_name(DEAD_PID, "001")
        log_file.write_text("data")

        await manager.rescan()
        await asyncio.sleep(0.05)

        assert log_file.exists()
        assert "aborted" in caplog.text

    async def test_missing_log_dir_aborts_rescan(self, tmp_path, liveness_oracle):
        manager = LogManager(log_dir=str(tmp_path / "missing"), liveness_oracle=liveness_oracle)

        await manager.rescan()


class TestRetention:
    async def test_retention_horizon(self, log_dir):
        manager = LogManager(log_dir=str(log_dir), retention_days=3, clock=lambda: 1000.0)

        expected = 1_000_000 - 3 * MILLIS_PER_DAY
        assert manager.get_retention_horizon_millis() == expected
        assert manager.get_logs_retention_time_millis() == expected

    async def test_old_archives_are_deleted(self, manager, log_dir, eventually):
        pid = os.getpid()
        fresh = log_dir / _log_name(pid, "001", gz=True)
        fresh.write_bytes(b"SOME DATA")
        old = log_dir / _log_name(pid, "002", gz=True)
        old.write_bytes(b"SOME DATA")
        expire_ns = (manager.get_retention_horizon_millis() - 1) * 1_000_000
        os.utime(old, ns=(expire_ns, expire_ns))

        await manager.start()

        assert await eventually(lambda: not old.exists())
        assert fresh.exists()


@requires_tail
class TestTail:
    @pytest.fixture
    def log_file(self, log_dir):
        path = log_dir / _log_name(os.getpid(), "001")
        path.write_text("".join(f"***{i}\n" for i in range(20)))
        return path

    async def test_tail(self, manager, log_file):
        chunks, codes = [], []

        await manager.tail(str(log_file), chunks.append, codes.append, lines=2)

        assert b"".join(chunks) == b"***18\n***19\n"
        assert codes == [0]

    async def test_head_uses_default_lines(self, manager, log_file):
        chunks = []

        await manager.head(str(log_file), chunks.append)

        assert b"".join(chunks).decode().splitlines() == [f"***{i}" for i in range(10)]

    async def test_invalid_arguments_raise_immediately(self, manager, log_file):
        with pytest.raises(ConfigurationError):
            manager.tail(str(log_file), on_data=None)
        with pytest.raises(ConfigurationError):
            manager.head("", on_data=print)
        with pytest.raises(ConfigurationError):
            manager.tail_follow(str(log_file), on_data=print, lines=0)
        with pytest.raises(ConfigurationError):
            manager.tail_follow(str(log_file), on_data=print, on_registration="nope")

    async def test_tail_follow_and_stop_following(self, manager, log_file, eventually):
        chunks = []
        registrations = []

        listener_id = await manager.tail_follow(
            str(log_file),
            chunks.append,
            on_registration=lambda err, file, lid: registrations.append((err, file, lid)),
        )

        assert registrations == [(None, str(log_file), listener_id)]
        assert await eventually(lambda: b"***19" in b"".join(chunks))

        manager.stop_tail_following(str(log_file), listener_id)
        assert manager.tail_multiplexer.session_count() == 0

    async def test_tail_follow_missing_file(self, manager, log_dir):
        registrations = []

        listener_id = await manager.tail_follow(
            str(log_dir / "sfsdfsdfsdf"),
            print,
            on_registration=lambda err, file, lid: registrations.append((err, lid)),
        )

        assert listener_id is None
        [(error, lid)] = registrations
        assert isinstance(error, MissingFileError)
        assert lid is None
        assert manager.tail_multiplexer.session_count() == 0

    async def test_stop_kills_tail_processes(self, manager, log_file, eventually):
        chunks = []
        await manager.start()
        await manager.tail_follow(str(log_file), chunks.append)
        await manager.tail_follow(str(log_file), chunks.append)
        process = manager.tail_multiplexer.get_session(str(log_file)).process
        assert await eventually(lambda: len(chunks) > 0)

        await manager.stop()

        assert manager.tail_multiplexer.session_count() == 0
        assert await eventually(lambda: process.returncode is not None)
        received = len(chunks)
        with open(log_file, "a") as f:
            f.write("after stop\n")
        await asyncio.sleep(0.1)
        assert len(chunks) == received

    async def test_stop_while_tail_follow_is_registering(self, manager, log_file):
        chunks, closes, registrations = [], [], []

        task = manager.tail_follow(
            str(log_file),
            chunks.append,
            closes.append,
            on_registration=lambda err, file, lid: registrations.append((err, lid)),
        )
        await asyncio.sleep(0)
        await manager.stop()
        listener_id = await task

        with open(log_file, "a") as f:
            f.write("after stop\n")
        await asyncio.sleep(0.3)

        assert registrations == [(None, listener_id)]
        assert manager.tail_multiplexer.session_count() == 0
        assert chunks == []
        assert closes == []
        manager.stop_tail_following(str(log_file), listener_id)
