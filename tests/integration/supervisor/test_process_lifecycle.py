import os
import signal
from collections.abc import Awaitable, Callable
from pathlib import Path

import anyio
import pytest

from hound.exceptions import SpawnError, SupervisorError
from hound.supervisor import (
    ProcessSupervisor,
    TaskConfig,
    TaskEvent,
    TaskEventType,
    TaskIdentity,
    TaskState,
)

pytestmark = pytest.mark.anyio

WaitFor = Callable[..., Awaitable[None]]


class Recorder:
    """Collects output lines and lifecycle events from a supervisor."""

    def __init__(self, supervisor: ProcessSupervisor) -> None:
        self.stdout: list[tuple[TaskIdentity, str]] = []
        self.stderr: list[tuple[TaskIdentity, str]] = []
        self.events: list[TaskEvent] = []
        supervisor.register_stdout(self._on_stdout)
        supervisor.register_stderr(self._on_stderr)
        supervisor.register_event_listener(self._on_event)

    async def _on_stdout(self, identity: TaskIdentity, line: str) -> None:
        self.stdout.append((identity, line))

    async def _on_stderr(self, identity: TaskIdentity, line: str) -> None:
        self.stderr.append((identity, line))

    async def _on_event(self, event: TaskEvent) -> None:
        self.events.append(event)

    def event_types(self) -> list[TaskEventType]:
        return [event.event_type for event in self.events]

    def count(self, event_type: TaskEventType) -> int:
        return self.event_types().count(event_type)


class TestStartStop:
    async def test_start_runs_process(self, wait_for: WaitFor) -> None:
        supervisor = ProcessSupervisor(TaskConfig(name="web", command="sleep 30"))
        recorder = Recorder(supervisor)

        async with supervisor:
            await supervisor.start()

            assert supervisor.is_running()
            assert supervisor.state == TaskState.RUNNING
            assert supervisor.pid is not None
            assert supervisor.display_id == f"web:{supervisor.pid}"
            await wait_for(lambda: TaskEventType.STARTED in recorder.event_types())

    async def test_stop_kills_process(self, wait_for: WaitFor) -> None:
        supervisor = ProcessSupervisor(TaskConfig(name="web", command="sleep 30"))
        recorder = Recorder(supervisor)

        async with supervisor:
            await supervisor.start()
            pid = supervisor.pid
            await supervisor.stop()

            assert not supervisor.is_running()
            assert supervisor.state == TaskState.STOPPED
            assert supervisor.display_id == "web:stopped"
            assert supervisor.status.last_exit_code == -signal.SIGKILL
            await wait_for(lambda: TaskEventType.STOPPED in recorder.event_types())

        stopped = next(
            e for e in recorder.events if e.event_type == TaskEventType.STOPPED
        )
        assert stopped.pid == pid
        # Being stopped is not an exit: no crash is reported
        assert TaskEventType.CRASHED not in recorder.event_types()

    async def test_stop_kills_whole_process_group(self, tmp_path: Path) -> None:
        pid_file = tmp_path / "child.pid"
        supervisor = ProcessSupervisor(
            TaskConfig(name="web", command=f"sleep 30 & echo $! > {pid_file}; wait")
        )

        async with supervisor:
            await supervisor.start()
            with anyio.fail_after(5):
                while not pid_file.exists() or not pid_file.read_text().strip():
                    await anyio.sleep(0.02)
            child_pid = int(pid_file.read_text())

            await supervisor.stop()

        with anyio.fail_after(5):
            while _process_exists(child_pid):
                await anyio.sleep(0.02)

    async def test_stop_when_not_running_is_noop(self) -> None:
        supervisor = ProcessSupervisor(TaskConfig(name="web", command="sleep 30"))

        async with supervisor:
            await supervisor.stop()
            await supervisor.stop()

            assert supervisor.state == TaskState.STOPPED

    async def test_start_when_running_is_noop(self) -> None:
        supervisor = ProcessSupervisor(TaskConfig(name="web", command="sleep 30"))

        async with supervisor:
            await supervisor.start()
            pid = supervisor.pid
            await supervisor.start()

            assert supervisor.pid == pid

    async def test_exit_from_context_kills_process(self) -> None:
        supervisor = ProcessSupervisor(TaskConfig(name="web", command="sleep 30"))

        async with supervisor:
            await supervisor.start()
            pid = supervisor.pid
            assert pid is not None

        assert not supervisor.is_running()
        with anyio.fail_after(5):
            while _process_exists(pid):
                await anyio.sleep(0.02)

    async def test_start_outside_context_raises(self) -> None:
        supervisor = ProcessSupervisor(TaskConfig(name="web", command="true"))

        with pytest.raises(SupervisorError, match="not active"):
            await supervisor.start()

    async def test_reload_outside_context_raises(self) -> None:
        supervisor = ProcessSupervisor(TaskConfig(name="web", command="true"))

        with pytest.raises(SupervisorError, match="not active"):
            supervisor.reload()

    async def test_missing_shell_raises_spawn_error(self) -> None:
        supervisor = ProcessSupervisor(
            TaskConfig(name="web", command="true", shell="/nonexistent/shell")
        )

        async with supervisor:
            with pytest.raises(SpawnError) as exc_info:
                await supervisor.start()

            assert exc_info.value.task_name == "web"
            assert supervisor.state == TaskState.FAILED
            assert not supervisor.is_running()

    async def test_wait_returns_exit_code(self) -> None:
        supervisor = ProcessSupervisor(
            TaskConfig(name="job", command="sleep 0.2; exit 3")
        )

        async with supervisor:
            assert await supervisor.wait() is None
            await supervisor.start()
            with anyio.fail_after(5):
                assert await supervisor.wait() == 3


class TestOutput:
    async def test_stdout_and_stderr_lines(self, wait_for: WaitFor) -> None:
        supervisor = ProcessSupervisor(
            TaskConfig(
                name="job",
                command="echo one; echo two; echo oops >&2; printf partial",
            )
        )
        recorder = Recorder(supervisor)

        async with supervisor:
            await supervisor.start()
            pid = supervisor.pid
            await wait_for(lambda: len(recorder.stdout) == 3 and recorder.stderr)

        assert sorted(line for _, line in recorder.stdout) == ["one", "partial", "two"]
        assert [line for _, line in recorder.stderr] == ["oops"]
        assert {identity for identity, _ in recorder.stdout} == {
            TaskIdentity("job", pid)
        }

    async def test_identity_is_captured_when_line_is_read(
        self, wait_for: WaitFor
    ) -> None:
        supervisor = ProcessSupervisor(TaskConfig(name="job", command="echo done"))
        recorder = Recorder(supervisor)

        async with supervisor:
            await supervisor.start()
            pid = supervisor.pid
            await wait_for(lambda: not supervisor.is_running() and recorder.stdout)

        # The process is gone but the line still names the pid that wrote it
        assert recorder.stdout == [(TaskIdentity("job", pid), "done")]

    async def test_env_and_cwd(self, tmp_path: Path, wait_for: WaitFor) -> None:
        supervisor = ProcessSupervisor(
            TaskConfig(
                name="job",
                command='echo "$GREETING"; pwd',
                cwd=tmp_path,
                env={"GREETING": "hello"},
            )
        )
        recorder = Recorder(supervisor)

        async with supervisor:
            await supervisor.start()
            await wait_for(lambda: len(recorder.stdout) == 2)

        lines = [line for _, line in recorder.stdout]
        assert "hello" in lines
        assert tmp_path.resolve() in {Path(line).resolve() for line in lines}

    async def test_failing_listener_does_not_stop_output(
        self, wait_for: WaitFor
    ) -> None:
        supervisor = ProcessSupervisor(TaskConfig(name="job", command="echo a; echo b"))

        async def broken(_identity: TaskIdentity, _line: str) -> None:
            msg = "listener failed"
            raise RuntimeError(msg)

        supervisor.register_stdout(broken)
        recorder = Recorder(supervisor)

        async with supervisor:
            await supervisor.start()
            await wait_for(lambda: len(recorder.stdout) == 2)


class TestExitHandling:
    async def test_clean_exit_reports_exited(self, wait_for: WaitFor) -> None:
        supervisor = ProcessSupervisor(TaskConfig(name="job", command="true"))
        recorder = Recorder(supervisor)

        async with supervisor:
            await supervisor.start()
            await wait_for(lambda: TaskEventType.EXITED in recorder.event_types())

            assert supervisor.status.last_exit_code == 0
            assert supervisor.display_id == "job:stopped"

    async def test_non_zero_exit_reports_crashed(self, wait_for: WaitFor) -> None:
        supervisor = ProcessSupervisor(TaskConfig(name="job", command="exit 7"))
        recorder = Recorder(supervisor)

        async with supervisor:
            await supervisor.start()
            await wait_for(lambda: TaskEventType.CRASHED in recorder.event_types())

        crashed = next(
            e for e in recorder.events if e.event_type == TaskEventType.CRASHED
        )
        assert crashed.exit_code == 7
        assert supervisor.status.last_exit_code == 7

    async def test_no_restart_when_disabled(self, wait_for: WaitFor) -> None:
        supervisor = ProcessSupervisor(
            TaskConfig(name="job", command="true", restart_delay=0.1)
        )
        recorder = Recorder(supervisor)

        async with supervisor:
            await supervisor.start()
            await wait_for(lambda: TaskEventType.EXITED in recorder.event_types())
            await anyio.sleep(0.5)

            assert not supervisor.is_running()
            assert supervisor.display_id == "job:stopped"
            assert recorder.count(TaskEventType.STARTED) == 1
            assert TaskEventType.RESTARTING not in recorder.event_types()

    async def test_restart_on_exit_keeps_task_alive(self, wait_for: WaitFor) -> None:
        supervisor = ProcessSupervisor(
            TaskConfig(
                name="job", command="exit 1", restart_on_exit=True, restart_delay=0.1
            )
        )
        recorder = Recorder(supervisor)

        async with supervisor:
            await supervisor.start()
            await wait_for(lambda: recorder.count(TaskEventType.STARTED) >= 3)

            assert supervisor.status.restart_count >= 2
            assert recorder.count(TaskEventType.RESTARTING) >= 2

    async def test_crash_loop_is_throttled(self, wait_for: WaitFor) -> None:
        supervisor = ProcessSupervisor(
            TaskConfig(
                name="job", command="exit 1", restart_on_exit=True, restart_delay=0.3
            )
        )
        recorder = Recorder(supervisor)

        async with supervisor:
            started = anyio.current_time()
            await supervisor.start()
            await wait_for(lambda: recorder.count(TaskEventType.STARTED) >= 3)
            elapsed = anyio.current_time() - started

        # Two restarts, each at least one restart delay after the previous start
        assert elapsed >= 0.5

    async def test_external_kill_restarts_within_delay(
        self, wait_for: WaitFor
    ) -> None:
        supervisor = ProcessSupervisor(
            TaskConfig(
                name="web",
                command="sleep 100",
                paths=("src/*.go",),
                restart_on_exit=True,
                restart_delay=0.5,
            )
        )

        async with supervisor:
            await supervisor.start()
            first_pid = supervisor.pid
            assert first_pid is not None
            await anyio.sleep(0.6)

            os.killpg(first_pid, signal.SIGKILL)
            await wait_for(
                lambda: supervisor.pid is not None and supervisor.pid != first_pid,
                timeout=1.0,
            )

            assert supervisor.status.restart_count == 1

    async def test_stop_cancels_pending_restart(self, wait_for: WaitFor) -> None:
        supervisor = ProcessSupervisor(
            TaskConfig(
                name="job", command="exit 1", restart_on_exit=True, restart_delay=0.5
            )
        )
        recorder = Recorder(supervisor)

        async with supervisor:
            await supervisor.start()
            await wait_for(lambda: supervisor.state == TaskState.BACKOFF)

            await supervisor.stop()
            await anyio.sleep(0.8)

            assert supervisor.state == TaskState.STOPPED
            assert not supervisor.is_running()
            assert recorder.count(TaskEventType.STARTED) == 1


class TestReload:
    async def test_rapid_reloads_leave_one_new_process(
        self, wait_for: WaitFor
    ) -> None:
        supervisor = ProcessSupervisor(
            TaskConfig(name="web", command="sleep 30", restart_delay=0.3)
        )
        recorder = Recorder(supervisor)

        async with supervisor:
            await supervisor.start()
            first_pid = supervisor.pid

            for _ in range(5):
                supervisor.reload()
                await anyio.sleep(0.02)

            await wait_for(lambda: recorder.count(TaskEventType.STARTED) == 2)
            await anyio.sleep(0.5)

            assert supervisor.is_running()
            assert supervisor.pid != first_pid
            assert recorder.count(TaskEventType.RELOADING) == 1
            assert recorder.count(TaskEventType.STARTED) == 2
            assert first_pid is not None
            assert not _process_exists(first_pid)

    async def test_reload_starts_stopped_task(self, wait_for: WaitFor) -> None:
        supervisor = ProcessSupervisor(
            TaskConfig(name="web", command="sleep 30", restart_delay=0.1)
        )

        async with supervisor:
            supervisor.reload()
            await wait_for(supervisor.is_running)

    async def test_reload_does_not_restart_twice_with_restart_on_exit(
        self, wait_for: WaitFor
    ) -> None:
        supervisor = ProcessSupervisor(
            TaskConfig(
                name="web", command="sleep 30", restart_on_exit=True, restart_delay=0.1
            )
        )
        recorder = Recorder(supervisor)

        async with supervisor:
            await supervisor.start()
            supervisor.reload()
            await wait_for(lambda: recorder.count(TaskEventType.STARTED) == 2)
            await anyio.sleep(0.4)

            assert recorder.count(TaskEventType.STARTED) == 2
            assert supervisor.status.restart_count == 0


def _process_exists(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True

    # A zombie still answers signal 0; treat it as gone
    try:
        stat = Path(f"/proc/{pid}/stat").read_text()
    except OSError:
        return True
    return stat.rsplit(")", 1)[-1].split()[0] != "Z"
