from __future__ import annotations

from typing import TYPE_CHECKING
from unittest.mock import AsyncMock, MagicMock

import pytest

from hound.exceptions import SupervisorError, TaskNotFoundError
from hound.supervisor import (
    ChangeEvent,
    ChangeKind,
    ChangeSource,
    Orchestrator,
    PathMatcher,
    ProcessSupervisor,
    TaskIdentity,
)

if TYPE_CHECKING:
    from pytest_mock import MockerFixture

pytestmark = pytest.mark.anyio


def make_supervisor(
    mocker: MockerFixture, name: str, patterns: list[str]
) -> MagicMock:
    supervisor = mocker.MagicMock(spec=ProcessSupervisor)
    supervisor.name = name
    supervisor.display_id = f"{name}:100"
    supervisor.match.side_effect = PathMatcher(patterns).match
    supervisor.start = AsyncMock()
    supervisor.stop = AsyncMock()
    supervisor.get_status.return_value = {"state": "running", "pid": 100}
    return supervisor


class TestOrchestratorInit:
    def test_rejects_duplicate_task_names(self, mocker: MockerFixture) -> None:
        first = make_supervisor(mocker, "web", [])
        second = make_supervisor(mocker, "web", [])

        with pytest.raises(SupervisorError, match="Duplicate task name 'web'"):
            _ = Orchestrator([first, second])

    def test_registers_change_listener(self, mocker: MockerFixture) -> None:
        source = mocker.MagicMock(spec=ChangeSource)

        orchestrator = Orchestrator([make_supervisor(mocker, "web", [])], source)

        source.register_listener.assert_called_once_with(orchestrator.handle_change)

    def test_shares_task_patterns_with_change_source(
        self, mocker: MockerFixture
    ) -> None:
        source = mocker.MagicMock(spec=ChangeSource)

        orchestrator = Orchestrator(
            [
                make_supervisor(mocker, "web", ["src/*.go"]),
                make_supervisor(mocker, "env", [".env"]),
            ],
            source,
        )

        source.set_relevance.assert_called_once_with(orchestrator.is_relevant)
        assert orchestrator.is_relevant("src/app.go")
        assert orchestrator.is_relevant(".env")
        assert not orchestrator.is_relevant("README.md")

    def test_attaches_output_sink(self, mocker: MockerFixture) -> None:
        supervisor = make_supervisor(mocker, "web", [])
        sink = mocker.MagicMock()

        _ = Orchestrator([supervisor], output_sink=sink)

        supervisor.register_stdout.assert_called_once()
        supervisor.register_stderr.assert_called_once()
        supervisor.register_event_listener.assert_called_once_with(sink.write_event)

    async def test_output_listeners_tag_the_stream(self, mocker: MockerFixture) -> None:
        supervisor = make_supervisor(mocker, "web", [])
        sink = mocker.MagicMock()
        sink.write_line = AsyncMock()

        _ = Orchestrator([supervisor], output_sink=sink)
        stdout_listener = supervisor.register_stdout.call_args.args[0]
        stderr_listener = supervisor.register_stderr.call_args.args[0]
        identity = TaskIdentity("web", 100)

        await stdout_listener(identity, "out")
        await stderr_listener(identity, "err")

        sink.write_line.assert_any_await(identity, "stdout", "out")
        sink.write_line.assert_any_await(identity, "stderr", "err")


class TestHandleChange:
    async def test_reloads_only_matching_tasks(self, mocker: MockerFixture) -> None:
        web = make_supervisor(mocker, "web", ["src/*.go"])
        docs = make_supervisor(mocker, "docs", ["*.md"])
        orchestrator = Orchestrator([web, docs])

        await orchestrator.handle_change(ChangeEvent("src/app.go", ChangeKind.WRITE))

        web.reload.assert_called_once_with()
        docs.reload.assert_not_called()

    async def test_reloads_every_matching_task(self, mocker: MockerFixture) -> None:
        web = make_supervisor(mocker, "web", ["*.go"])
        worker = make_supervisor(mocker, "worker", ["**/*.go"])
        orchestrator = Orchestrator([web, worker])

        await orchestrator.handle_change(ChangeEvent("cmd/main.go", ChangeKind.CREATE))

        web.reload.assert_called_once_with()
        worker.reload.assert_called_once_with()

    async def test_unmatched_change_reloads_nothing(
        self, mocker: MockerFixture
    ) -> None:
        web = make_supervisor(mocker, "web", ["*.go"])
        orchestrator = Orchestrator([web])

        await orchestrator.handle_change(ChangeEvent("README.md", ChangeKind.WRITE))

        web.reload.assert_not_called()

    async def test_reload_failure_is_logged(self, mocker: MockerFixture) -> None:
        logger = mocker.MagicMock()
        web = make_supervisor(mocker, "web", ["*.go"])
        web.reload.side_effect = SupervisorError("not active")
        docs = make_supervisor(mocker, "docs", ["*.go"])
        orchestrator = Orchestrator([web, docs], logger=logger)

        await orchestrator.handle_change(ChangeEvent("a.go", ChangeKind.WRITE))

        logger.exception.assert_called_once_with("task_reload_failed", task="web")
        docs.reload.assert_called_once_with()


class TestTaskControl:
    def test_get_supervisor(self, mocker: MockerFixture) -> None:
        web = make_supervisor(mocker, "web", [])
        orchestrator = Orchestrator([web])

        assert orchestrator.get_supervisor("web") is web

    def test_get_unknown_supervisor_raises(self, mocker: MockerFixture) -> None:
        orchestrator = Orchestrator([make_supervisor(mocker, "web", [])])

        with pytest.raises(TaskNotFoundError) as exc_info:
            _ = orchestrator.get_supervisor("nope")

        assert exc_info.value.task_name == "nope"
        assert str(exc_info.value) == "Task 'nope' not found"

    async def test_start_and_stop_task(self, mocker: MockerFixture) -> None:
        web = make_supervisor(mocker, "web", [])
        orchestrator = Orchestrator([web])

        await orchestrator.start_task("web")
        await orchestrator.stop_task("web")

        web.start.assert_awaited_once()
        web.stop.assert_awaited_once()

    def test_reload_task(self, mocker: MockerFixture) -> None:
        web = make_supervisor(mocker, "web", [])
        orchestrator = Orchestrator([web])

        orchestrator.reload_task("web")

        web.reload.assert_called_once_with()

    async def test_start_starts_tasks_then_watch(self, mocker: MockerFixture) -> None:
        order: list[str] = []
        web = make_supervisor(mocker, "web", [])
        web.start.side_effect = lambda: order.append("web")
        source = mocker.MagicMock(spec=ChangeSource)
        source.start = AsyncMock(side_effect=lambda: order.append("watch"))
        orchestrator = Orchestrator([web], source)

        await orchestrator.start()

        assert order == ["web", "watch"]

    def test_get_status(self, mocker: MockerFixture) -> None:
        orchestrator = Orchestrator(
            [make_supervisor(mocker, "web", []), make_supervisor(mocker, "docs", [])]
        )

        status = orchestrator.get_status()

        assert set(status) == {"web", "docs"}
        assert status["web"]["pid"] == 100

    async def test_shutdown_without_run_is_noop(self, mocker: MockerFixture) -> None:
        orchestrator = Orchestrator([make_supervisor(mocker, "web", [])])
        await orchestrator.shutdown()
