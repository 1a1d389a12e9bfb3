from __future__ import annotations

import asyncio
import time

import pytest

from kube_log_mux.core.errors import ContextSpawnError
from kube_log_mux.core.models import ContextState, RawLine, StreamClosed
from kube_log_mux.core.supervisor import ProcessHandle, ProcessSupervisor, build_stern_args


async def _collect(queue: asyncio.Queue, contexts: int) -> list[RawLine | StreamClosed]:
    items: list[RawLine | StreamClosed] = []
    closed = 0
    while closed < contexts:
        item = await asyncio.wait_for(queue.get(), timeout=10)
        items.append(item)
        if isinstance(item, StreamClosed):
            closed += 1
    return items


def test_build_stern_args_defaults(make_config) -> None:
    config = make_config(since="10m", pod_query=("nginx", "--tail", "5"))
    assert build_stern_args("prod", config) == [
        "--context",
        "prod",
        "--all-namespaces",
        "--output",
        "json",
        "--timestamps=short",
        "--since",
        "10m",
        "--timezone",
        "UTC",
        "--no-follow",
        "nginx",
        "--tail",
        "5",
    ]


def test_build_stern_args_follow_and_containers(make_config) -> None:
    config = make_config(follow=True, include_containers="worker,app.v2")
    args = build_stern_args("prod", config)
    assert "--no-follow" not in args
    assert args[-3:] == ["--container", r"^(app\.v2|worker)$", "app"]


def test_build_stern_args_without_defaults(make_config) -> None:
    config = make_config(stern_defaults=False, pod_query=("-n", "kube-system", "coredns"))
    assert build_stern_args("dev", config) == ["--context", "dev", "-n", "kube-system", "coredns"]


@pytest.mark.asyncio
async def test_handle_spawn_failure_is_recorded() -> None:
    handle = ProcessHandle("prod", ["/nonexistent/stern-binary"])
    with pytest.raises(ContextSpawnError):
        await handle.start()

    failure = handle.failure()
    assert handle.state is ContextState.FAILED
    assert failure is not None
    assert failure.context == "prod"
    assert "failed" in failure.describe()


@pytest.mark.asyncio
async def test_handle_nonzero_exit_keeps_stderr_tail(child_command, lines_script) -> None:
    argv = child_command({"a": lines_script(["one"], exit_code=3, stderr="boom")})("a")
    handle = ProcessHandle("a", argv)
    await handle.start()
    lines = [line async for line in handle.iter_lines()]
    code = await handle.wait()

    failure = handle.failure()
    assert lines == ["one"]
    assert code == 3
    assert failure is not None
    assert failure.returncode == 3
    assert failure.stderr_tail == ("boom",)


@pytest.mark.asyncio
async def test_sequential_runs_contexts_in_order(make_config, fast_settings, child_command, lines_script) -> None:
    command = child_command(
        {
            "a": lines_script(["a1", "a2"], delay=0.2),
            "b": lines_script(["b1"]),
        }
    )
    supervisor = ProcessSupervisor(make_config(), fast_settings, contexts=["a", "b"], command=command)
    queue: asyncio.Queue = asyncio.Queue()
    await supervisor.start(queue)

    items = await _collect(queue, 2)
    await supervisor.terminate_all()

    assert items == [RawLine("a", "a1"), RawLine("a", "a2"), StreamClosed("a"), RawLine("b", "b1"), StreamClosed("b")]
    assert supervisor.failures() == []


@pytest.mark.asyncio
async def test_all_at_once_runs_concurrently(make_config, fast_settings, child_command, lines_script) -> None:
    command = child_command({ctx: lines_script([ctx], delay=0.5) for ctx in ("a", "b", "c")})
    supervisor = ProcessSupervisor(
        make_config(all_at_once=True), fast_settings, contexts=["a", "b", "c"], command=command
    )
    queue: asyncio.Queue = asyncio.Queue()

    started = time.monotonic()
    await supervisor.start(queue)
    items = await _collect(queue, 3)
    elapsed = time.monotonic() - started
    await supervisor.terminate_all()

    assert sorted(i.text for i in items if isinstance(i, RawLine)) == ["a", "b", "c"]
    # three sequential 0.5s sleeps would need at least 1.5s
    assert elapsed < 1.4


@pytest.mark.asyncio
async def test_spawn_failure_does_not_stop_other_contexts(
    make_config, fast_settings, child_command, lines_script
) -> None:
    command = child_command({"ok": lines_script(["hello"])})
    completed: list[str] = []
    supervisor = ProcessSupervisor(make_config(), fast_settings, contexts=["broken", "ok"], command=command)
    supervisor.for_each_completion(lambda h: completed.append(h.context))
    queue: asyncio.Queue = asyncio.Queue()
    await supervisor.start(queue)

    items = await _collect(queue, 2)
    await supervisor.terminate_all()

    assert RawLine("ok", "hello") in items
    assert completed == ["broken", "ok"]
    assert [f.context for f in supervisor.failures()] == ["broken"]
    assert not supervisor.all_failed_to_spawn()


@pytest.mark.asyncio
async def test_all_failed_to_spawn(make_config, fast_settings, child_command) -> None:
    supervisor = ProcessSupervisor(
        make_config(all_at_once=True), fast_settings, contexts=["x", "y"], command=child_command({})
    )
    queue: asyncio.Queue = asyncio.Queue()
    await supervisor.start(queue)
    await _collect(queue, 2)
    await supervisor.terminate_all()

    assert supervisor.all_failed_to_spawn()
    assert len(supervisor.failures()) == 2


@pytest.mark.asyncio
async def test_terminate_all_stops_long_running(make_config, fast_settings, child_command) -> None:
    forever = """
    import time
    print("up", flush=True)
    while True:
        time.sleep(0.1)
    """
    supervisor = ProcessSupervisor(
        make_config(all_at_once=True, follow=True),
        fast_settings,
        contexts=["a", "b"],
        command=child_command({"a": forever, "b": forever}),
    )
    queue: asyncio.Queue = asyncio.Queue()
    await supervisor.start(queue)
    first = [await asyncio.wait_for(queue.get(), timeout=10) for _ in range(2)]

    started = time.monotonic()
    await supervisor.terminate_all()

    assert {r.context for r in first} == {"a", "b"}
    assert time.monotonic() - started < fast_settings.terminate_timeout + 1
    assert all(not h.running for h in supervisor.handles)
    # stopped on request, so not reported as failures
    assert supervisor.failures() == []


@pytest.mark.asyncio
async def test_start_twice_is_rejected(make_config, fast_settings, child_command, lines_script) -> None:
    supervisor = ProcessSupervisor(
        make_config(), fast_settings, contexts=["a"], command=child_command({"a": lines_script([])})
    )
    queue: asyncio.Queue = asyncio.Queue()
    await supervisor.start(queue)
    with pytest.raises(RuntimeError):
        await supervisor.start(queue)
    await _collect(queue, 1)
    await supervisor.terminate_all()


@pytest.mark.asyncio
async def test_oversized_line_is_dropped_whole(child_command, lines_script) -> None:
    script = lines_script(["before", "x" * 5000, "after"], stderr="e" * 5000)
    handle = ProcessHandle("a", child_command({"a": script})("a"), stream_limit=1024)
    await handle.start()
    lines = [line async for line in handle.iter_lines()]
    code = await handle.wait()

    assert lines == ["before", "after"]
    assert code == 0
    assert handle.failure() is None
