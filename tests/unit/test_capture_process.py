# pylint: disable=missing-module-docstring,missing-function-docstring

import json

import pytest

from capture.process import CaptureEvent, CaptureProcess, ProcessExit
from enums.permission import PermissionKind
from enums.state import ProcessState
from errors import PermissionDeniedError, SubprocessError
from observability import logger
from protocol.control import AudioLevelMessage, CaptureHandshake

from fakes import fake_capture, process_is_gone, wait_until


@pytest.mark.asyncio
async def test_ready_handshake_then_frames_then_graceful_stop() -> None:
    proc = fake_capture("ready", chunks=2, chunk_bytes=640)
    frames: list[bytes] = []
    exits: list[ProcessExit] = []
    proc.on(CaptureEvent.FRAME, frames.append)
    proc.on(CaptureEvent.EXIT, exits.append)

    handshake = await proc.start()

    assert handshake == CaptureHandshake(16000, 1, 16, 200, None)
    assert proc.state is ProcessState.RUNNING
    assert proc.is_running

    await wait_until(lambda: sum(len(f) for f in frames) == 1280)
    assert b"".join(frames) == b"\x01" * 640 + b"\x02" * 640

    await proc.stop()

    assert proc.state is ProcessState.TERMINATED
    assert exits == [ProcessExit(exit_code=0, signal=None)]


@pytest.mark.asyncio
async def test_permission_denied_is_classified_distinctly() -> None:
    proc = fake_capture("permission", permission=PermissionKind.MICROPHONE)

    with pytest.raises(PermissionDeniedError) as excinfo:
        await proc.start()

    assert excinfo.value.permission is PermissionKind.MICROPHONE
    assert not isinstance(excinfo.value, SubprocessError)
    assert proc.state is ProcessState.TERMINATED


@pytest.mark.asyncio
async def test_generic_startup_error_is_subprocess_error() -> None:
    proc = fake_capture("error")

    with pytest.raises(SubprocessError) as excinfo:
        await proc.start()

    assert "CAPTURE_ERROR" in str(excinfo.value)
    assert proc.state is ProcessState.TERMINATED


@pytest.mark.asyncio
async def test_exit_before_ready_carries_exit_code() -> None:
    proc = fake_capture("exit")

    with pytest.raises(SubprocessError) as excinfo:
        await proc.start()

    assert excinfo.value.exit_code == 3
    assert proc.state is ProcessState.TERMINATED


@pytest.mark.asyncio
async def test_readiness_timeout_force_kills_the_child() -> None:
    proc = fake_capture("hang", ready_timeout_s=0.5)

    with pytest.raises(SubprocessError) as excinfo:
        await proc.start()

    assert "did not send ready message" in str(excinfo.value)
    assert proc.state is ProcessState.TERMINATED
    assert proc.returncode is not None
    assert process_is_gone(proc.pid)


@pytest.mark.asyncio
async def test_start_twice_is_rejected() -> None:
    proc = fake_capture("ready")
    await proc.start()
    try:
        with pytest.raises(SubprocessError):
            await proc.start()
    finally:
        await proc.stop()


@pytest.mark.asyncio
async def test_spawn_failure_is_subprocess_error() -> None:
    proc = CaptureProcess(
        binary_path="/nonexistent/dg-system-audio",
        args=[],
        name="system-audio",
        permission=PermissionKind.SYSTEM_AUDIO,
    )

    with pytest.raises(SubprocessError):
        await proc.start()

    assert proc.state is ProcessState.TERMINATED


@pytest.mark.asyncio
async def test_no_frames_are_observable_before_ready() -> None:
    proc = fake_capture("early-pcm", chunks=1, chunk_bytes=320)
    frames: list[bytes] = []
    proc.on(CaptureEvent.FRAME, frames.append)

    await proc.start()
    await wait_until(lambda: sum(len(f) for f in frames) == 320)
    await proc.stop()

    assert b"\xee" not in b"".join(frames)


@pytest.mark.asyncio
async def test_level_messages_are_emitted_after_ready() -> None:
    proc = fake_capture("levels", chunks=1)
    levels: list[AudioLevelMessage] = []
    proc.on(CaptureEvent.LEVEL, levels.append)

    handshake = await proc.start()
    await wait_until(lambda: len(levels) == 1)
    await proc.stop()

    assert handshake.frequency_bands == (0.0, 125.0, 250.0)
    assert levels[0].rms == 0.25
    assert [b.freq for b in levels[0].fft] == [0.0, 125.0]


@pytest.mark.asyncio
async def test_stderr_noise_does_not_break_startup() -> None:
    proc = fake_capture("noise")

    await proc.start()
    await proc.stop()

    assert proc.exit_info == ProcessExit(exit_code=0, signal=None)


@pytest.mark.asyncio
async def test_stop_escalates_to_kill_when_term_is_ignored(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    captured: list[str] = []
    monkeypatch.setattr(logger, "_print", captured.append)

    proc = fake_capture("ignore-term", stop_grace_s=0.3)
    await proc.start()
    await proc.stop()

    assert proc.exit_info == ProcessExit(exit_code=None, signal="SIGKILL")
    event_types = [json.loads(line)["event_type"] for line in captured]
    assert "CAPTURE_STOP_ESCALATED" in event_types


@pytest.mark.asyncio
async def test_stop_is_idempotent_and_exit_fires_once() -> None:
    proc = fake_capture("ready")
    exits: list[ProcessExit] = []
    proc.on(CaptureEvent.EXIT, exits.append)

    await proc.start()
    await proc.stop()
    await proc.stop()

    assert len(exits) == 1


@pytest.mark.asyncio
async def test_stop_before_start_is_a_no_op() -> None:
    proc = fake_capture("ready")

    await proc.stop()

    assert proc.state is ProcessState.IDLE


@pytest.mark.asyncio
async def test_kill_is_synchronous_and_exit_is_reported() -> None:
    proc = fake_capture("ready")
    exits: list[ProcessExit] = []
    proc.on(CaptureEvent.EXIT, exits.append)

    await proc.start()
    proc.kill()
    await wait_until(lambda: len(exits) == 1)

    assert exits[0].signal == "SIGKILL"
    assert proc.state is ProcessState.TERMINATED


@pytest.mark.asyncio
async def test_unexpected_exit_while_running_is_reported() -> None:
    proc = fake_capture("crash-after-ready", chunks=1)
    exits: list[ProcessExit] = []
    proc.on(CaptureEvent.EXIT, exits.append)

    await proc.start()
    await wait_until(lambda: len(exits) == 1)

    assert exits == [ProcessExit(exit_code=2, signal=None)]
    assert proc.state is ProcessState.TERMINATED


@pytest.mark.asyncio
async def test_odd_control_lines_before_ready_do_not_stall_startup() -> None:
    proc = fake_capture("odd-control", ready_timeout_s=3.0)

    handshake = await proc.start()
    await proc.stop()

    assert handshake == CaptureHandshake(16000, 1, 16, 200, None)
    assert proc.exit_info == ProcessExit(exit_code=0, signal=None)
