# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from adapters.asr.deepgram_socket import DeepgramSocket
from enums.permission import PermissionKind
from enums.source import AudioSource
from enums.state import ConnectionState, ProcessState
from errors import PermissionDeniedError, RemoteConnectionError, SubprocessError
from events.types import EventType, TranscriptEvent, UtteranceEndEvent
from transcription.streaming import StreamingPipeline

from fakes import OPTIONS, FakeConnector, RecordingSleep, fake_capture, results_frame, wait_until


def make_pipeline(connector, scenario="ready", source=AudioSource.SYSTEM, **capture_kwargs):
    process = fake_capture(scenario, **capture_kwargs)
    socket = DeepgramSocket(
        OPTIONS,
        sample_rate=16000,
        connect=connector,
        sleep=RecordingSleep(),
        keepalive_interval_s=60.0,
    )
    return StreamingPipeline(process, socket, source), process, socket


def record(pipeline, *events: EventType) -> list[tuple[EventType, tuple]]:
    seen: list[tuple[EventType, tuple]] = []
    for event in events:
        pipeline.on(event, lambda *args, _e=event: seen.append((_e, args)))
    return seen


@pytest.mark.asyncio
async def test_frames_flow_from_capture_to_socket_in_order() -> None:
    connector = FakeConnector()
    pipeline, _process, _socket = make_pipeline(connector, chunks=2, chunk_bytes=640)
    seen = record(pipeline, EventType.STARTED, EventType.STOPPED)

    await pipeline.start()
    ws = connector.sockets[0]
    await wait_until(lambda: sum(len(f) for f in ws.binary) == 1280)
    await pipeline.stop()

    assert b"".join(ws.binary) == b"\x01" * 640 + b"\x02" * 640
    assert ws.control[-1] == {"type": "CloseStream"}
    assert [e for e, _ in seen] == [EventType.STARTED, EventType.STOPPED]


@pytest.mark.asyncio
async def test_transcripts_are_tagged_with_the_pipeline_source() -> None:
    connector = FakeConnector()
    pipeline, _process, _socket = make_pipeline(connector, source=AudioSource.MIC)
    transcripts: list[TranscriptEvent] = []
    utterances: list[UtteranceEndEvent] = []
    pipeline.on(EventType.TRANSCRIPT, transcripts.append)
    pipeline.on(EventType.UTTERANCE_END, utterances.append)

    await pipeline.start()
    ws = connector.sockets[0]
    ws.push(results_frame("", is_final=False))
    ws.push(results_frame("good morning", is_final=False))
    ws.push(results_frame("good morning everyone"))
    ws.push({"type": "UtteranceEnd", "last_word_end": 1.5})
    await wait_until(lambda: len(utterances) == 1)
    await pipeline.stop()

    assert [t.transcript for t in transcripts] == ["good morning", "good morning everyone"]
    assert [t.is_final for t in transcripts] == [False, True]
    assert all(t.source is AudioSource.MIC for t in transcripts)
    assert utterances == [UtteranceEndEvent(source=AudioSource.MIC, last_word_end=1.5)]


@pytest.mark.asyncio
async def test_server_error_frame_becomes_error_event() -> None:
    connector = FakeConnector()
    pipeline, _process, _socket = make_pipeline(connector)
    errors: list[Exception] = []
    pipeline.on(EventType.ERROR, errors.append)

    await pipeline.start()
    connector.sockets[0].push({"type": "Error", "description": "bad audio"})
    await wait_until(lambda: len(errors) == 1)
    await pipeline.stop()

    assert isinstance(errors[0], RemoteConnectionError)
    assert "bad audio" in str(errors[0])


@pytest.mark.asyncio
async def test_stop_is_idempotent() -> None:
    connector = FakeConnector()
    pipeline, process, socket = make_pipeline(connector)
    stopped: list[bool] = []
    pipeline.on(EventType.STOPPED, lambda: stopped.append(True))

    await pipeline.start()
    await pipeline.stop()
    await pipeline.stop()

    assert stopped == [True]
    assert process.state is ProcessState.TERMINATED
    assert socket.state is ConnectionState.DISCONNECTED


@pytest.mark.asyncio
async def test_connect_failure_never_starts_capture() -> None:
    connector = FakeConnector([OSError("connection refused")])
    pipeline, process, _socket = make_pipeline(connector)

    with pytest.raises(RemoteConnectionError):
        await pipeline.start()

    assert process.state is ProcessState.IDLE
    assert not pipeline.is_running


@pytest.mark.asyncio
async def test_capture_failure_closes_the_socket() -> None:
    connector = FakeConnector()
    pipeline, _process, socket = make_pipeline(
        connector, "permission", permission=PermissionKind.SYSTEM_AUDIO
    )

    with pytest.raises(PermissionDeniedError):
        await pipeline.start()

    assert socket.state is ConnectionState.DISCONNECTED
    assert connector.sockets[0].control == [{"type": "CloseStream"}]
    assert not pipeline.is_running


@pytest.mark.asyncio
async def test_unexpected_capture_exit_reports_error_then_stopped() -> None:
    connector = FakeConnector()
    pipeline, _process, socket = make_pipeline(connector, "crash-after-ready", chunks=1)
    seen = record(pipeline, EventType.ERROR, EventType.STOPPED)

    await pipeline.start()
    await wait_until(lambda: any(e is EventType.STOPPED for e, _ in seen))

    assert [e for e, _ in seen] == [EventType.ERROR, EventType.STOPPED]
    error = seen[0][1][0]
    assert isinstance(error, SubprocessError)
    assert error.exit_code == 2
    assert not pipeline.is_running
    assert socket.state is ConnectionState.DISCONNECTED

    await pipeline.stop()
    assert [e for e, _ in seen] == [EventType.ERROR, EventType.STOPPED]
