# pylint: disable=missing-module-docstring,missing-function-docstring

import httpx
import pytest

from adapters.asr.deepgram_batch import DeepgramBatch
from adapters.asr.deepgram_socket import DeepgramSocket
from capture.options import MicOptions, SystemAudioOptions
from enums.mode import TranscriptionMode
from enums.permission import PermissionKind, PermissionStatus
from enums.source import AudioSource
from enums.state import ProcessState
from errors import PermissionDeniedError, PlatformError, ValidationError
from events.types import EventType, TranscriptEvent
from transcription.manager import ManagerConfig, TranscriptionManager

from fakes import (
    OPTIONS,
    FakeConnector,
    RecordingSleep,
    batch_body,
    fake_capture,
    make_fake_binary,
    results_frame,
    wait_until,
)


_PERMISSIONS = {
    AudioSource.SYSTEM: PermissionKind.SYSTEM_AUDIO,
    AudioSource.MIC: PermissionKind.MICROPHONE,
}


class Harness:
    """Factories that swap native binaries and the network for fakes."""

    def __init__(self, scenarios=None, upload_body=None) -> None:
        self.scenarios = scenarios or {}
        self.upload_body = upload_body or batch_body("from batch")
        self.processes = {}
        self.connectors = {}
        self.sample_rates = {}
        self.uploaders = []

    def process(self, source, options, _levels):
        proc = fake_capture(
            self.scenarios.get(source, "ready"),
            name=f"{source.value}-audio",
            permission=_PERMISSIONS[source],
        )
        self.processes[source] = proc
        self.sample_rates[source] = options.sample_rate
        return proc

    def socket(self, options, sample_rate, name):
        connector = FakeConnector()
        self.connectors[name] = connector
        return DeepgramSocket(
            options,
            sample_rate=sample_rate,
            name=name,
            connect=connector,
            sleep=RecordingSleep(),
            keepalive_interval_s=60.0,
        )

    def uploader(self, options, sample_rate, name):
        client = httpx.AsyncClient(
            transport=httpx.MockTransport(lambda _r: httpx.Response(200, json=self.upload_body))
        )
        uploader = DeepgramBatch(options, sample_rate=sample_rate, name=name, client=client)
        self.uploaders.append(uploader)
        return uploader

    def manager(self, config: ManagerConfig) -> TranscriptionManager:
        return TranscriptionManager(
            config,
            process_factory=self.process,
            socket_factory=self.socket,
            uploader_factory=self.uploader,
            platform_check=lambda: None,
        )


# -------------------------
# Validation
# -------------------------

@pytest.mark.asyncio
async def test_no_enabled_source_fails_before_platform_check() -> None:
    checked: list[bool] = []
    manager = TranscriptionManager(
        ManagerConfig(
            deepgram=OPTIONS,
            system_audio=SystemAudioOptions(enabled=False),
            mic=MicOptions(enabled=False),
        ),
        platform_check=lambda: checked.append(True),
    )

    with pytest.raises(ValidationError):
        await manager.start()

    assert checked == []
    assert not manager.is_running


@pytest.mark.asyncio
async def test_invalid_sample_rate_is_rejected() -> None:
    manager = Harness().manager(
        ManagerConfig(deepgram=OPTIONS, system_audio=SystemAudioOptions(sample_rate=0))
    )

    with pytest.raises(ValidationError):
        await manager.start()


def test_unknown_mode_is_rejected_at_construction() -> None:
    with pytest.raises(ValidationError):
        TranscriptionManager(ManagerConfig(deepgram=OPTIONS, mode="realtime"))


@pytest.mark.asyncio
async def test_platform_failure_propagates() -> None:
    def unsupported() -> None:
        raise PlatformError("Audio capture is only supported on macOS.")

    manager = TranscriptionManager(ManagerConfig(deepgram=OPTIONS), platform_check=unsupported)

    with pytest.raises(PlatformError):
        await manager.start()


# -------------------------
# Streaming
# -------------------------

@pytest.mark.asyncio
async def test_both_sources_stream_and_transcripts_are_routed_per_source() -> None:
    harness = Harness()
    manager = harness.manager(
        ManagerConfig(deepgram=OPTIONS, mic=MicOptions(sample_rate=48000))
    )
    everything: list[TranscriptEvent] = []
    system: list[TranscriptEvent] = []
    mic: list[TranscriptEvent] = []
    lifecycle: list[str] = []
    manager.on(EventType.TRANSCRIPT, everything.append)
    manager.on(EventType.SYSTEM_TRANSCRIPT, system.append)
    manager.on(EventType.MIC_TRANSCRIPT, mic.append)
    manager.on(EventType.STARTED, lambda: lifecycle.append("started"))
    manager.on(EventType.STOPPED, lambda: lifecycle.append("stopped"))

    await manager.start()
    assert manager.is_running
    assert set(harness.connectors) == {"deepgram:system", "deepgram:mic"}
    assert harness.sample_rates == {AudioSource.SYSTEM: 16000, AudioSource.MIC: 48000}

    harness.connectors["deepgram:system"].sockets[0].push(results_frame("from the speakers"))
    harness.connectors["deepgram:mic"].sockets[0].push(results_frame("from the mic"))
    await wait_until(lambda: len(everything) == 2)

    await manager.stop()
    await manager.stop()

    assert [t.transcript for t in system] == ["from the speakers"]
    assert [t.transcript for t in mic] == ["from the mic"]
    assert {t.source for t in everything} == {AudioSource.SYSTEM, AudioSource.MIC}
    assert lifecycle == ["started", "stopped"]
    assert not manager.is_running
    assert all(p.state is ProcessState.TERMINATED for p in harness.processes.values())


@pytest.mark.asyncio
async def test_partial_start_failure_rolls_back_the_other_source() -> None:
    harness = Harness({AudioSource.MIC: "permission"})
    manager = harness.manager(ManagerConfig(deepgram=OPTIONS))
    started: list[bool] = []
    manager.on(EventType.STARTED, lambda: started.append(True))

    with pytest.raises(PermissionDeniedError) as excinfo:
        await manager.start()

    assert excinfo.value.permission is PermissionKind.MICROPHONE
    assert harness.processes[AudioSource.SYSTEM].state is ProcessState.TERMINATED
    assert harness.processes[AudioSource.MIC].state is ProcessState.TERMINATED
    system_ws = harness.connectors["deepgram:system"].sockets[0]
    assert system_ws.control[-1] == {"type": "CloseStream"}
    assert started == []
    assert not manager.is_running


@pytest.mark.asyncio
async def test_single_source_session() -> None:
    harness = Harness()
    manager = harness.manager(
        ManagerConfig(deepgram=OPTIONS, system_audio=SystemAudioOptions(enabled=False))
    )

    await manager.start()
    await manager.stop()

    assert set(harness.processes) == {AudioSource.MIC}


# -------------------------
# Batch
# -------------------------

@pytest.mark.asyncio
async def test_batch_mode_uploads_each_source_on_stop() -> None:
    harness = Harness()
    manager = harness.manager(
        ManagerConfig(deepgram=OPTIONS, mode=TranscriptionMode.BATCH)
    )
    system: list[TranscriptEvent] = []
    mic: list[TranscriptEvent] = []
    progress: list[object] = []
    manager.on(EventType.SYSTEM_TRANSCRIPT, system.append)
    manager.on(EventType.MIC_TRANSCRIPT, mic.append)
    manager.on(EventType.BATCH_PROGRESS, progress.append)

    await manager.start()
    assert manager.mode is TranscriptionMode.BATCH
    assert harness.connectors == {}

    assert len(progress) == 2
    await wait_until(lambda: all(u.bytes_recorded == 1280 for u in harness.uploaders))
    await manager.stop()

    assert [t.transcript for t in system] == ["from batch"]
    assert [t.transcript for t in mic] == ["from batch"]
    assert all(t.is_final for t in system + mic)


# -------------------------
# Static helpers
# -------------------------

@pytest.mark.asyncio
async def test_check_permissions_reports_each_kind(tmp_path) -> None:
    system_bin = make_fake_binary(tmp_path, "dg-system-audio", "ready")
    mic_bin = make_fake_binary(tmp_path, "dg-mic-audio", "permission")

    result = await TranscriptionManager.check_permissions(
        system_binary=str(system_bin), mic_binary=str(mic_bin)
    )

    assert result.system_audio is PermissionStatus.GRANTED
    assert result.microphone is PermissionStatus.DENIED


@pytest.mark.asyncio
async def test_check_permissions_without_binaries_is_unknown(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("DG_CAPTURE_BINARY_DIR", str(tmp_path))

    result = await TranscriptionManager.check_permissions()

    assert result.system_audio is PermissionStatus.UNKNOWN
    assert result.microphone is PermissionStatus.UNKNOWN


@pytest.mark.asyncio
async def test_list_input_devices(tmp_path) -> None:
    mic_bin = make_fake_binary(tmp_path, "dg-mic-audio", "list-devices")

    devices = await TranscriptionManager.list_input_devices(binary_path=str(mic_bin))

    assert [d.id for d in devices] == ["BuiltInMic", "USB-1"]
    assert [d.is_default for d in devices] == [True, False]


@pytest.mark.asyncio
async def test_list_input_devices_permission_denied(tmp_path) -> None:
    mic_bin = make_fake_binary(tmp_path, "dg-mic-audio", "permission")

    with pytest.raises(PermissionDeniedError) as excinfo:
        await TranscriptionManager.list_input_devices(binary_path=str(mic_bin))

    assert excinfo.value.permission is PermissionKind.MICROPHONE
