# pylint: disable=missing-module-docstring,missing-function-docstring

import pytest

from audio.levels import ResolvedAudioLevels
from capture import binary, platform as capture_platform
from capture.options import (
    MicOptions,
    SystemAudioOptions,
    resolve_mic_options,
    resolve_system_audio_options,
)
from capture.sources import build_capture_process, mic_args, system_audio_args
from enums.permission import PermissionKind
from enums.source import AudioSource
from errors import PlatformError, SubprocessError, ValidationError

from fakes import make_fake_binary


# -------------------------
# Options
# -------------------------

def test_sources_are_enabled_unless_explicitly_disabled() -> None:
    assert resolve_system_audio_options(None).enabled
    assert resolve_mic_options(MicOptions(enabled=None)).enabled
    assert not resolve_mic_options(MicOptions(enabled=False)).enabled


def test_non_positive_values_are_rejected() -> None:
    with pytest.raises(ValidationError):
        resolve_system_audio_options(SystemAudioOptions(sample_rate=-1))
    with pytest.raises(ValidationError):
        resolve_mic_options(MicOptions(chunk_duration_ms=0))


# -------------------------
# Command lines
# -------------------------

def test_system_audio_args() -> None:
    options = resolve_system_audio_options(
        SystemAudioOptions(mute=True, include_processes=(10, 20), exclude_processes=(30,))
    )

    assert system_audio_args(options) == [
        "--sample-rate", "16000",
        "--chunk-duration", "200",
        "--mute",
        "--include-processes", "10,20",
        "--exclude-processes", "30",
    ]


def test_mic_args_with_levels() -> None:
    options = resolve_mic_options(MicOptions(sample_rate=48000, device_id="USB-1"))

    assert mic_args(options, ResolvedAudioLevels(True, 64, 50)) == [
        "--sample-rate", "48000",
        "--chunk-duration", "200",
        "--device-id", "USB-1",
        "--levels", "--fft-bins", "64", "--level-interval", "50",
    ]


def test_build_capture_process_picks_binary_and_permission(tmp_path) -> None:
    fake = make_fake_binary(tmp_path, "dg-mic-audio")

    proc = build_capture_process(
        AudioSource.MIC, resolve_mic_options(None), binary_path=str(fake)
    )

    assert proc.name == "mic-audio"
    assert proc.permission is PermissionKind.MICROPHONE


def test_build_capture_process_rejects_mismatched_options(tmp_path) -> None:
    fake = make_fake_binary(tmp_path, "dg-system-audio")

    with pytest.raises(TypeError):
        build_capture_process(
            AudioSource.SYSTEM, resolve_mic_options(None), binary_path=str(fake)
        )


# -------------------------
# Binary lookup
# -------------------------

def test_binary_found_via_environment(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    fake = make_fake_binary(tmp_path, "dg-system-audio")
    monkeypatch.setenv("DG_CAPTURE_BINARY_DIR", str(tmp_path))

    assert binary.resolve_binary_path("dg-system-audio") == str(fake)


def test_missing_binary_lists_searched_paths(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("DG_CAPTURE_BINARY_DIR", str(tmp_path))

    with pytest.raises(SubprocessError) as excinfo:
        binary.resolve_binary_path("dg-mic-audio")

    assert str(tmp_path / "dg-mic-audio") in str(excinfo.value)
    assert "DG_CAPTURE_BINARY_DIR" in str(excinfo.value)


def test_non_executable_file_is_skipped(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    (tmp_path / "dg-mic-audio").write_text("not a binary", encoding="utf-8")
    monkeypatch.setenv("DG_CAPTURE_BINARY_DIR", str(tmp_path))

    with pytest.raises(SubprocessError):
        binary.resolve_binary_path("dg-mic-audio")


# -------------------------
# Platform
# -------------------------

def test_non_macos_is_rejected(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(capture_platform.sys, "platform", "linux")

    with pytest.raises(PlatformError, match="only supported on macOS"):
        capture_platform.assert_platform()


@pytest.mark.parametrize("release, supported", [
    ("14.2", True),
    ("14.2.1", True),
    ("15.0", True),
    ("14.1.2", False),
    ("13.6", False),
])
def test_macos_version_gate(
    monkeypatch: pytest.MonkeyPatch, release: str, supported: bool
) -> None:
    monkeypatch.setattr(capture_platform.sys, "platform", "darwin")
    monkeypatch.setattr(
        capture_platform.platform, "mac_ver", lambda: (release, ("", "", ""), "arm64")
    )

    if supported:
        capture_platform.assert_platform()
    else:
        with pytest.raises(PlatformError, match="requires macOS 14.2"):
            capture_platform.assert_platform()


def test_unreadable_macos_version(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(capture_platform.sys, "platform", "darwin")
    monkeypatch.setattr(capture_platform.platform, "mac_ver", lambda: ("", ("", "", ""), ""))

    with pytest.raises(PlatformError):
        capture_platform.get_macos_version()
