"""
Deepgram response decoding.

Streaming frames are JSON objects discriminated by "type":

    Results        transcript for one audio window (interim or final)
    UtteranceEnd   silence-based utterance boundary
    SpeechStarted  VAD speech onset
    Metadata       request / model info, sent once
    Error          server-side error description

Unknown types decode to None (forward-compatible ignore arm).

The batch endpoint returns one object with results.channels[].alternatives[];
parse_batch_response() turns it into source-agnostic TranscriptEvents.
Callers label them with their own logical source.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Mapping, Union

from events.types import TranscriptEvent, TranscriptWord


# =============================================================================
# Wire variants
# =============================================================================

@dataclass(frozen=True)
class Alternative:
    transcript: str
    confidence: float
    words: tuple[TranscriptWord, ...] = ()


@dataclass(frozen=True)
class ResultsResponse:
    alternatives: tuple[Alternative, ...]
    is_final: bool = False
    speech_final: bool | None = None
    channel_index: tuple[int, ...] | None = None
    duration: float | None = None
    start: float | None = None


@dataclass(frozen=True)
class UtteranceEndResponse:
    last_word_end: float | None = None


@dataclass(frozen=True)
class SpeechStartedResponse:
    timestamp: float | None = None


@dataclass(frozen=True)
class MetadataResponse:
    request_id: str | None = None
    model_name: str | None = None
    model_version: str | None = None


@dataclass(frozen=True)
class ErrorResponse:
    message: str


DeepgramResponse = Union[
    ResultsResponse,
    UtteranceEndResponse,
    SpeechStartedResponse,
    MetadataResponse,
    ErrorResponse,
]


# =============================================================================
# Field helpers
# =============================================================================

def _float(data: Mapping[str, Any], key: str) -> float | None:
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value)


def _decode_word(raw: Mapping[str, Any]) -> TranscriptWord:
    punctuated = raw.get("punctuated_word")
    return TranscriptWord(
        word=str(raw.get("word", "")),
        start=_float(raw, "start") or 0.0,
        end=_float(raw, "end") or 0.0,
        confidence=_float(raw, "confidence") or 0.0,
        punctuated_word=punctuated if isinstance(punctuated, str) else None,
    )


def _decode_alternative(raw: Mapping[str, Any]) -> Alternative:
    raw_words = raw.get("words")
    words = tuple(
        _decode_word(w) for w in raw_words if isinstance(w, dict)
    ) if isinstance(raw_words, list) else ()
    transcript = raw.get("transcript")
    return Alternative(
        transcript=transcript if isinstance(transcript, str) else "",
        confidence=_float(raw, "confidence") or 0.0,
        words=words,
    )


def _alternatives(channel: Any) -> tuple[Alternative, ...]:
    if not isinstance(channel, dict):
        return ()
    raw_alts = channel.get("alternatives")
    if not isinstance(raw_alts, list):
        return ()
    return tuple(_decode_alternative(a) for a in raw_alts if isinstance(a, dict))


# =============================================================================
# Per-type decoders
# =============================================================================

def _decode_results(data: Mapping[str, Any]) -> ResultsResponse:
    raw_index = data.get("channel_index")
    channel_index = (
        tuple(int(i) for i in raw_index if isinstance(i, int))
        if isinstance(raw_index, list)
        else None
    )
    speech_final = data.get("speech_final")
    return ResultsResponse(
        alternatives=_alternatives(data.get("channel")),
        is_final=data.get("is_final") is True,
        speech_final=speech_final if isinstance(speech_final, bool) else None,
        channel_index=channel_index,
        duration=_float(data, "duration"),
        start=_float(data, "start"),
    )


def _decode_utterance_end(data: Mapping[str, Any]) -> UtteranceEndResponse:
    return UtteranceEndResponse(last_word_end=_float(data, "last_word_end"))


def _decode_speech_started(data: Mapping[str, Any]) -> SpeechStartedResponse:
    return SpeechStartedResponse(timestamp=_float(data, "timestamp"))


def _decode_metadata(data: Mapping[str, Any]) -> MetadataResponse:
    meta = data.get("metadata") if isinstance(data.get("metadata"), dict) else data
    model_info = meta.get("model_info")
    if not isinstance(model_info, dict):
        model_info = {}
    request_id = meta.get("request_id")
    return MetadataResponse(
        request_id=request_id if isinstance(request_id, str) else None,
        model_name=model_info.get("name"),
        model_version=model_info.get("version"),
    )


def _decode_error(data: Mapping[str, Any]) -> ErrorResponse:
    for key in ("error", "description", "message", "reason"):
        value = data.get(key)
        if isinstance(value, str) and value:
            return ErrorResponse(message=value)
    return ErrorResponse(message="Unknown Deepgram error")


_DECODERS: dict[str, Callable[[Mapping[str, Any]], DeepgramResponse]] = {
    "Results": _decode_results,
    "UtteranceEnd": _decode_utterance_end,
    "SpeechStarted": _decode_speech_started,
    "Metadata": _decode_metadata,
    "Error": _decode_error,
}


def decode_response(data: Any) -> DeepgramResponse | None:
    """
    Decode one parsed streaming frame.

    Returns None for non-objects and unknown types.
    """
    if not isinstance(data, dict):
        return None
    tag = data.get("type")
    if not isinstance(tag, str):
        return None
    decoder = _DECODERS.get(tag)
    if decoder is None:
        return None
    try:
        return decoder(data)
    except (TypeError, ValueError, OverflowError):
        return None


# =============================================================================
# Transcript extraction
# =============================================================================

def transcript_from_results(response: ResultsResponse) -> TranscriptEvent | None:
    """
    Convert a Results frame into a source-agnostic TranscriptEvent.

    Only the first alternative is considered; an empty transcript yields None.
    Words pass through unmodified.
    """
    if not response.alternatives:
        return None
    best = response.alternatives[0]
    if not best.transcript:
        return None
    return TranscriptEvent(
        transcript=best.transcript,
        is_final=response.is_final,
        confidence=best.confidence,
        words=best.words,
        speech_final=response.speech_final,
        channel_index=response.channel_index,
        duration=response.duration,
        start=response.start,
    )


def parse_batch_response(body: Any) -> list[TranscriptEvent]:
    """
    One final TranscriptEvent per non-empty alternative, across all channels.
    """
    if not isinstance(body, dict):
        return []

    results = body.get("results")
    channels = results.get("channels") if isinstance(results, dict) else None
    if not isinstance(channels, list):
        return []

    metadata = body.get("metadata")
    duration = _float(metadata, "duration") if isinstance(metadata, dict) else None

    events: list[TranscriptEvent] = []
    for channel in channels:
        for alt in _alternatives(channel):
            if not alt.transcript:
                continue
            events.append(
                TranscriptEvent(
                    transcript=alt.transcript,
                    is_final=True,
                    confidence=alt.confidence,
                    words=alt.words,
                    duration=duration,
                )
            )
    return events
