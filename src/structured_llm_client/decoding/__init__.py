"""Structured decoding: incremental assembly, decode modes, retries and channels."""

from .assembler import IncrementalJSONAssembler
from .channel import AsyncResultChannel, ResultChannel
from .modes import (
    BaseDecoder,
    DecodeState,
    PartialDecoder,
    RecordDecoder,
    SingleDecoder,
    adecode_stream,
    create_decoder,
    decode_stream,
    resolve_stream_mode,
)
from .results import DecodedResult, StreamMode
from .retry import RetryController, RetryState, build_correction_message

__all__ = [
    "IncrementalJSONAssembler",
    # Modes
    "BaseDecoder",
    "DecodeState",
    "SingleDecoder",
    "RecordDecoder",
    "PartialDecoder",
    "create_decoder",
    "decode_stream",
    "adecode_stream",
    "resolve_stream_mode",
    # Results
    "DecodedResult",
    "StreamMode",
    # Retry
    "RetryController",
    "RetryState",
    "build_correction_message",
    # Channels
    "ResultChannel",
    "AsyncResultChannel",
]
