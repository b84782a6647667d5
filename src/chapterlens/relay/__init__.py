"""Chat relay: streaming completions proxy."""

from chapterlens.relay.client import ChatRelay, UpstreamStream
from chapterlens.relay.errors import (
    InputError,
    InternalError,
    RelayError,
    UpstreamRejected,
    UpstreamUnavailable,
)
from chapterlens.relay.models import ChatRequest, CompletionRequest, Message, RelayDefaults
from chapterlens.relay.sse import SSEDecoder, iter_deltas

__all__ = [
    "ChatRelay",
    "UpstreamStream",
    "RelayError",
    "InputError",
    "InternalError",
    "UpstreamRejected",
    "UpstreamUnavailable",
    "ChatRequest",
    "CompletionRequest",
    "Message",
    "RelayDefaults",
    "SSEDecoder",
    "iter_deltas",
]
