"""
Streaming completion client contract and the built-in echo client.

Vendor transports implement ``StreamingClient``; the scheduler never parses
HTTP or server-sent events itself.
"""

from __future__ import annotations

import asyncio
import importlib
import typing as t
from dataclasses import dataclass

import structlog

from streamling.exceptions import ConfigurationError

log = structlog.get_logger(__name__)

ChunkCallback = t.Callable[[str], None]


@dataclass(frozen=True)
class CompletionRequest:
    """
    Everything a client needs to stream one completion.

    Parameters
    ----------
    content : str
        Document text.
    instruction : str
        Natural-language instruction.
    provider : str
        Provider identifier.
    model : str
        Model identifier.
    api_key : str
        Provider credential.
    base_url : str
        Provider API base URL from the catalog.
    """

    content: str
    instruction: str
    provider: str
    model: str
    api_key: str
    base_url: str = ""

    @property
    def prompt(self) -> str:
        return f"{self.instruction}\n\nFile content:\n{self.content}"

    def __repr__(self) -> str:
        return (
            f"CompletionRequest(provider={self.provider!r}, model={self.model!r}, "
            f"content_length={len(self.content)})"
        )


class StreamingClient(t.Protocol):
    """
    Collaborator that streams a completion.

    Implementations call ``on_chunk`` for every text delta, in order, and
    return once the stream is complete. They should stop promptly when
    ``cancel_event`` is set, and raise ``ProviderError`` (or any exception,
    which the scheduler classifies as one) on failure. Raising
    ``ConfigurationError`` fails the job without retry.
    """

    async def stream_completion(
        self,
        request: CompletionRequest,
        on_chunk: ChunkCallback,
        cancel_event: asyncio.Event,
    ) -> None: ...


class EchoStreamingClient:
    """
    Stream the document back unchanged, in fixed-size chunks.

    Used for dry runs: exercises scheduling, accumulation and confidence
    scoring without provider I/O.

    Parameters
    ----------
    chunk_size : int, optional
        Characters per chunk.
    delay_seconds : float, optional
        Pause between chunks.
    """

    def __init__(self, chunk_size: int = 64, delay_seconds: float = 0.0) -> None:
        if chunk_size < 1:
            raise ValueError("chunk_size must be at least 1")
        self._chunk_size = chunk_size
        self._delay_seconds = delay_seconds

    async def stream_completion(
        self,
        request: CompletionRequest,
        on_chunk: ChunkCallback,
        cancel_event: asyncio.Event,
    ) -> None:
        content = request.content
        log.debug(
            event="Echo stream started",
            provider=request.provider,
            model=request.model,
            content_length=len(content),
        )
        for start in range(0, len(content), self._chunk_size):
            if cancel_event.is_set():
                return
            on_chunk(content[start : start + self._chunk_size])
            await asyncio.sleep(self._delay_seconds)


def load_client(path: str) -> StreamingClient:
    """
    Import and build a client from a ``module:attribute`` path.

    Parameters
    ----------
    path : str
        Import path. The attribute may be a client instance, a class or a
        zero-argument factory.

    Returns
    -------
    StreamingClient
        Client instance.

    Raises
    ------
    ConfigurationError
        If the path is malformed or cannot be imported.
    """
    module_name, _, attr_name = path.partition(":")
    if not module_name or not attr_name:
        raise ConfigurationError(f"Client path must look like 'module:attribute', got '{path}'")
    try:
        module = importlib.import_module(name=module_name)
    except ImportError as error:
        raise ConfigurationError(f"Cannot import client module '{module_name}': {error}") from error
    try:
        target = getattr(module, attr_name)
    except AttributeError as error:
        raise ConfigurationError(f"Module '{module_name}' has no attribute '{attr_name}'") from error

    if isinstance(target, type) or (
        callable(target) and not hasattr(target, "stream_completion")
    ):
        client = target()
    else:
        client = target
    if not hasattr(client, "stream_completion"):
        raise ConfigurationError(f"'{path}' does not provide a stream_completion method")
    return t.cast(StreamingClient, client)
