"""Server-sent event decoding and per-call stream state."""

import asyncio
import codecs
import json
import logging
from collections.abc import AsyncIterator, Callable

import httpx

from tweet_engine.exceptions import TweetEngineError

logger = logging.getLogger(__name__)

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class SSEDecoder:
    """Incremental decoder turning raw SSE bytes into content deltas.

    Bytes of a multi-byte character split across reads are held back by the
    incremental UTF-8 decoder, and an unterminated trailing line is kept in
    the buffer until the next read completes it.
    """

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False
        self.skipped_lines = 0

    def feed(self, chunk: bytes) -> list[str]:
        """Decode one network read and return the deltas it completed."""
        self._buffer += self._decoder.decode(chunk)
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        return self._parse_lines(lines)

    def flush(self) -> list[str]:
        """Decode whatever is left once the body has ended."""
        self._buffer += self._decoder.decode(b"", final=True)
        remaining, self._buffer = self._buffer, ""
        return self._parse_lines([remaining])

    def _parse_lines(self, lines: list[str]) -> list[str]:
        deltas = []
        for line in lines:
            delta = self._parse_line(line)
            if delta:
                deltas.append(delta)
        return deltas

    def _parse_line(self, line: str) -> str | None:
        line = line.strip()
        if not line.startswith(DATA_PREFIX):
            return None

        data = line[len(DATA_PREFIX) :].strip()
        if data == DONE_SENTINEL:
            # Keep draining; some providers send trailing keep-alives
            logger.debug("Received [DONE] signal")
            self.done = True
            return None

        try:
            parsed = json.loads(data)
        except ValueError:
            self.skipped_lines += 1
            logger.debug(f"Failed to parse line: {data[:100]}")
            return None

        return extract_delta(parsed)


def extract_delta(event: object) -> str | None:
    """Pull `choices[0].delta.content` out of one decoded event."""
    if not isinstance(event, dict):
        return None
    choices = event.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return None
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return None
    content = delta.get("content")
    return content if isinstance(content, str) else None


async def iter_sse_deltas(response: httpx.Response) -> AsyncIterator[str]:
    """Yield content deltas from a streamed response in receipt order."""
    decoder = SSEDecoder()
    chunks_received = 0

    async for chunk in response.aiter_bytes():
        for delta in decoder.feed(chunk):
            chunks_received += 1
            yield delta

    for delta in decoder.flush():
        chunks_received += 1
        yield delta

    if chunks_received == 0:
        logger.debug("No content chunks received from stream")
    else:
        logger.debug(f"Stream complete. Total chunks: {chunks_received}")


DeltaProducer = Callable[["TweetStream"], AsyncIterator[str]]


class TweetStream:
    """State of one streaming generation call.

    Iterate it to receive deltas. `cancel()` closes the connection and ends
    iteration quietly, even while the producer is waiting out a retry
    backoff; text surfaced before the cancel stays in `accumulated_text`.
    Failures end iteration with `error` set instead of raising.
    """

    def __init__(
        self,
        producer: DeltaProducer,
        finalize: Callable[[str], str] | None = None,
    ):
        self.accumulated_text = ""
        self.is_active = False
        self.cancelled = False
        self.error: str | None = None
        # Set by producers whose deltas already went through finalize
        self.finalized = False
        self._producer = producer
        self._finalize = finalize or (lambda text: text)
        self._response: httpx.Response | None = None
        self._pending: asyncio.Task | None = None
        self._started = False

    async def attach(self, response: httpx.Response) -> None:
        """Register the open response so cancel() can release it."""
        if self.cancelled:
            logger.debug("Stream cancelled before the response arrived, closing it")
            await response.aclose()
            return
        self._response = response

    @property
    def final_text(self) -> str:
        """Accumulated text after the same clean-up non-streaming calls get."""
        if self.finalized:
            return self.accumulated_text
        return self._finalize(self.accumulated_text)

    def __aiter__(self) -> AsyncIterator[str]:
        return self._iterate()

    @staticmethod
    async def _next_delta(deltas: AsyncIterator[str]) -> str | None:
        try:
            return await deltas.__anext__()
        except StopAsyncIteration:
            return None

    async def _iterate(self) -> AsyncIterator[str]:
        if self._started:
            raise RuntimeError("A TweetStream can only be consumed once")
        self._started = True
        if self.cancelled:
            return

        self.is_active = True
        deltas = self._producer(self)
        try:
            while not self.cancelled:
                # A task per read so cancel() can interrupt a pending backoff
                self._pending = asyncio.ensure_future(self._next_delta(deltas))
                try:
                    delta = await self._pending
                except asyncio.CancelledError:
                    if not self.cancelled:
                        raise
                    break
                finally:
                    self._pending = None
                if delta is None or self.cancelled:
                    break
                self.accumulated_text += delta
                yield delta
        except (httpx.StreamError, httpx.TransportError) as e:
            if not self.cancelled:
                logger.error(f"Stream failed: {e}")
                self.error = str(e) or "Connection lost while streaming"
        except TweetEngineError as e:
            logger.error(f"Stream failed: {e}")
            self.error = str(e)
        finally:
            self.is_active = False
            await deltas.aclose()
            await self._release()

    async def cancel(self) -> None:
        """Stop reading and release the connection. Safe to call twice."""
        if self.cancelled:
            return
        self.cancelled = True
        self.is_active = False
        logger.debug(f"Stream cancelled after {len(self.accumulated_text)} chars")
        pending = self._pending
        if pending is not None and pending is not asyncio.current_task():
            pending.cancel()
        await self._release()

    async def _release(self) -> None:
        response, self._response = self._response, None
        if response is not None:
            await response.aclose()

    async def collect(self) -> str:
        """Drain the stream and return the finalized text."""
        async for _ in self:
            pass
        return self.final_text


async def consume_stream(
    stream: TweetStream,
    on_chunk: Callable[[str], None] | None = None,
    on_complete: Callable[[str], None] | None = None,
    on_error: Callable[[str], None] | None = None,
) -> str:
    """Callback adapter over the iterator contract.

    `on_chunk` receives the accumulated text after each delta. Neither
    `on_complete` nor `on_error` runs for a cancelled stream.
    """
    async for _ in stream:
        if on_chunk is not None:
            on_chunk(stream.accumulated_text)

    if stream.cancelled:
        return stream.accumulated_text
    if stream.error is not None:
        if on_error is not None:
            on_error(stream.error)
        return stream.accumulated_text

    result = stream.final_text
    if on_complete is not None:
        on_complete(result)
    return result
