"""
Response assembly for streamed model replies.

The assembler turns a fragment sequence into one monotonically growing
assistant message and reports progress as events. It knows nothing about
providers; every adapter hands it plain text fragments.
"""

import asyncio
import logging
from collections.abc import AsyncIterable, AsyncIterator

from .types import AssemblerEvent, Done, Fault, Progress, TurnTimeoutError

logger = logging.getLogger(__name__)

UNKNOWN_FAULT_REASON = "An unknown error occurred"


def fault_reason(error: BaseException) -> str:
    """
    Extract a human-readable reason from a fault.

    Client errors carry a ``message`` attribute without provider decoration;
    anything else falls back to its string form.
    """
    message = getattr(error, "message", None)
    if isinstance(message, str) and message.strip():
        return message
    text = str(error)
    return text if text.strip() else UNKNOWN_FAULT_REASON


async def close_fragments(iterator: object) -> None:
    """Close an async iterator if it supports ``aclose``."""
    aclose = getattr(iterator, "aclose", None)
    if aclose is not None:
        await aclose()


async def with_deadline(
    fragments: AsyncIterable[str], seconds: float
) -> AsyncIterator[str]:
    """
    Bound a whole fragment sequence by a deadline.

    Raises:
        TurnTimeoutError: If the sequence has not ended ``seconds`` after the
            first fragment was requested
    """
    deadline = asyncio.get_running_loop().time() + seconds
    iterator = aiter(fragments)
    try:
        while True:
            try:
                async with asyncio.timeout_at(deadline):
                    fragment = await anext(iterator)
            except StopAsyncIteration:
                return
            except TimeoutError:
                raise TurnTimeoutError(seconds) from None
            yield fragment
    finally:
        await close_fragments(iterator)


class ResponseAssembler:
    """Accumulates fragments into a single reply."""

    def __init__(self) -> None:
        self.text = ""

    async def run(self, fragments: AsyncIterable[str]) -> AsyncIterator[AssemblerEvent]:
        """
        Consume ``fragments`` and emit assembler events.

        Emits zero or more ``Progress`` events followed by exactly one
        ``Done`` or ``Fault``. Empty fragments are skipped. Cancellation is
        not converted into a fault.
        """
        iterator = aiter(fragments)
        try:
            async for fragment in iterator:
                if not fragment:
                    continue
                self.text += fragment
                yield Progress(self.text)
        except Exception as e:
            logger.debug(f"Fragment sequence failed after {len(self.text)} chars: {e!r}")
            yield Fault(fault_reason(e))
            return
        finally:
            await close_fragments(iterator)

        yield Done(self.text)
