"""
Dispatcher

Sends a message-unit sequence to one recipient in batches the channel
accepts, pacing between batches. This is the only place the scheduler
performs send I/O.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, List, Mapping, Optional, Sequence

from .composer import MessageUnit

logger = logging.getLogger(__name__)

# LINE push API accepts at most 5 message objects per request
MAX_BATCH_SIZE = 5
DEFAULT_PACING_SECONDS = 1.0


@dataclass(frozen=True)
class DispatchResult:
    ok: bool
    batches_sent: int
    batches_total: int
    error: Optional[str] = None


def split_batches(units: Sequence[MessageUnit], size: int) -> List[List[MessageUnit]]:
    return [list(units[i:i + size]) for i in range(0, len(units), size)]


class Dispatcher:
    """
    Arguments:
        channel: Object with ``send_batch(recipient, units) -> (body, status_code)``.
        batch_size: Units per channel call, clamped to MAX_BATCH_SIZE.
        pacing_seconds: Wait between consecutive batches of one send.
        sleep: Injected for tests.
    """

    def __init__(
        self,
        channel,
        batch_size: int = MAX_BATCH_SIZE,
        pacing_seconds: float = DEFAULT_PACING_SECONDS,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.channel = channel
        self.batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
        self.pacing_seconds = max(0.0, pacing_seconds)
        self.sleep = sleep

    def send(self, recipient: str, units: Sequence[MessageUnit]) -> DispatchResult:
        """
        Send ``units`` to ``recipient``.

        Stops at the first failed batch. Never raises: channel errors come
        back as a failed DispatchResult so the caller can retry next tick.
        """
        batches = split_batches(units, self.batch_size)
        total = len(batches)

        for index, batch in enumerate(batches):
            if index > 0 and self.pacing_seconds:
                self.sleep(self.pacing_seconds)

            try:
                body, status_code = self.channel.send_batch(recipient, batch)
            except Exception as e:
                logger.error(f"Channel error sending batch {index + 1}/{total} to {recipient}: {e}", exc_info=True)
                return DispatchResult(False, index, total, str(e))

            if status_code != 200:
                reason = _error_reason(body, status_code)
                logger.error(f"❌ Batch {index + 1}/{total} to {recipient} failed: {reason}")
                return DispatchResult(False, index, total, reason)

        return DispatchResult(True, total, total)


def _error_reason(body: Mapping, status_code: int) -> str:
    message = None
    if isinstance(body, Mapping):
        message = body.get("message")
    return f"{status_code}: {message}" if message else f"status {status_code}"
