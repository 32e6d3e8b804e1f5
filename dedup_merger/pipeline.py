"""Queue wiring between the walker, the fingerprinter and the merge engine.

Three units run concurrently: the walker on the calling thread, and one
fingerprinter and one merge engine worker thread. They are connected by
single-slot handoff queues, so a producer blocks until its consumer has
taken the previous item. Items flow strictly FIFO; each queue has exactly
one reader and one writer. Closing a queue (putting the CLOSED sentinel)
tells the reader no more work will arrive, and each worker closes its own
output once its input is drained, so shutdown propagates down the chain.
"""

import logging
import queue
import threading
from abc import ABC, abstractmethod
from typing import Iterator, Optional

from .models import WorkItem

CLOSED = object()


def make_handoff() -> "queue.Queue[object]":
    """Create a handoff queue holding at most one waiting item."""
    return queue.Queue(maxsize=1)


def close(q: "queue.Queue[object]") -> None:
    """Signal the reader of q that no more items will arrive."""
    q.put(CLOSED)


def drain(q: "queue.Queue[object]") -> Iterator[WorkItem]:
    """Yield items from q until it is closed."""
    while True:
        item = q.get()
        if item is CLOSED:
            return
        yield item


class Stage(ABC):
    """A pipeline worker that consumes items one at a time.

    Subclasses implement handle(), returning the item to forward
    downstream or None to drop it. Once stop() is called the remaining
    items are drained without being handled.
    """

    name = "stage"

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.error: Optional[BaseException] = None
        self.stopping = threading.Event()

    @abstractmethod
    def handle(self, item: WorkItem) -> Optional[WorkItem]:
        """Process one item, returning what to forward or None."""

    def stop(self) -> None:
        """Skip every item not yet started."""
        self.stopping.set()

    def run(
        self,
        inbox: "queue.Queue[object]",
        outbox: Optional["queue.Queue[object]"] = None
    ) -> None:
        """Process inbox until it is closed, then close outbox."""
        items = drain(inbox)
        try:
            for item in items:
                if self.stopping.is_set():
                    continue
                result = self.handle(item)
                if result is not None and outbox is not None:
                    outbox.put(result)
        except Exception as e:
            self.error = e
            self.logger.exception("%s stopped unexpectedly: %s", self.name, e)
            # Keep consuming so the producer never blocks on a dead reader.
            for _ in items:
                pass
        finally:
            if outbox is not None:
                close(outbox)
