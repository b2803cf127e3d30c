# --------------------------------------------------------------------
# utils/event_bus.py
# --------------------------------------------------------------------
"""A super-light, asyncio-based pub/sub shared by the engine components.

Publishing never blocks and never fails because of a subscriber: payloads go
through a queue drained by a background worker that is started lazily on
the first publish inside the running loop."""
from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Union

_Handler = Callable[[Any], Union[Awaitable[None], None]]

# topics
POSITION_OPENED = "position_opened"
POSITION_CLOSED = "position_closed"
EXECUTION_FAILURE = "execution_failure"
CYCLE_COMPLETED = "cycle_completed"


class EventBus:
    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._subs: Dict[str, List[_Handler]] = defaultdict(list)
        self._q: Optional[asyncio.Queue[Tuple[str, Any]]] = None
        self._task: Optional[asyncio.Task] = None
        self.logger = logger or logging.getLogger(__name__)

    # -------------------------------------------------------------- #
    def subscribe(self, topic: str, fn: _Handler) -> None:
        self._subs[topic].append(fn)

    def publish(self, topic: str, payload: Any) -> None:
        if self._task is None or self._task.done():
            self._q = asyncio.Queue()
            self._task = asyncio.get_running_loop().create_task(self._worker(self._q))
        self._q.put_nowait((topic, payload))

    async def join(self) -> None:
        """Wait until everything published so far has been delivered."""
        if self._q is not None:
            await self._q.join()

    async def close(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    # -------------------------------------------------------------- #
    async def _worker(self, q: asyncio.Queue) -> None:
        while True:
            topic, payload = await q.get()
            try:
                for fn in list(self._subs.get(topic, [])):
                    try:
                        res = fn(payload)
                        if inspect.isawaitable(res):
                            await res
                    except Exception:  # keep bus alive
                        self.logger.exception("[event_bus] handler error on %s", topic)
            finally:
                q.task_done()
