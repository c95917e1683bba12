import asyncio
import logging

logger = logging.getLogger(__name__)


class Debouncer:
    """
    Runs `callback` once input has been quiet for `delay` seconds.

    trigger() cancels a run that is still waiting out its delay. A callback
    that has already started is left to finish, and later runs wait for it,
    so callbacks never overlap on shared resources such as a DB session.
    """

    def __init__(self, delay: float, callback):
        self.delay = delay
        self.callback = callback
        self._task = None
        self._active = None
        self._lock = asyncio.Lock()

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def trigger(self, *args, **kwargs):
        self.cancel()
        self._task = asyncio.create_task(self._fire(args, kwargs))

    def cancel(self):
        if self.pending and self._task is not self._active:
            self._task.cancel()

    async def wait(self):
        if self._task is None:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass

    async def _fire(self, args, kwargs):
        await asyncio.sleep(self.delay)
        async with self._lock:
            self._active = asyncio.current_task()
            try:
                await self.callback(*args, **kwargs)
            except Exception as e:
                logger.exception(f"Debounced call failed: {e}")
            finally:
                self._active = None
