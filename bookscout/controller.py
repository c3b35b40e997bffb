"""Debounced search-as-you-type controller."""
import asyncio
import enum
import logging
from typing import Callable, List, Optional

from bookscout.models import Book

logger = logging.getLogger(__name__)

DEBOUNCE_SECONDS = 0.5


class QueryState(enum.Enum):
    IDLE = "idle"
    PENDING = "pending"
    LOADING = "loading"
    SUCCESS = "success"
    FAILED = "failed"


class DebouncedQueryController:
    """
    Turn a stream of query edits into debounced search calls.

    Every ``set_query()`` cancels the unfired timer (there is never more than
    one) and starts a new one. When a timer fires the search is issued and
    tagged with the generation it belongs to; once issued it is never
    canceled, but a response that comes back after the query changed again
    is dropped instead of overwriting newer state.

    Must be used from inside a running event loop.
    """

    def __init__(
        self,
        client,
        delay: float = DEBOUNCE_SECONDS,
        on_change: Optional[Callable[["DebouncedQueryController"], None]] = None
    ):
        """
        Args:
            client: Object with an async ``search(query) -> List[Book]``
            delay: Quiet period in seconds before a search is issued
            on_change: Called with the controller after each state change
        """
        self.client = client
        self.delay = delay
        self.on_change = on_change

        self.query = ""
        self.state = QueryState.IDLE
        self.results: List[Book] = []
        self.error: Optional[str] = None

        self._generation = 0
        self._timer: Optional[asyncio.TimerHandle] = None
        self._request: Optional[asyncio.Task] = None

    @property
    def loading(self) -> bool:
        return self.state is QueryState.LOADING

    def set_query(self, text: str) -> None:
        """Record a new query and (re)start the debounce timer."""
        self.cancel()
        self._generation += 1
        self.query = text

        if not text.strip():
            self.results = []
            self.error = None
            self._set_state(QueryState.SUCCESS)
            return

        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self.delay, self._fire, self._generation, text)
        self._set_state(QueryState.PENDING)

    def cancel(self) -> None:
        """Drop the pending timer, if it has not fired yet."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fire(self, generation: int, query: str) -> None:
        self._timer = None
        self.error = None
        self._set_state(QueryState.LOADING)
        self._request = asyncio.ensure_future(self._run(generation, query))

    async def _run(self, generation: int, query: str) -> None:
        try:
            results = await self.client.search(query)
        except Exception as e:
            logger.warning(f"Search for {query!r} failed: {e}")
            if self._is_stale(generation, query):
                return
            self.results = []
            self.error = str(e)
            self._set_state(QueryState.FAILED)
            return

        if self._is_stale(generation, query):
            return
        self.results = results
        self._set_state(QueryState.SUCCESS)

    def _is_stale(self, generation: int, query: str) -> bool:
        if generation != self._generation:
            logger.info(f"Discarding stale response for {query!r}")
            return True
        return False

    async def wait(self) -> None:
        """Wait for the most recently issued request, if any."""
        request = self._request
        if request is not None and not request.done():
            await asyncio.shield(request)

    def _set_state(self, state: QueryState) -> None:
        self.state = state
        if self.on_change is not None:
            self.on_change(self)
