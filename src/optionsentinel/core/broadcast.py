"""
Live feed fan-out.

ViewerConnection tracks one push-channel client through
CONNECTING -> OPEN -> CLOSED and owns the tickers it contributes to the
SubscriptionRegistry. BroadcastScheduler scans the ticker universe and pushes
one full `flow_update` snapshot to every writable connection, on a timer and
whenever trigger() is called (new viewer, subscription change).
"""

import asyncio
import enum
import logging
from typing import Iterable, List, Optional, Set

from fastapi.websockets import WebSocketState

from optionsentinel.core.clock import SystemClock
from optionsentinel.core.errors import TransportGone
from optionsentinel.core.models import FlowStats, FlowUpdate
from optionsentinel.core.registry import SubscriptionRegistry, normalize_tickers
from optionsentinel.core.scanner import FlowScanner

logger = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


class ViewerConnection:

    def __init__(self, websocket, registry: SubscriptionRegistry) -> None:
        self.websocket = websocket
        self.registry = registry
        self.state = ConnectionState.CONNECTING
        self.tickers: List[str] = []
        self.elevated = False
        self.last_timestamp = 0
        self._send_lock = asyncio.Lock()

    def open(self) -> None:
        if self.state is not ConnectionState.CONNECTING:
            raise RuntimeError(f"cannot open a {self.state.value} connection")
        self.state = ConnectionState.OPEN

    def update_subscriptions(self, tickers: Iterable[str]) -> None:
        """Replace this viewer's ticker set, adjusting registry counts."""
        if self.state is not ConnectionState.OPEN:
            raise RuntimeError(f"cannot subscribe on a {self.state.value} connection")
        new = normalize_tickers(tickers)
        self.registry.transition(self.tickers, new)
        self.tickers = new

    def close(self) -> None:
        """Release every contributed ticker. Safe to call more than once."""
        if self.state is ConnectionState.CLOSED:
            return
        if self.state is ConnectionState.OPEN:
            self.registry.transition(self.tickers, [])
        self.tickers = []
        self.state = ConnectionState.CLOSED

    @property
    def writable(self) -> bool:
        return (
            self.state is ConnectionState.OPEN
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, text: str) -> None:
        if not self.writable:
            raise TransportGone()
        async with self._send_lock:
            try:
                await self.websocket.send_text(text)
            except Exception as e:
                raise TransportGone(str(e)) from e

    async def send_update(self, payload: str, timestamp: int) -> bool:
        """Push a snapshot unless this viewer already has a newer one."""
        if timestamp < self.last_timestamp:
            return False
        self.last_timestamp = timestamp
        await self.send(payload)
        return True


class BroadcastScheduler:

    def __init__(
        self,
        scanner: FlowScanner,
        registry: SubscriptionRegistry,
        interval: float = 30,
        clock=None,
    ) -> None:
        self.scanner = scanner
        self.registry = registry
        self.interval = interval
        self.clock = clock or SystemClock()
        self.connections: Set[ViewerConnection] = set()
        self._last_timestamp = 0
        self._tasks: Set[asyncio.Task] = set()
        self._lock = asyncio.Lock()

    def register(self, connection: ViewerConnection) -> None:
        self.connections.add(connection)

    def unregister(self, connection: ViewerConnection) -> None:
        self.connections.discard(connection)

    def _next_timestamp(self) -> int:
        self._last_timestamp = max(int(self.clock.now() * 1000), self._last_timestamp)
        return self._last_timestamp

    async def broadcast(self) -> Optional[FlowUpdate]:
        """Run one scan cycle and push it. Skipped when nobody is listening.

        Cycles are serialized so every viewer sees snapshots in timestamp order.
        """
        if not self.connections:
            logger.debug("[ws] no clients connected, skipping broadcast")
            return None
        async with self._lock:
            return await self._broadcast()

    async def _broadcast(self) -> Optional[FlowUpdate]:
        if not self.connections:
            return None

        universe = self.registry.current_universe()
        signals = await self.scanner.scan_many(universe)
        update = FlowUpdate(
            data=signals,
            timestamp=self._next_timestamp(),
            stats=FlowStats(scanning=len(universe), results=len(signals)),
        )
        payload = update.model_dump_json(by_alias=True)

        sent = 0
        for connection in list(self.connections):
            if not connection.writable:
                continue
            try:
                if await connection.send_update(payload, update.timestamp):
                    sent += 1
            except TransportGone as e:
                logger.debug("[ws] dropping update for closed client: %s", e)
        logger.info("[ws] broadcast %d signals from %d tickers to %d clients", len(signals), len(universe), sent)
        return update

    async def _safe_broadcast(self) -> None:
        try:
            await self.broadcast()
        except Exception:
            logger.exception("[ws] broadcast error")

    def trigger(self) -> asyncio.Task:
        """Start an immediate broadcast in the background."""
        task = asyncio.create_task(self._safe_broadcast())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def run(self) -> None:
        """Broadcast every `interval` seconds, forever."""
        while True:
            await asyncio.sleep(self.interval)
            await self._safe_broadcast()

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
