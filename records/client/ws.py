"""
Change source backed by the server's ``ws/changes/`` feed.

The connection lives on a background thread running its own event loop
and reconnects after a short pause when it drops.  Frames are turned
into hook events:

* ``change`` frames go to subscribers of that table;
* ``refresh`` frames go to every subscriber;
* ``welcome`` and ``subscribed`` frames become
  ``{"type": "refresh", "seq": {...}}`` notices, so a hook that missed
  events while disconnected reloads once.

Callbacks run one at a time on a worker thread, in frame order, so a
slow refetch never stalls the socket.
"""
import asyncio
import itertools
import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Iterable, Optional, Tuple
from urllib.parse import urlencode, urlsplit, urlunsplit

import websockets
import websockets.exceptions

from .live import TABLES

logger = logging.getLogger(__name__)

CONNECT_ERRORS = (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException)


def changes_url(base_url: str, token: Optional[str] = None, tables: Iterable[str] = TABLES) -> str:
    """``http(s)://host/prefix`` -> ``ws(s)://host/prefix/ws/changes/?tables=...&token=...``"""
    parts = urlsplit(base_url)
    scheme = 'wss' if parts.scheme in ('https', 'wss') else 'ws'
    query = {'tables': ','.join(tables)}
    if token:
        query['token'] = token
    path = parts.path.rstrip('/') + '/ws/changes/'
    return urlunsplit((scheme, parts.netloc, path, urlencode(query, safe=','), ''))


class WebSocketChangeSource:
    def __init__(self, base_url: str, token: Optional[str] = None, tables: Iterable[str] = TABLES, *,
                 ping_interval: float = 20, reconnect_delay: float = 1.0):
        self.url = changes_url(base_url, token, tables)
        self.ping_interval = ping_interval
        self.reconnect_delay = reconnect_delay
        self.connected = threading.Event()
        self.server_tables = set()
        self.last_error: Optional[str] = None
        self._subs: Dict[int, Tuple[frozenset, Callable[[dict], None]]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()
        self._callbacks = ThreadPoolExecutor(max_workers=1, thread_name_prefix='records-changes')
        self._thread: Optional[threading.Thread] = None
        self._loop = None
        self._ws = None
        self._closing = False

    @classmethod
    def for_client(cls, client, tables: Iterable[str] = TABLES, **kwargs) -> 'WebSocketChangeSource':
        return cls(client.base_url, client.token, tables, **kwargs)

    @property
    def _log_url(self) -> str:
        return self.url.split('?', 1)[0]

    # subscriptions

    def subscribe(self, tables: Iterable[str], callback: Callable[[dict], None]) -> int:
        tables = frozenset(tables)
        handle = next(self._ids)
        with self._lock:
            self._subs[handle] = (tables, callback)
            missing = sorted(tables - self.server_tables)
        if missing and self.connected.is_set():
            self._send({'type': 'subscribe', 'tables': missing})
        return handle

    def unsubscribe(self, handle: int) -> None:
        with self._lock:
            self._subs.pop(handle, None)

    def __len__(self):
        return len(self._subs)

    # frames

    def handle_text(self, raw) -> int:
        try:
            frame = json.loads(raw)
        except ValueError:
            logger.warning('dropping malformed change frame %.80r', raw)
            return 0
        if not isinstance(frame, dict):
            return 0
        return self.dispatch(frame)

    def dispatch(self, frame: dict) -> int:
        """Route one server frame; returns the number of callbacks scheduled."""
        kind = frame.get('type')
        if kind in ('welcome', 'subscribed'):
            seq = frame.get('seq') or {}
            with self._lock:
                self.server_tables = set(frame.get('tables') or ())
                wanted = set()
                for tables, _ in self._subs.values():
                    wanted |= tables
            missing = sorted(wanted - self.server_tables)
            if missing:
                self._send({'type': 'subscribe', 'tables': missing})
            return self._deliver({'type': 'refresh', 'seq': seq}, frozenset(seq))
        if kind == 'unsubscribed':
            with self._lock:
                self.server_tables = set(frame.get('tables') or ())
            return 0
        if kind == 'change':
            event = {k: v for k, v in frame.items() if k != 'type'}
            return self._deliver(event, frozenset([event.get('table')]))
        if kind == 'refresh':
            return self._deliver(frame)
        if kind == 'error':
            logger.warning('change feed error %s: %s', frame.get('code'), frame.get('message'))
            return 0
        logger.debug('ignoring %r frame', kind)
        return 0

    def _deliver(self, event: dict, tables: Optional[frozenset] = None) -> int:
        if self._closing:
            return 0
        with self._lock:
            targets = [cb for subscribed, cb in self._subs.values() if tables is None or subscribed & tables]
        for callback in targets:
            self._callbacks.submit(self._run_callback, callback, event)
        return len(targets)

    @staticmethod
    def _run_callback(callback, event):
        try:
            callback(event)
        except Exception:
            logger.exception('change callback failed for %s', event.get('table') or event.get('type'))

    def _send(self, frame: dict) -> bool:
        loop, ws = self._loop, self._ws
        if loop is None or ws is None:
            return False
        asyncio.run_coroutine_threadsafe(ws.send(json.dumps(frame)), loop)
        return True

    # connection

    def start(self) -> 'WebSocketChangeSource':
        if self._thread is None:
            self._closing = False
            self._thread = threading.Thread(target=self._worker, name='records-changes-ws', daemon=True)
            self._thread.start()
        return self

    def _worker(self):
        asyncio.run(self._run())

    async def _run(self):
        self._loop = asyncio.get_running_loop()
        while not self._closing:
            try:
                async with websockets.connect(self.url, ping_interval=self.ping_interval,
                                              ping_timeout=self.ping_interval) as ws:
                    self._ws = ws
                    self.last_error = None
                    self.connected.set()
                    logger.info('change feed connected to %s', self._log_url)
                    async for raw in ws:
                        self.handle_text(raw)
            except CONNECT_ERRORS as exc:
                self.last_error = str(exc)
                if not self._closing:
                    logger.warning('change feed %s unavailable: %s', self._log_url, exc)
            finally:
                self._ws = None
                self.connected.clear()
            if not self._closing:
                await asyncio.sleep(self.reconnect_delay)
        self._loop = None

    def wait_connected(self, timeout: Optional[float] = None) -> bool:
        return self.connected.wait(timeout)

    def close(self, timeout: float = 5) -> None:
        self._closing = True
        loop, ws = self._loop, self._ws
        if loop is not None and ws is not None:
            asyncio.run_coroutine_threadsafe(ws.close(), loop)
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        self._callbacks.shutdown(wait=True)

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc):
        self.close()
