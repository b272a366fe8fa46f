"""
Live data hooks.

A hook is started ("mounted") once, keeps its copy of the data current
while change events arrive, and is closed ("unmounted") when the caller
is done with it.  Change events look like the frames sent by the
``ws/changes/`` feed::

    {"table": "patients", "event": "INSERT", "id": "...", "seq": 12,
     "row": {...}, "ts": "..."}

Events are delivered through a subscription source.  Anything with
``subscribe(tables, callback) -> handle`` and ``unsubscribe(handle)``
works; :class:`LocalChangeSource` is the in-process one and
:class:`records.client.ws.WebSocketChangeSource` follows the server.
A ``{"type": "refresh"}`` notice makes every hook reload unless it
carries sequences the hook has already caught up with.

Two update strategies exist for collections:

``patch`` (default)
    the next event in sequence is applied to the local rows by id; a
    sequence gap, or an event without a row, triggers one refetch.
``refetch``
    every new event triggers one refetch.

Events at or below the last sequence seen are dropped, and when several
refetches overlap only the most recently issued one may land.
"""
import itertools
import logging
import threading
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from .api import ApiError, RecordsClient

logger = logging.getLogger(__name__)

TABLES = ('patients', 'prescriptions', 'lab_reports')
STRATEGIES = ('patch', 'refetch')

Notify = Callable[[str, str], None]


def log_notify(level: str, message: str) -> None:
    logger.log(logging.ERROR if level == 'error' else logging.INFO, message)


class LocalChangeSource:
    """In-process fan-out of change events to subscribed callbacks."""

    def __init__(self):
        self._subs: Dict[int, Tuple[frozenset, Callable[[dict], None]]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def subscribe(self, tables: Iterable[str], callback: Callable[[dict], None]) -> int:
        handle = next(self._ids)
        with self._lock:
            self._subs[handle] = (frozenset(tables), callback)
        return handle

    def unsubscribe(self, handle: int) -> None:
        with self._lock:
            self._subs.pop(handle, None)

    def publish(self, event: dict) -> int:
        """Deliver ``event`` to every subscriber of its table; returns the number reached.

        ``refresh`` notices carry no table and reach every subscriber.
        """
        refresh = event.get('type') == 'refresh'
        with self._lock:
            targets = [cb for tables, cb in self._subs.values() if refresh or event.get('table') in tables]
        for callback in targets:
            callback(event)
        return len(targets)

    def __len__(self):
        return len(self._subs)


class _Hook:
    """Mount/unmount bookkeeping and last-request-wins refetching."""

    tables: Sequence[str] = ()

    def __init__(self, fetch: Callable, source=None, notify: Optional[Notify] = None, label: str = 'Data'):
        self._fetch = fetch
        self.source = source
        self.notify = notify or log_notify
        self.label = label
        self.loading = False
        self.error: Optional[str] = None
        self.started = False
        self.closed = False
        self.fetch_count = 0
        self._handle = None
        self._issued = 0
        self._applied = 0
        self._followup = False
        self._lock = threading.Lock()

    def start(self) -> bool:
        self.started = True
        if self.source is not None:
            self._handle = self.source.subscribe(self.tables, self.handle_event)
        return self.refetch()

    def close(self) -> None:
        with self._lock:
            self.closed = True
        if self.source is not None and self._handle is not None:
            self.source.unsubscribe(self._handle)
            self._handle = None

    def refetch(self) -> bool:
        """Fetch and apply unless a newer fetch was issued meanwhile; returns whether applied."""
        with self._lock:
            if self.closed:
                return False
            self._issued += 1
            ticket = self._issued
            self.fetch_count += 1
            self.loading = True
        try:
            result = self._fetch()
        except ApiError as exc:
            with self._lock:
                if self.closed or ticket < self._issued:
                    return False
                self.error = exc.message or exc.code
                self.loading = False
                self._reset_after_error()
            self.notify('error', f"Failed to load {self.label.lower()}: {self.error}")
            return False
        with self._lock:
            if self.closed or ticket <= self._applied:
                return False
            if not self._apply(result):
                if ticket == self._issued:
                    self.loading = False
                return False
            self._applied = ticket
            self.error = None
            if ticket == self._issued:
                self.loading = False
            followup, self._followup = self._followup, False
        if followup:
            self.refetch()
        return True

    def _apply(self, result) -> bool:
        raise NotImplementedError

    def _reset_after_error(self) -> None:
        pass

    def handle_event(self, event: dict) -> str:
        """Subscription callback: ``refresh`` notices and row changes."""
        if event.get('type') == 'refresh':
            return self.handle_refresh(event)
        return self.handle_change(event)

    def handle_change(self, event: dict) -> str:
        raise NotImplementedError

    def handle_refresh(self, event: Optional[dict] = None) -> str:
        with self._lock:
            if self.closed:
                return 'ignored'
        self.refetch()
        return 'refetched'


class LiveCollection(_Hook):
    """Rows of one table, newest first by ``order_key``."""

    def __init__(self, table: str, fetch: Callable[[], Tuple[int, List[dict]]], *,
                 source=None, create: Optional[Callable] = None, delete: Optional[Callable] = None,
                 order_key: str = 'created_at', strategy: str = 'patch',
                 matches: Optional[Callable[[dict], bool]] = None,
                 notify: Optional[Notify] = None, label: Optional[str] = None):
        if table not in TABLES:
            raise ValueError(f"unknown table {table!r}")
        if strategy not in STRATEGIES:
            raise ValueError(f"unknown strategy {strategy!r}")
        super().__init__(fetch, source=source, notify=notify, label=label or table.replace('_', ' ').title())
        self.table = table
        self.tables = (table,)
        self.order_key = order_key
        self.strategy = strategy
        self.matches = matches
        self._create = create
        self._delete = delete
        self._rows: Dict[str, dict] = {}
        self._pending: List[dict] = []
        self.last_seq: Optional[int] = None

    @property
    def items(self) -> List[dict]:
        with self._lock:
            return self._sorted()

    def _sorted(self) -> List[dict]:
        return sorted(self._rows.values(), key=lambda r: r.get(self.order_key) or '', reverse=True)

    def _apply(self, result) -> bool:
        seq, rows = result
        if self.last_seq is not None and seq < self.last_seq:
            return False
        self._rows = {str(r['id']): r for r in rows}
        self.last_seq = seq
        pending, self._pending = sorted(self._pending, key=lambda e: e['seq']), []
        for event in pending:
            if event['seq'] <= self.last_seq:
                continue
            if not self._patch(event):
                # gap between the snapshot and the queue: load again once
                self._followup = True
                break
        return True

    def _reset_after_error(self) -> None:
        self._pending = []

    def _patch(self, event: dict) -> bool:
        """Apply the next event in sequence; False when a refetch is needed instead."""
        if event['seq'] != self.last_seq + 1:
            return False
        row_id = str(event.get('id'))
        if event.get('event') == 'DELETE':
            self._rows.pop(row_id, None)
        else:
            row = event.get('row')
            if not row:
                return False
            if self.matches is None or self.matches(row):
                self._rows[row_id] = row
            else:
                self._rows.pop(row_id, None)
        self.last_seq = event['seq']
        return True

    def handle_change(self, event: dict) -> str:
        """Returns ``ignored``, ``queued``, ``patched`` or ``refetched``."""
        seq = event.get('seq')
        if event.get('table') != self.table or not isinstance(seq, int):
            return 'ignored'
        with self._lock:
            if self.closed:
                return 'ignored'
            if self.last_seq is None:
                self._pending.append(event)
                if not self.started or self.loading:
                    return 'queued'
                # started, nothing in flight, no snapshot: the first load failed
            elif seq <= self.last_seq:
                return 'ignored'
            elif self.strategy == 'patch' and self._patch(event):
                return 'patched'
        self.refetch()
        return 'refetched'

    def handle_refresh(self, event: Optional[dict] = None) -> str:
        """Refetch unless the notice carries a sequence this hook already has."""
        seq = ((event or {}).get('seq') or {}).get(self.table)
        with self._lock:
            if self.closed:
                return 'ignored'
            if isinstance(seq, int) and self.last_seq is not None and seq <= self.last_seq:
                return 'ignored'
        self.refetch()
        return 'refetched'

    def add(self, payload: dict):
        if self._create is None:
            raise TypeError(f"{self.label} cannot be added through this hook")
        try:
            created = self._create(payload)
        except ApiError as exc:
            self.notify('error', f"Failed to add {self.label.lower()}: {exc.message or exc.code}")
            raise
        self.notify('success', f"{self.label} added successfully")
        self.refetch()
        return created

    def remove(self, row_id: str) -> None:
        if self._delete is None:
            raise TypeError(f"{self.label} cannot be removed through this hook")
        try:
            self._delete(row_id)
        except ApiError as exc:
            self.notify('error', f"Failed to delete {self.label.lower()}: {exc.message or exc.code}")
            raise
        self.notify('success', f"{self.label} deleted successfully")
        self.refetch()


class LiveValue(_Hook):
    """An aggregate payload refetched whenever any record table changes."""

    def __init__(self, fetch: Callable[[], dict], *, source=None, tables: Sequence[str] = TABLES,
                 notify: Optional[Notify] = None, label: str = 'Data'):
        super().__init__(fetch, source=source, notify=notify, label=label)
        self.tables = tuple(tables)
        self.value: Optional[dict] = None
        self._seen: Dict[str, int] = {}

    def _apply(self, result) -> bool:
        self.value = result
        return True

    def handle_change(self, event: dict) -> str:
        table, seq = event.get('table'), event.get('seq')
        with self._lock:
            if self.closed or table not in self.tables:
                return 'ignored'
            if isinstance(seq, int):
                if seq <= self._seen.get(table, 0):
                    return 'ignored'
                self._seen[table] = seq
        self.refetch()
        return 'refetched'

    def handle_refresh(self, event: Optional[dict] = None) -> str:
        seqs = {t: s for t, s in ((event or {}).get('seq') or {}).items()
                if t in self.tables and isinstance(s, int)}
        with self._lock:
            if self.closed:
                return 'ignored'
            if seqs and self.value is not None and all(s <= self._seen.get(t, 0) for t, s in seqs.items()):
                return 'ignored'
            for table, seq in seqs.items():
                self._seen[table] = max(seq, self._seen.get(table, 0))
        self.refetch()
        return 'refetched'


def _patient_filter(search: Optional[str], gender: Optional[str]) -> Optional[Callable[[dict], bool]]:
    term = (search or '').strip().lower()
    wanted = (gender or '').strip().lower()
    if wanted == 'all':
        wanted = ''
    if not term and not wanted:
        return None

    def matches(row: dict) -> bool:
        if term and term not in (row.get('name') or '').lower():
            return False
        return not wanted or (row.get('gender') or '').lower() == wanted
    return matches


def patients_hook(client: RecordsClient, source=None, *, search: Optional[str] = None,
                  gender: Optional[str] = None, **kwargs) -> LiveCollection:
    return LiveCollection(
        'patients', lambda: client.list_patients(search, gender), source=source,
        create=client.add_patient, delete=client.delete_patient, order_key='created_at',
        matches=_patient_filter(search, gender), label='Patient', **kwargs)


def prescriptions_hook(client: RecordsClient, source=None, **kwargs) -> LiveCollection:
    return LiveCollection(
        'prescriptions', client.list_prescriptions, source=source, create=client.add_prescription,
        order_key='prescribed_date', label='Prescription', **kwargs)


def lab_reports_hook(client: RecordsClient, source=None, **kwargs) -> LiveCollection:
    return LiveCollection(
        'lab_reports', client.list_lab_reports, source=source, create=client.add_lab_report,
        order_key='test_date', label='Lab report', **kwargs)


def dashboard_hook(client: RecordsClient, source=None, **kwargs) -> LiveValue:
    return LiveValue(client.dashboard, source=source, label='Dashboard', **kwargs)


def analytics_hook(client: RecordsClient, source=None, **kwargs) -> LiveValue:
    return LiveValue(client.analytics, source=source, label='Analytics', **kwargs)
