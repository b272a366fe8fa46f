"""
Row-level change feed.

Writes to the patients, prescriptions and lab_reports tables are
published to the channel-layer group ``changes.<table>`` once the
surrounding transaction commits.  Each event carries a sequence number
taken from :class:`records.models.ChangeSequence` inside the writing
transaction, so numbers are strictly increasing per table and a client
can spot gaps or stale events.

Every open feed connection also sits in ``REFRESH_GROUP``, which
carries cache warm-up notices rather than row changes.
"""
import logging
from typing import Dict, Iterable, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from records.models import ChangeSequence

logger = logging.getLogger(__name__)

TABLES = ('patients', 'prescriptions', 'lab_reports')
EVENT_TYPES = ('INSERT', 'UPDATE', 'DELETE')
REFRESH_GROUP = 'records.refresh'


def group_name(table: str) -> str:
    return f"changes.{table}"


def parse_tables(raw) -> list:
    """Normalise a table selection; ``*`` or nothing means every table."""
    if raw is None:
        return list(TABLES)
    if isinstance(raw, str):
        raw = raw.split(',')
    names = [str(t).strip() for t in raw if str(t).strip()]
    if not names or '*' in names:
        return list(TABLES)
    unknown = [t for t in names if t not in TABLES]
    if unknown:
        raise ValueError(f"unknown table(s): {', '.join(unknown)}")
    return [t for t in TABLES if t in names]


def next_sequence(table: str) -> int:
    with transaction.atomic():
        ChangeSequence.objects.get_or_create(table=table)
        ChangeSequence.objects.filter(table=table).update(seq=F('seq') + 1)
        return ChangeSequence.objects.filter(table=table).values_list('seq', flat=True).get()


def current_sequence(table: str) -> int:
    return ChangeSequence.objects.filter(table=table).values_list('seq', flat=True).first() or 0


def current_sequences(tables: Iterable[str] = TABLES) -> Dict[str, int]:
    found = dict(ChangeSequence.objects.filter(table__in=list(tables)).values_list('table', 'seq'))
    return {t: found.get(t, 0) for t in tables}


def dispatch(payload: dict) -> None:
    """Fan the event out to subscribers of its table."""
    channel_layer = get_channel_layer()
    if channel_layer is None:
        return
    try:
        async_to_sync(channel_layer.group_send)(group_name(payload['table']), {'type': 'records.change', **payload})
    except Exception:
        # committed already; subscribers resync on the sequence gap
        logger.exception('failed to publish %s change %s', payload['table'], payload['seq'])


def publish_change(table: str, event: str, row_id, row: Optional[dict] = None) -> dict:
    if table not in TABLES:
        raise ValueError(f"unknown table {table!r}")
    if event not in EVENT_TYPES:
        raise ValueError(f"unknown event {event!r}")
    payload = {
        'table': table,
        'event': event,
        'id': str(row_id),
        'seq': next_sequence(table),
        'row': row,
        'ts': timezone.now().isoformat(),
    }
    transaction.on_commit(lambda: dispatch(payload))
    return payload
