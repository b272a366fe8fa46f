import threading

import pytest

from records.client import (
    ApiError,
    LiveCollection,
    LiveValue,
    LocalChangeSource,
    SessionContext,
    SessionState,
    dashboard_hook,
    patients_hook,
)
from records.client.session import classify_error


def row(row_id, created_at='2024-01-01T00:00:00+00:00', **extra):
    return {'id': row_id, 'created_at': created_at, **extra}


def change(seq, event='INSERT', row_id='x', data=None, table='patients'):
    return {'table': table, 'event': event, 'id': row_id, 'seq': seq, 'row': data, 'ts': '2024-01-01T00:00:00Z'}


class Fetcher:
    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = 0

    def __call__(self):
        self.calls += 1
        result = self.responses[min(self.calls, len(self.responses)) - 1]
        if isinstance(result, Exception):
            raise result
        return result


class Notes(list):
    def __call__(self, level, message):
        self.append((level, message))


@pytest.fixture
def source():
    return LocalChangeSource()


def test_start_loads_and_subscribes(source):
    fetch = Fetcher((3, [row('a', '2024-01-01'), row('b', '2024-02-01')]))
    hook = LiveCollection('patients', fetch, source=source)
    assert hook.start() is True
    assert [r['id'] for r in hook.items] == ['b', 'a']
    assert hook.last_seq == 3
    assert hook.loading is False
    assert len(source) == 1
    hook.close()
    assert len(source) == 0


def test_contiguous_insert_is_patched_without_refetch(source):
    fetch = Fetcher((3, [row('a', '2024-01-01')]))
    hook = LiveCollection('patients', fetch, source=source)
    hook.start()
    assert source.publish(change(4, row_id='b', data=row('b', '2024-03-01'))) == 1
    assert [r['id'] for r in hook.items] == ['b', 'a']
    assert hook.last_seq == 4
    assert fetch.calls == 1


def test_delete_event_removes_row(source):
    hook = LiveCollection('patients', Fetcher((1, [row('a'), row('b')])), source=source)
    hook.start()
    assert hook.handle_change(change(2, event='DELETE', row_id='a')) == 'patched'
    assert [r['id'] for r in hook.items] == ['b']


def test_sequence_gap_refetches_exactly_once(source):
    fetch = Fetcher((1, [row('a')]), (5, [row('a'), row('c')]))
    hook = LiveCollection('patients', fetch, source=source)
    hook.start()
    assert hook.handle_change(change(5, row_id='c', data=row('c'))) == 'refetched'
    assert fetch.calls == 2
    assert hook.last_seq == 5
    assert {r['id'] for r in hook.items} == {'a', 'c'}


def test_stale_and_duplicate_events_ignored(source):
    fetch = Fetcher((4, [row('a')]))
    hook = LiveCollection('patients', fetch, source=source)
    hook.start()
    assert hook.handle_change(change(4, row_id='z', data=row('z'))) == 'ignored'
    assert hook.handle_change(change(2, event='DELETE', row_id='a')) == 'ignored'
    assert hook.handle_change(change(9, table='lab_reports')) == 'ignored'
    assert [r['id'] for r in hook.items] == ['a']
    assert fetch.calls == 1


def test_event_without_row_triggers_refetch(source):
    fetch = Fetcher((1, []), (2, [row('a')]))
    hook = LiveCollection('patients', fetch, source=source)
    hook.start()
    assert hook.handle_change(change(2, event='UPDATE', row_id='a', data=None)) == 'refetched'
    assert fetch.calls == 2


def test_refetch_strategy_refetches_once_per_event(source):
    fetch = Fetcher((1, []), (2, [row('a')]), (3, [row('a'), row('b')]))
    hook = LiveCollection('patients', fetch, source=source, strategy='refetch')
    hook.start()
    source.publish(change(2, row_id='a', data=row('a')))
    source.publish(change(3, row_id='b', data=row('b')))
    assert fetch.calls == 3
    assert len(hook.items) == 2


def test_events_before_first_load_are_replayed():
    hook = LiveCollection('patients', Fetcher((3, [row('a')])))
    assert hook.handle_change(change(3, row_id='old', data=row('old'))) == 'queued'
    assert hook.handle_change(change(4, row_id='b', data=row('b'))) == 'queued'
    hook.start()
    assert {r['id'] for r in hook.items} == {'a', 'b'}
    assert hook.last_seq == 4


def test_stale_response_does_not_overwrite_newer():
    started, release = threading.Event(), threading.Event()
    calls = []

    def fetch():
        calls.append(1)
        if len(calls) == 1:
            started.set()
            release.wait(5)
            return 1, [row('old')]
        return 2, [row('new')]

    hook = LiveCollection('patients', fetch)
    results = {}
    worker = threading.Thread(target=lambda: results.update(first=hook.refetch()))
    worker.start()
    assert started.wait(5)
    assert hook.refetch() is True
    release.set()
    worker.join(5)
    assert results['first'] is False
    assert [r['id'] for r in hook.items] == ['new']
    assert hook.loading is False


def test_close_drops_in_flight_results(source):
    started, release = threading.Event(), threading.Event()

    def fetch():
        started.set()
        release.wait(5)
        return 1, [row('a')]

    hook = LiveCollection('patients', fetch, source=source)
    results = {}
    worker = threading.Thread(target=lambda: results.update(applied=hook.start()))
    worker.start()
    assert started.wait(5)
    hook.close()
    release.set()
    worker.join(5)
    assert results['applied'] is False
    assert hook.items == []
    assert source.publish(change(2)) == 0


def test_fetch_error_is_reported():
    notes = Notes()
    hook = LiveCollection('patients', Fetcher(ApiError(500, 'server_error', 'boom')), notify=notes)
    assert hook.start() is False
    assert hook.error == 'boom'
    assert hook.loading is False
    assert notes == [('error', 'Failed to load patients: boom')]


def test_add_notifies_then_refetches():
    notes = Notes()
    created = []
    fetch = Fetcher((0, []), (1, [row('a')]))
    hook = LiveCollection('patients', fetch, create=lambda p: created.append(p) or row('a'),
                          notify=notes, label='Patient')
    hook.start()
    hook.add({'name': 'Jane'})
    assert created == [{'name': 'Jane'}]
    assert notes == [('success', 'Patient added successfully')]
    assert fetch.calls == 2
    assert [r['id'] for r in hook.items] == ['a']


def test_add_failure_notifies_and_raises():
    notes = Notes()

    def create(payload):
        raise ApiError(400, 'validation_error', 'Age must be a positive number.')

    fetch = Fetcher((0, []))
    hook = LiveCollection('patients', fetch, create=create, notify=notes, label='Patient')
    hook.start()
    with pytest.raises(ApiError):
        hook.add({'age': 'abc'})
    assert notes[0][0] == 'error'
    assert fetch.calls == 1


def test_gap_in_replayed_events_loads_again():
    fetch = Fetcher((3, [row('a')]), (5, [row('a'), row('c')]))
    hook = LiveCollection('patients', fetch)
    assert hook.handle_change(change(5, row_id='c', data=row('c'))) == 'queued'
    assert hook.start() is True
    assert fetch.calls == 2
    assert hook.last_seq == 5
    assert {r['id'] for r in hook.items} == {'a', 'c'}


def test_replayed_events_are_applied_in_sequence_order():
    fetch = Fetcher((3, [row('a')]))
    hook = LiveCollection('patients', fetch)
    hook.handle_change(change(5, row_id='c', data=row('c')))
    hook.handle_change(change(4, row_id='b', data=row('b')))
    hook.start()
    assert fetch.calls == 1
    assert hook.last_seq == 5
    assert {r['id'] for r in hook.items} == {'a', 'b', 'c'}


def test_change_after_failed_first_load_recovers(source):
    notes = Notes()
    fetch = Fetcher(ApiError(503, 'http_503', 'unavailable'), (1, [row('a')]))
    hook = LiveCollection('patients', fetch, source=source, notify=notes)
    assert hook.start() is False
    assert hook.last_seq is None
    assert source.publish(change(1, row_id='a', data=row('a'))) == 1
    assert fetch.calls == 2
    assert hook.last_seq == 1
    assert hook.error is None
    assert hook.handle_change(change(2, row_id='b', data=row('b'))) == 'patched'
    assert {r['id'] for r in hook.items} == {'a', 'b'}
    assert hook._pending == []


def test_failed_load_drops_queued_events():
    hook = LiveCollection('patients', Fetcher(ApiError(503, 'http_503', 'unavailable')), notify=Notes())
    hook.handle_change(change(1, row_id='a', data=row('a')))
    hook.start()
    assert hook._pending == []


def test_refresh_notice_reloads_collection(source):
    fetch = Fetcher((2, [row('a')]), (3, [row('a'), row('b')]))
    hook = LiveCollection('patients', fetch, source=source)
    hook.start()
    assert hook.handle_refresh({'type': 'refresh', 'seq': {'patients': 2}}) == 'ignored'
    assert source.publish({'type': 'refresh', 'ts': '2024-01-01T00:00:00Z', 'keys': []}) == 1
    assert fetch.calls == 2
    assert hook.last_seq == 3


def test_remove_requires_delete():
    hook = LiveCollection('prescriptions', Fetcher((0, [])))
    with pytest.raises(TypeError):
        hook.remove('a')


class PatientStore:
    def __init__(self, *ids):
        self.rows = {i: row(i, name=f'Patient {i}', gender='female') for i in ids}
        self.seq = 1
        self.deleted = []

    def list_patients(self, search=None, gender=None):
        return self.seq, list(self.rows.values())

    def add_patient(self, payload):
        raise AssertionError('not used')

    def delete_patient(self, patient_id):
        if patient_id not in self.rows:
            raise ApiError(404, 'not_found', 'Patient not found')
        del self.rows[patient_id]
        self.deleted.append(patient_id)
        self.seq += 1


def test_patients_hook_remove_deletes_and_refetches():
    notes = Notes()
    store = PatientStore('a', 'b')
    hook = patients_hook(store, notify=notes)
    hook.start()
    hook.remove('a')
    assert store.deleted == ['a']
    assert notes == [('success', 'Patient deleted successfully')]
    assert hook.fetch_count == 2
    assert [r['id'] for r in hook.items] == ['b']
    assert hook.last_seq == 2


def test_patients_hook_remove_failure_notifies_and_raises():
    notes = Notes()
    store = PatientStore('a')
    hook = patients_hook(store, notify=notes)
    hook.start()
    with pytest.raises(ApiError) as exc:
        hook.remove('missing')
    assert exc.value.status == 404
    assert notes == [('error', 'Failed to delete patient: Patient not found')]
    assert hook.fetch_count == 1
    assert [r['id'] for r in hook.items] == ['a']


class FakeClient:
    def __init__(self):
        self.dashboard_calls = 0

    def list_patients(self, search=None, gender=None):
        return 1, [row('a', name='Alice Brown', gender='female')]

    def add_patient(self, payload):
        return payload

    def delete_patient(self, patient_id):
        return None

    def dashboard(self):
        self.dashboard_calls += 1
        return {'totalPatients': self.dashboard_calls}


def test_patients_hook_keeps_filter_on_patch(source):
    hook = patients_hook(FakeClient(), source, search='brown', gender='female')
    hook.start()
    source.publish(change(2, row_id='b', data=row('b', name='Bob Brown', gender='male')))
    source.publish(change(3, row_id='c', data=row('c', name='Cara Brown', gender='female')))
    assert {r['id'] for r in hook.items} == {'a', 'c'}


def test_dashboard_hook_refetches_on_any_table(source):
    client = FakeClient()
    hook = dashboard_hook(client, source)
    hook.start()
    assert hook.value == {'totalPatients': 1}
    source.publish(change(1, table='lab_reports'))
    source.publish(change(1, table='lab_reports'))
    source.publish(change(7, table='prescriptions'))
    assert client.dashboard_calls == 3
    assert hook.value == {'totalPatients': 3}
    hook.close()
    source.publish(change(8, table='patients'))
    assert client.dashboard_calls == 3


def test_live_value_handle_change_filters_tables():
    hook = LiveValue(lambda: {}, tables=('patients',))
    assert hook.handle_change(change(1, table='lab_reports')) == 'ignored'


def test_dashboard_hook_reloads_on_refresh_notice(source):
    client = FakeClient()
    hook = dashboard_hook(client, source)
    hook.start()
    source.publish(change(4, table='patients'))
    assert client.dashboard_calls == 2
    assert hook.handle_refresh({'type': 'refresh', 'seq': {'patients': 4}}) == 'ignored'
    assert source.publish({'type': 'refresh', 'ts': '2024-01-01T00:00:00Z', 'keys': []}) == 1
    assert client.dashboard_calls == 3
    assert hook.value == {'totalPatients': 3}


# --- session ------------------------------------------------------------

class SessionClient:
    def __init__(self, error=None):
        self.error = error
        self.token = None

    def sign_in(self, email, password):
        if self.error:
            raise self.error
        self.token = 'abc'
        return {'ok': True, 'token': 'abc', 'user': {'email': email}}

    def sign_out(self):
        self.token = None

    def current_user(self):
        return {'email': 'staff@example.com'}


def test_session_sign_in_and_out():
    states = []
    ctx = SessionContext(SessionClient(), on_change=lambda c: states.append(c.state))
    assert ctx.sign_in('staff@example.com', 'pw') is True
    assert ctx.is_authenticated
    assert ctx.user == {'email': 'staff@example.com'}
    ctx.sign_out()
    assert states == [SessionState.AUTHENTICATING, SessionState.AUTHENTICATED, SessionState.ANONYMOUS]


@pytest.mark.parametrize('error, expected', [
    (ApiError(403, 'email_not_confirmed', 'Email not confirmed'), 'email_not_confirmed'),
    (ApiError(401, 'invalid_credentials', 'Invalid login credentials'), 'invalid_credentials'),
    (ApiError(400, 'http_400', 'Email not confirmed'), 'email_not_confirmed'),
    (ApiError(400, 'http_400', 'Invalid login credentials'), 'invalid_credentials'),
    (ApiError(500, 'server_error', 'boom'), 'unknown'),
])
def test_session_sign_in_failure_classified(error, expected):
    ctx = SessionContext(SessionClient(error))
    assert ctx.sign_in('staff@example.com', 'pw') is False
    assert ctx.state is SessionState.ERROR
    assert ctx.error_type == expected


def test_classify_error_prefers_code():
    assert classify_error('email_not_confirmed', 'Invalid login') == 'email_not_confirmed'


def test_restore_without_token_is_anonymous():
    ctx = SessionContext(SessionClient())
    assert ctx.restore() is False
    assert ctx.state is SessionState.ANONYMOUS
