"""
Python client for the records API plus live data hooks.

The hooks keep a local copy of a table (or an aggregate payload) in step
with the server by refetching or patching on change-feed events.  This
package has no Django dependency and can run in any process.
"""
from .api import ApiError, RecordsClient
from .live import (
    LiveCollection,
    LiveValue,
    LocalChangeSource,
    analytics_hook,
    dashboard_hook,
    lab_reports_hook,
    patients_hook,
    prescriptions_hook,
)
from .session import SessionContext, SessionState
from .ws import WebSocketChangeSource

__all__ = [
    'ApiError',
    'RecordsClient',
    'SessionContext',
    'SessionState',
    'LiveCollection',
    'LiveValue',
    'LocalChangeSource',
    'WebSocketChangeSource',
    'patients_hook',
    'prescriptions_hook',
    'lab_reports_hook',
    'dashboard_hook',
    'analytics_hook',
]
