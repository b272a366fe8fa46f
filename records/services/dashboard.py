from datetime import datetime
from typing import Callable, Dict, Optional

from django.conf import settings
from django.core.cache import cache

from records.models import LabReport, Patient, Prescription
from records.realtime.feed import TABLES, current_sequences
from records.services.analytics import month_counts, month_windows

DASHBOARD_CACHE_KEY = 'dashboard:stats'


def stats_cache_key(base: str, seqs: Optional[Dict[str, int]] = None) -> str:
    """``base`` suffixed with every table's change sequence, e.g. ``dashboard:stats:4.2.7``.

    A write bumps a sequence in its own transaction, so a payload built
    before that write can only ever be stored under the older key.
    """
    seqs = seqs if seqs is not None else current_sequences()
    return f"{base}:{'.'.join(str(seqs.get(t, 0)) for t in TABLES)}"


def cached_payload(base: str, build: Callable[[], dict]) -> dict:
    key = stats_cache_key(base)
    cached = cache.get(key)
    if cached:
        return cached
    payload = {'ok': True, 'data': build()}
    cache.set(key, payload, settings.STATS_CACHE_SECONDS)
    return payload


def dashboard_stats(now: Optional[datetime] = None) -> dict:
    """Headline totals plus monthly patient and prescription series."""
    windows = month_windows(settings.ANALYTICS_MONTHS, now)
    patient_series = month_counts(Patient.objects.all(), 'created_at', windows)
    prescription_series = month_counts(Prescription.objects.all(), 'prescribed_date', windows)
    return {
        'totalPatients': Patient.objects.count(),
        'totalPrescriptions': Prescription.objects.count(),
        'totalLabReports': LabReport.objects.count(),
        'patientData': [{'name': w[0], 'count': c} for w, c in zip(windows, patient_series)],
        'prescriptionData': [{'name': w[0], 'count': c} for w, c in zip(windows, prescription_series)],
    }
