"""
Dashboard and analytics endpoints.

Both payloads are cached for ``STATS_CACHE_SECONDS`` under keys that
embed the current change sequence of every table, so any write to the
patients, prescriptions or lab_reports tables moves readers to a fresh
key (see :func:`records.services.dashboard.stats_cache_key`).
"""
from __future__ import annotations

from rest_framework.decorators import api_view
from rest_framework.response import Response

from records.services.analytics import ANALYTICS_CACHE_KEY, analytics_data
from records.services.dashboard import DASHBOARD_CACHE_KEY, cached_payload, dashboard_stats


@api_view(['GET'])
def dashboard(request):
    """Totals and monthly patient/prescription series."""
    return Response(cached_payload(DASHBOARD_CACHE_KEY, dashboard_stats))


@api_view(['GET'])
def analytics(request):
    """Top medicines and tests, monthly activity, gender and age distribution."""
    return Response(cached_payload(ANALYTICS_CACHE_KEY, analytics_data))
