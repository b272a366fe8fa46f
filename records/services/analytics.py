"""
Aggregations behind the analytics charts.

Everything here is a handful of ORM aggregates: top medicines and
tests, per-month activity, and patient distribution by gender and age
bracket.
"""
import calendar
from datetime import datetime
from typing import List, Optional, Tuple

from django.conf import settings
from django.db.models import Count, Q, QuerySet
from django.utils import timezone

from records.models import LabReport, Patient, Prescription

ANALYTICS_CACHE_KEY = 'analytics:data'

AGE_BUCKETS = (
    ('0-18', Q(age__lte=18)),
    ('19-35', Q(age__gte=19, age__lte=35)),
    ('36-50', Q(age__gte=36, age__lte=50)),
    ('51-65', Q(age__gte=51, age__lte=65)),
    ('65+', Q(age__gt=65)),
)

Window = Tuple[str, datetime, datetime]


def month_windows(count: int, now: Optional[datetime] = None) -> List[Window]:
    """The last ``count`` calendar months, oldest first, as ``[start, end)`` windows."""
    now = timezone.localtime(now or timezone.now())
    windows = []
    for back in range(count - 1, -1, -1):
        year, month = now.year, now.month - back
        while month <= 0:
            month += 12
            year -= 1
        next_year, next_month = (year + 1, 1) if month == 12 else (year, month + 1)
        start = timezone.make_aware(datetime(year, month, 1))
        end = timezone.make_aware(datetime(next_year, next_month, 1))
        windows.append((calendar.month_abbr[month], start, end))
    return windows


def month_counts(qs: QuerySet, field: str, windows: List[Window]) -> List[int]:
    return [
        qs.filter(**{f'{field}__gte': start, f'{field}__lt': end}).count()
        for _, start, end in windows
    ]


def top_counts(qs: QuerySet, field: str, limit: int = 5) -> List[dict]:
    rows = qs.values(field).annotate(count=Count('id')).order_by('-count', field)[:limit]
    return [{'name': row[field], 'count': row['count']} for row in rows]


def gender_distribution() -> List[dict]:
    rows = Patient.objects.values('gender').annotate(value=Count('id')).order_by('gender')
    return [{'name': row['gender'], 'value': row['value']} for row in rows]


def age_distribution() -> List[dict]:
    totals = Patient.objects.aggregate(**{
        name: Count('id', filter=predicate) for name, predicate in AGE_BUCKETS
    })
    return [{'name': name, 'count': totals[name] or 0} for name, _ in AGE_BUCKETS]


def analytics_data(now: Optional[datetime] = None) -> dict:
    windows = month_windows(settings.ANALYTICS_MONTHS, now)
    patients = month_counts(Patient.objects.all(), 'created_at', windows)
    prescriptions = month_counts(Prescription.objects.all(), 'prescribed_date', windows)
    tests = month_counts(LabReport.objects.all(), 'test_date', windows)
    monthly = [
        {'name': name, 'patients': p, 'prescriptions': rx, 'tests': t}
        for (name, _, _), p, rx, t in zip(windows, patients, prescriptions, tests)
    ]
    return {
        'medicineData': top_counts(Prescription.objects.all(), 'medicine_name'),
        'testData': top_counts(LabReport.objects.all(), 'test_name'),
        'monthlyData': monthly,
        'genderData': gender_distribution(),
        'ageData': age_distribution(),
    }
