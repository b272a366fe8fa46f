"""
Lab report listing, creation and status derivation.

The status shown next to a report is a display heuristic, not a
clinical determination.  Two rules are available (``LAB_STATUS_RULE``):

``lexicographic``
    The legacy rule: ``completed`` when a normal range is present and
    the result string sorts at or before it, ``pending`` otherwise.
``range``
    Parses ranges such as ``"70-110"``, ``"<5.7"`` or ``">= 60"`` and
    compares the leading number of the result; anything unparseable is
    ``pending``.
"""
import logging
import re
from typing import Iterable, List, Optional, Tuple

import bleach
from django.conf import settings
from django.db import transaction
from django.db.models import QuerySet
from rest_framework.exceptions import NotFound

from records.models import LabReport, Patient
from records.services.audit import log_action
from records.services.patients import utc_iso

logger = logging.getLogger(__name__)

STATUS_COMPLETED = 'completed'
STATUS_PENDING = 'pending'
RULES = ('lexicographic', 'range')

_NUMBER = r'[-+]?\d+(?:\.\d+)?'
_BETWEEN = re.compile(rf'^\s*({_NUMBER})\s*(?:-|–|to)\s*({_NUMBER})')
_BOUND = re.compile(rf'^\s*(<=|>=|<|>|≤|≥)\s*({_NUMBER})')
_LEADING_NUMBER = re.compile(rf'^\s*({_NUMBER})')


def parse_range(normal_range: Optional[str]) -> Optional[Tuple[Optional[float], Optional[float]]]:
    """Return ``(low, high)`` bounds, either of which may be open, or None."""
    if not normal_range:
        return None
    m = _BETWEEN.match(normal_range)
    if m:
        low, high = float(m.group(1)), float(m.group(2))
        return (min(low, high), max(low, high))
    m = _BOUND.match(normal_range)
    if m:
        op, value = m.group(1), float(m.group(2))
        if op in ('<', '<=', '≤'):
            return (None, value)
        return (value, None)
    return None


def _range_status(result: str, normal_range: Optional[str]) -> str:
    bounds = parse_range(normal_range)
    m = _LEADING_NUMBER.match(result or '')
    if bounds is None or not m:
        return STATUS_PENDING
    value = float(m.group(1))
    low, high = bounds
    if low is not None and value < low:
        return STATUS_PENDING
    if high is not None and value > high:
        return STATUS_PENDING
    return STATUS_COMPLETED


def derive_status(result: str, normal_range: Optional[str], rule: Optional[str] = None) -> str:
    rule = rule or settings.LAB_STATUS_RULE
    if rule == 'range':
        return _range_status(result, normal_range)
    if normal_range and result <= normal_range:
        return STATUS_COMPLETED
    return STATUS_PENDING


def lab_report_row(report: LabReport) -> dict:
    patient = getattr(report, 'patient', None)
    return {
        'id': str(report.id),
        'patient_id': str(report.patient_id),
        'test_name': report.test_name,
        'result': report.result,
        'normal_range': report.normal_range,
        'test_date': utc_iso(report.test_date),
        'patient': {'name': patient.name if patient else 'Unknown Patient'},
        'status': derive_status(report.result, report.normal_range),
    }


def list_lab_reports() -> QuerySet:
    return LabReport.objects.select_related('patient').order_by('-test_date')


def get_lab_report(report_id) -> LabReport:
    obj = LabReport.objects.select_related('patient').filter(id=report_id).first()
    if not obj:
        raise NotFound('lab report not found')
    return obj


@transaction.atomic
def create_lab_reports(actor, patient: Patient, test_date, tests: Iterable[dict]) -> List[LabReport]:
    """Insert one row per test entry; all rows share patient and test date."""
    created = []
    for test in tests:
        normal_range = (test.get('normal_range') or '').strip()
        created.append(LabReport.objects.create(
            patient=patient,
            test_name=bleach.clean(test['test_name'].strip(), strip=True),
            result=bleach.clean(test['result'].strip(), strip=True),
            normal_range=bleach.clean(normal_range, strip=True) if normal_range else None,
            test_date=test_date,
        ))
    log_action(user=actor, action='lab_report_create', object_type='patient', object_id=patient.id,
               detail={'ids': [str(r.id) for r in created], 'tests': [r.test_name for r in created]})
    logger.info('%d lab report(s) created for patient %s', len(created), patient.id)
    return created
