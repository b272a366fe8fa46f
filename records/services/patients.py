import logging
from datetime import datetime, timezone as dt_timezone
from typing import Iterable, Optional

import bleach
from django.db import transaction
from django.db.models import Q, QuerySet
from django.utils import timezone
from rest_framework.exceptions import NotFound, ValidationError

from records.models import Patient
from records.services.audit import log_action

logger = logging.getLogger(__name__)

ALL_GENDERS = ('', 'all')
LOOKUP_LIMIT = 10


def utc_iso(value: datetime) -> str:
    """ISO 8601 in UTC, so rows from any source order the same as strings."""
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return timezone.localtime(value, dt_timezone.utc).isoformat()


def patient_row(patient: Patient) -> dict:
    return {
        'id': str(patient.id),
        'name': patient.name,
        'age': patient.age,
        'gender': patient.gender,
        'contact': patient.contact or None,
        'email': patient.email or None,
        'address': patient.address or None,
        'created_at': utc_iso(patient.created_at),
    }


def _wants_gender(gender: Optional[str]) -> bool:
    return bool(gender) and gender.strip().lower() not in ALL_GENDERS


def list_patients(search: Optional[str] = None, gender: Optional[str] = None) -> QuerySet:
    """Patients newest first, narrowed by name search and gender.

    Both filters are case-insensitive and combine with AND; ``gender``
    of ``"all"`` (or empty) disables the gender filter.
    """
    qs = Patient.objects.order_by('-created_at')
    if search and search.strip():
        qs = qs.filter(name__icontains=search.strip())
    if _wants_gender(gender):
        qs = qs.filter(gender__iexact=gender.strip())
    return qs


def lookup_patients(q: Optional[str], limit: int = LOOKUP_LIMIT) -> list:
    """Patient picker: name or id fragment, case-insensitive, at most ``limit`` rows."""
    term = (q or '').strip()
    if not term:
        return []
    qs = Patient.objects.filter(Q(name__icontains=term) | Q(id__icontains=term))
    return list(qs.order_by('name')[:limit])


def filter_patient_rows(rows: Iterable[dict], search: Optional[str] = None, gender: Optional[str] = None) -> list:
    """Same predicate as :func:`list_patients` over already fetched rows."""
    term = (search or '').strip().lower()
    wanted = (gender or '').strip().lower()
    out = []
    for row in rows:
        if term and term not in (row.get('name') or '').lower():
            continue
        if _wants_gender(wanted) and (row.get('gender') or '').lower() != wanted:
            continue
        out.append(row)
    return out


def get_patient(patient_id) -> Patient:
    patient = Patient.objects.filter(id=patient_id).first()
    if not patient:
        raise NotFound('patient not found')
    return patient


def create_patient(actor, *, name, age, gender, contact='', email='', address='') -> Patient:
    with transaction.atomic():
        patient = Patient.objects.create(
            name=bleach.clean(name.strip(), strip=True),
            age=age,
            gender=gender.lower(),
            contact=bleach.clean((contact or '').strip(), strip=True),
            email=(email or '').strip(),
            address=bleach.clean((address or '').strip(), strip=True),
        )
        log_action(user=actor, action='patient_create', object_type='patient', object_id=patient.id,
                   detail={'name': patient.name})
    logger.info('patient %s created', patient.id)
    return patient


def delete_patient(actor, patient_id) -> None:
    """Remove a patient together with their prescriptions and lab reports."""
    patient = get_patient(patient_id)
    with transaction.atomic():
        counts = {
            'prescriptions': patient.prescriptions.count(),
            'lab_reports': patient.lab_reports.count(),
        }
        patient.delete()
        log_action(user=actor, action='patient_delete', object_type='patient', object_id=patient_id,
                   detail={'name': patient.name, **counts})
    logger.info('patient %s deleted', patient_id)


def patient_for_form(patient_id) -> Patient:
    """Like :func:`get_patient` but reports a missing patient as a field error."""
    patient = Patient.objects.filter(id=patient_id).first()
    if not patient:
        raise ValidationError({'patient_id': ['Patient not found.']})
    return patient
