import logging
from typing import Iterable, List

import bleach
from django.db import transaction
from django.db.models import QuerySet
from django.utils import timezone
from rest_framework.exceptions import NotFound

from records.models import Patient, Prescription
from records.services.audit import log_action
from records.services.patients import utc_iso

logger = logging.getLogger(__name__)

UNKNOWN_PATIENT = 'Unknown Patient'


def prescription_row(prescription: Prescription) -> dict:
    patient = getattr(prescription, 'patient', None)
    return {
        'id': str(prescription.id),
        'patient_id': str(prescription.patient_id),
        'medicine_name': prescription.medicine_name,
        'dosage': prescription.dosage,
        'frequency': prescription.frequency,
        'duration': prescription.duration or None,
        'prescribed_date': utc_iso(prescription.prescribed_date),
        'remarks': prescription.remarks,
        'patient': {'name': patient.name if patient else UNKNOWN_PATIENT},
    }


def list_prescriptions() -> QuerySet:
    return Prescription.objects.select_related('patient').order_by('-prescribed_date')


def get_prescription(prescription_id) -> Prescription:
    obj = Prescription.objects.select_related('patient').filter(id=prescription_id).first()
    if not obj:
        raise NotFound('prescription not found')
    return obj


def _clean(value):
    if value is None:
        return None
    return bleach.clean(str(value).strip(), strip=True)


def compose_remarks(instruction=None, advice=None):
    parts = [p for p in (_clean(instruction), _clean(advice)) if p]
    return '\n'.join(parts) or None


@transaction.atomic
def create_prescriptions(actor, patient: Patient, rows: Iterable[dict], prescribed_date=None) -> List[Prescription]:
    """Insert one prescription row per medicine, all sharing patient and date."""
    prescribed_date = prescribed_date or timezone.now()
    created = []
    for row in rows:
        created.append(Prescription.objects.create(
            patient=patient,
            medicine_name=_clean(row['medicine_name']),
            dosage=_clean(row['dosage']),
            frequency=_clean(row['frequency']),
            duration=_clean(row.get('duration')) or '',
            prescribed_date=row.get('prescribed_date') or prescribed_date,
            remarks=_clean(row.get('remarks')) or None,
        ))
    log_action(user=actor, action='prescription_create', object_type='patient', object_id=patient.id,
               detail={'ids': [str(p.id) for p in created], 'medicines': [p.medicine_name for p in created]})
    logger.info('%d prescription(s) created for patient %s', len(created), patient.id)
    return created
