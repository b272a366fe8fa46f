"""
Downloadable exports for patients, lab reports and prescriptions.

Each export carries an explicit ``schema`` name and ``version`` so that
consumers of the downloaded files can tell formats apart.  JSON exports
are plain dicts; the prescription export is an HTML document rendered
from ``records/prescription.html``.
"""
import json
import re
from datetime import datetime
from typing import Tuple

from django.template.loader import render_to_string
from django.utils import timezone

from records.models import LabReport, Patient, Prescription
from records.services.lab_reports import derive_status

EXPORT_VERSION = 1
NOT_PROVIDED = 'Not provided'
NOT_SPECIFIED = 'Not specified'


def slugify_name(value: str) -> str:
    """Lower-case and replace whitespace runs with hyphens."""
    return re.sub(r'\s+', '-', (value or '').strip()).lower()


def display_date(value: datetime) -> str:
    """``Jan 5, 2024`` style date."""
    local = timezone.localtime(value) if timezone.is_aware(value) else value
    return f"{local:%b} {local.day}, {local.year}"


def patient_export(patient: Patient) -> dict:
    return {
        'schema': 'patient',
        'version': EXPORT_VERSION,
        'name': patient.name,
        'id': str(patient.id),
        'age': patient.age,
        'gender': patient.gender,
        'contact': patient.contact or NOT_PROVIDED,
        'address': patient.address or NOT_PROVIDED,
        'registeredOn': display_date(patient.created_at),
    }


def lab_report_export(report: LabReport) -> dict:
    return {
        'schema': 'lab_report',
        'version': EXPORT_VERSION,
        'id': str(report.id),
        'patientId': str(report.patient_id),
        'patientName': report.patient.name,
        'testName': report.test_name,
        'result': report.result,
        'normalRange': report.normal_range or NOT_SPECIFIED,
        'testDate': display_date(report.test_date),
        'status': derive_status(report.result, report.normal_range),
    }


def dump_json(payload: dict) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


def patient_json(patient: Patient) -> Tuple[str, str]:
    """Return ``(filename, body)`` for a patient detail download."""
    return f"patient-{slugify_name(patient.name)}.json", dump_json(patient_export(patient))


def lab_report_json(report: LabReport) -> Tuple[str, str]:
    return f"lab-report-{slugify_name(report.test_name)}.json", dump_json(lab_report_export(report))


def prescription_html(prescription: Prescription) -> Tuple[str, str]:
    patient = prescription.patient
    body = render_to_string('records/prescription.html', {
        'schema': 'prescription',
        'version': EXPORT_VERSION,
        'prescription': prescription,
        'patient': patient,
        'prescribed_on': display_date(prescription.prescribed_date),
        'generated_at': timezone.now().isoformat(),
    })
    date_part = timezone.localtime(prescription.prescribed_date).date().isoformat()
    return f"prescription-{slugify_name(patient.name)}-{date_part}.html", body
