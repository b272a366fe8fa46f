"""
Integration tests for the records REST API.

Run with ``pytest -q records/tests``.
"""
import json
from datetime import timedelta

import pytest
from django.core.cache import cache
from django.utils import timezone

from records.models import AuditEvent, LabReport, Patient, Prescription
from records.services.dashboard import DASHBOARD_CACHE_KEY, cached_payload, dashboard_stats, stats_cache_key

pytestmark = pytest.mark.django_db

NEW_PATIENT = {
    'name': 'John Smith',
    'age': 35,
    'gender': 'Male',
    'contact': '555-0199',
    'email': 'john@example.com',
    'address': '9 Elm Road',
}


def test_anonymous_requests_are_rejected(anon):
    r = anon.get('/api/patients')
    assert r.status_code == 401
    assert r.data['ok'] is False
    assert r.data['error']['code'] == 'not_authenticated'


def test_unknown_route_returns_json_404(api):
    r = api.get('/api/nothing-here')
    assert r.status_code == 404
    assert r.json()['error']['code'] == 'not_found'


def test_register_patient(api):
    r = api.post('/api/patients', NEW_PATIENT, format='json')
    assert r.status_code == 201
    assert r.data['data']['name'] == 'John Smith'
    assert r.data['data']['gender'] == 'male'
    patient = Patient.objects.get()
    assert AuditEvent.objects.filter(action='patient_create', object_id=str(patient.id)).exists()


def test_register_patient_rejects_non_numeric_age(api):
    r = api.post('/api/patients', {**NEW_PATIENT, 'age': 'abc'}, format='json')
    assert r.status_code == 400
    assert r.data['error']['code'] == 'validation_error'
    assert r.data['error']['message']['age'][0] == 'Age must be a positive number.'
    assert not Patient.objects.exists()


@pytest.mark.parametrize('field, value, message', [
    ('name', 'J', 'Name must be at least 2 characters.'),
    ('gender', 'unknown', 'Please select a gender.'),
    ('contact', '123', 'Contact number must be at least 5 characters.'),
])
def test_register_patient_field_errors(api, field, value, message):
    r = api.post('/api/patients', {**NEW_PATIENT, field: value}, format='json')
    assert r.status_code == 400
    assert r.data['error']['message'][field][0] == message


def test_list_patients_newest_first_with_filters(api):
    now = timezone.now()
    Patient.objects.create(name='Alice Brown', age=30, gender='female', created_at=now - timedelta(days=2))
    Patient.objects.create(name='Bob Brown', age=40, gender='male', created_at=now - timedelta(days=1))
    Patient.objects.create(name='Carol White', age=50, gender='female', created_at=now)

    r = api.get('/api/patients')
    assert r.status_code == 200
    assert [p['name'] for p in r.data['data']] == ['Carol White', 'Bob Brown', 'Alice Brown']
    assert r.data['seq'] == 3

    r = api.get('/api/patients', {'search': 'brown'})
    assert [p['name'] for p in r.data['data']] == ['Bob Brown', 'Alice Brown']

    r = api.get('/api/patients', {'search': 'brown', 'gender': 'Female'})
    assert [p['name'] for p in r.data['data']] == ['Alice Brown']

    r = api.get('/api/patients', {'gender': 'all'})
    assert len(r.data['data']) == 3


def test_patient_lookup_by_name_or_id(api):
    jane = Patient.objects.create(name='Jane Doe', age=42, gender='female')
    Patient.objects.create(name='John Smith', age=35, gender='male')

    r = api.get('/api/patients/lookup', {'q': 'DOE'})
    assert r.status_code == 200
    assert [p['name'] for p in r.data['data']] == ['Jane Doe']

    r = api.get('/api/patients/lookup', {'q': jane.id.hex[:8]})
    assert [p['id'] for p in r.data['data']] == [str(jane.id)]

    r = api.get('/api/patients/lookup', {'q': '  '})
    assert r.data['data'] == []


def test_patient_lookup_returns_at_most_ten(api):
    for i in range(12):
        Patient.objects.create(name=f'Patient {i:02d}', age=30, gender='other')
    r = api.get('/api/patients/lookup', {'q': 'patient'})
    assert len(r.data['data']) == 10
    assert r.data['data'][0]['name'] == 'Patient 00'


def test_patient_detail_and_delete_cascades(api, patient):
    Prescription.objects.create(patient=patient, medicine_name='Aspirin', dosage='81mg', frequency='Once daily')
    LabReport.objects.create(patient=patient, test_name='Hemoglobin', result='13', normal_range='12-16',
                             test_date=timezone.now())

    r = api.get(f'/api/patients/{patient.id}')
    assert r.status_code == 200
    assert r.data['data']['prescriptionCount'] == 1
    assert r.data['data']['labReportCount'] == 1

    r = api.delete(f'/api/patients/{patient.id}')
    assert r.status_code == 200 and r.data['ok'] is True
    assert not Patient.objects.exists()
    assert not Prescription.objects.exists()
    assert not LabReport.objects.exists()
    event = AuditEvent.objects.get(action='patient_delete')
    assert event.detail['prescriptions'] == 1

    r = api.get(f'/api/patients/{patient.id}')
    assert r.status_code == 404
    assert r.data['error']['code'] == 'not_found'


def test_create_single_prescription(api, patient):
    r = api.post('/api/prescriptions', {
        'patient_id': str(patient.id),
        'medicine_name': 'Amoxicillin',
        'dosage': '500mg',
        'frequency': 'Three times daily',
        'duration': '7 days',
    }, format='json')
    assert r.status_code == 201
    assert len(r.data['data']) == 1
    row = r.data['data'][0]
    assert row['medicine_name'] == 'Amoxicillin'
    assert row['patient'] == {'name': 'Jane Doe'}


def test_create_prescription_batch_one_row_per_medicine(api, patient):
    r = api.post('/api/prescriptions', {
        'patient_id': str(patient.id),
        'prescribed_date': '2024-03-01T09:00:00Z',
        'advice': 'Drink plenty of water',
        'medicines': [
            {'name': 'Paracetamol', 'dosage': '1g', 'frequency': 'Every 6 hours', 'duration': '5 days',
             'instruction': 'After food'},
            {'name': 'Cetirizine', 'dosage': '10mg', 'frequency': 'Once daily', 'duration': '10 days'},
        ],
    }, format='json')
    assert r.status_code == 201
    assert Prescription.objects.count() == 2
    first = Prescription.objects.get(medicine_name='Paracetamol')
    second = Prescription.objects.get(medicine_name='Cetirizine')
    assert first.remarks == 'After food\nDrink plenty of water'
    assert second.remarks == 'Drink plenty of water'
    assert first.prescribed_date == second.prescribed_date


def test_prescription_for_unknown_patient(api):
    r = api.post('/api/prescriptions', {
        'patient_id': '00000000-0000-0000-0000-000000000000',
        'medicine_name': 'Aspirin', 'dosage': '81mg', 'frequency': 'Once daily',
    }, format='json')
    assert r.status_code == 400
    assert r.data['error']['message']['patient_id'][0] == 'Patient not found.'


def test_list_prescriptions_includes_patient_name(api, patient):
    now = timezone.now()
    Prescription.objects.create(patient=patient, medicine_name='Old', dosage='1', frequency='1',
                                prescribed_date=now - timedelta(days=3))
    Prescription.objects.create(patient=patient, medicine_name='New', dosage='1', frequency='1',
                                prescribed_date=now)
    r = api.get('/api/prescriptions')
    assert [p['medicine_name'] for p in r.data['data']] == ['New', 'Old']
    assert r.data['data'][0]['patient']['name'] == 'Jane Doe'
    assert r.data['seq'] >= 2


def test_create_lab_report_one_row_per_test(api, patient):
    r = api.post('/api/lab-reports', {
        'patient_id': str(patient.id),
        'test_date': '2024-02-10T08:30:00Z',
        'tests': [
            {'test_name': 'Fasting glucose', 'result': '100', 'normal_range': '70-110'},
            {'test_name': 'HbA1c', 'result': '5.4'},
        ],
    }, format='json')
    assert r.status_code == 201
    assert len(r.data['data']) == 2
    assert LabReport.objects.filter(patient=patient).count() == 2
    assert len(set(LabReport.objects.values_list('test_date', flat=True))) == 1
    by_name = {row['test_name']: row for row in r.data['data']}
    assert by_name['Fasting glucose']['status'] == 'completed'
    assert by_name['HbA1c']['status'] == 'pending'
    assert by_name['HbA1c']['normal_range'] is None


def test_lab_report_requires_tests(api, patient):
    r = api.post('/api/lab-reports', {
        'patient_id': str(patient.id), 'test_date': '2024-02-10T08:30:00Z', 'tests': [],
    }, format='json')
    assert r.status_code == 400


def test_patient_export(api, patient):
    r = api.get(f'/api/patients/{patient.id}/export')
    assert r.status_code == 200
    assert r['Content-Disposition'] == 'attachment; filename="patient-jane-doe.json"'
    body = json.loads(r.content)
    assert body['schema'] == 'patient'
    assert body['version'] == 1
    assert body['name'] == 'Jane Doe'


def test_lab_report_export(api, patient):
    report = LabReport.objects.create(patient=patient, test_name='Total cholesterol', result='180',
                                      test_date=timezone.now())
    r = api.get(f'/api/lab-reports/{report.id}/export')
    assert r.status_code == 200
    assert 'lab-report-total-cholesterol.json' in r['Content-Disposition']
    body = json.loads(r.content)
    assert body['normalRange'] == 'Not specified'
    assert body['patientName'] == 'Jane Doe'


def test_prescription_export_html(api, patient):
    rx = Prescription.objects.create(patient=patient, medicine_name='Aspirin', dosage='81mg',
                                     frequency='Once daily')
    r = api.get(f'/api/prescriptions/{rx.id}/export', {'disposition': 'inline'})
    assert r.status_code == 200
    assert r['Content-Type'].startswith('text/html')
    assert r['Content-Disposition'].startswith('inline; filename="prescription-jane-doe-')
    html = r.content.decode()
    assert 'Aspirin' in html
    assert 'name="export-schema" content="prescription"' in html


def test_dashboard_totals_and_series(api, patient):
    Prescription.objects.create(patient=patient, medicine_name='Aspirin', dosage='81mg', frequency='Once daily')
    r = api.get('/api/dashboard')
    assert r.status_code == 200
    data = r.data['data']
    assert data['totalPatients'] == 1
    assert data['totalPrescriptions'] == 1
    assert data['totalLabReports'] == 0
    assert len(data['patientData']) == 7
    assert data['patientData'][-1]['count'] == 1
    assert cache.get(DASHBOARD_CACHE_KEY) is not None


def test_dashboard_cache_follows_table_sequences(api, patient, django_capture_on_commit_callbacks):
    api.get('/api/dashboard')
    before = stats_cache_key(DASHBOARD_CACHE_KEY)
    assert cache.get(before) is not None
    with django_capture_on_commit_callbacks(execute=True):
        api.post('/api/patients', NEW_PATIENT, format='json')
    assert stats_cache_key(DASHBOARD_CACHE_KEY) != before
    assert cache.get(stats_cache_key(DASHBOARD_CACHE_KEY)) is None
    r = api.get('/api/dashboard')
    assert r.data['data']['totalPatients'] == 2


def test_stats_built_before_a_write_are_not_served_after_it(api):
    def build_then_write():
        data = dashboard_stats()
        # a write commits while the slow build is still running
        Patient.objects.create(name='Late Arrival', age=30, gender='male')
        return data

    stale = cached_payload(DASHBOARD_CACHE_KEY, build_then_write)
    assert stale['data']['totalPatients'] == 0
    r = api.get('/api/dashboard')
    assert r.data['data']['totalPatients'] == 1


def test_analytics_payload(api, patient):
    Prescription.objects.create(patient=patient, medicine_name='Aspirin', dosage='81mg', frequency='Once daily')
    Prescription.objects.create(patient=patient, medicine_name='Aspirin', dosage='81mg', frequency='Once daily')
    Prescription.objects.create(patient=patient, medicine_name='Ibuprofen', dosage='200mg', frequency='Twice daily')
    r = api.get('/api/analytics')
    assert r.status_code == 200
    data = r.data['data']
    assert data['medicineData'][0] == {'name': 'Aspirin', 'count': 2}
    assert data['genderData'] == [{'name': 'female', 'value': 1}]
    assert {'name': '36-50', 'count': 1} in data['ageData']
    assert len(data['monthlyData']) == 7


def test_healthz(anon, db):
    r = anon.get('/healthz')
    assert r.status_code == 200
    assert r.json()['ok'] is True
