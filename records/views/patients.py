"""
Patient endpoints.

List (with name search and gender filter), look up by name or id,
register, read, delete and download a patient's details as JSON.
"""
from __future__ import annotations

from django.http import HttpResponse
from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from records.realtime.feed import current_sequence
from records.serializers.patient import (
    PatientCreateSerializer,
    PatientListQuerySerializer,
    PatientLookupQuerySerializer,
)
from records.services.exports import patient_json
from records.services.patients import (
    create_patient,
    delete_patient,
    get_patient,
    list_patients,
    lookup_patients,
    patient_row,
)


def attachment(body: str, filename: str, content_type: str, *, inline: bool = False) -> HttpResponse:
    resp = HttpResponse(body, content_type=content_type)
    disposition = 'inline' if inline else 'attachment'
    resp['Content-Disposition'] = f'{disposition}; filename="{filename}"'
    return resp


@api_view(['GET', 'POST'])
def patients(request):
    """GET lists patients newest first; POST registers a new patient."""
    if request.method == 'POST':
        s = PatientCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        patient = create_patient(request.user, **s.validated_data)
        return Response({'ok': True, 'data': patient_row(patient)}, status=status.HTTP_201_CREATED)

    q = PatientListQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    # sequence first: rows are at least as new as the reported seq
    seq = current_sequence('patients')
    qs = list_patients(q.validated_data.get('search'), q.validated_data.get('gender'))
    return Response({'ok': True, 'seq': seq, 'data': [patient_row(p) for p in qs]})


@api_view(['GET'])
def patient_lookup(request):
    """Patient picker for the prescription and lab report forms; ``?q=`` matches name or id."""
    q = PatientLookupQuerySerializer(data=request.query_params)
    q.is_valid(raise_exception=True)
    rows = lookup_patients(q.validated_data.get('q'))
    return Response({'ok': True, 'data': [patient_row(p) for p in rows]})


@api_view(['GET', 'DELETE'])
def patient_detail(request, pk):
    if request.method == 'DELETE':
        delete_patient(request.user, pk)
        return Response({'ok': True})
    patient = get_patient(pk)
    data = patient_row(patient)
    data['prescriptionCount'] = patient.prescriptions.count()
    data['labReportCount'] = patient.lab_reports.count()
    return Response({'ok': True, 'data': data})


@api_view(['GET'])
def patient_export(request, pk):
    filename, body = patient_json(get_patient(pk))
    return attachment(body, filename, 'application/json; charset=utf-8')
