from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from records.realtime.feed import current_sequence
from records.serializers.lab_report import LabReportCreateSerializer
from records.services.exports import lab_report_json
from records.services.lab_reports import create_lab_reports, get_lab_report, lab_report_row, list_lab_reports
from records.services.patients import patient_for_form
from records.views.patients import attachment


@api_view(['GET', 'POST'])
def lab_reports(request):
    """GET lists reports with derived status; POST inserts one row per test entry."""
    if request.method == 'GET':
        seq = current_sequence('lab_reports')
        return Response({'ok': True, 'seq': seq, 'data': [lab_report_row(r) for r in list_lab_reports()]})

    s = LabReportCreateSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    patient = patient_for_form(vd['patient_id'])
    created = create_lab_reports(request.user, patient, vd['test_date'], vd['tests'])
    return Response({'ok': True, 'data': [lab_report_row(r) for r in created]}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
def lab_report_export(request, pk):
    filename, body = lab_report_json(get_lab_report(pk))
    return attachment(body, filename, 'application/json; charset=utf-8')
