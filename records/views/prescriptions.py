from rest_framework import status
from rest_framework.decorators import api_view
from rest_framework.response import Response

from records.realtime.feed import current_sequence
from records.serializers.prescription import PrescriptionBatchSerializer, PrescriptionCreateSerializer
from records.services.exports import prescription_html
from records.services.patients import patient_for_form
from records.services.prescriptions import (
    compose_remarks,
    create_prescriptions,
    get_prescription,
    list_prescriptions,
    prescription_row,
)
from records.views.patients import attachment


@api_view(['GET', 'POST'])
def prescriptions(request):
    """GET lists prescriptions (newest first) with patient names.

    POST accepts either a single row (``medicine_name``/``dosage``/
    ``frequency``) or the multi-medicine form (``medicines: [...]``),
    which inserts one row per medicine.
    """
    if request.method == 'GET':
        seq = current_sequence('prescriptions')
        return Response({'ok': True, 'seq': seq, 'data': [prescription_row(p) for p in list_prescriptions()]})

    if 'medicines' in request.data:
        s = PrescriptionBatchSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        rows = [{
            'medicine_name': m['name'],
            'dosage': m['dosage'],
            'frequency': m['frequency'],
            'duration': m['duration'],
            'remarks': compose_remarks(m.get('instruction'), vd.get('advice')),
        } for m in vd['medicines']]
    else:
        s = PrescriptionCreateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        rows = [{k: vd.get(k) for k in ('medicine_name', 'dosage', 'frequency', 'duration', 'remarks')}]

    patient = patient_for_form(vd['patient_id'])
    created = create_prescriptions(request.user, patient, rows, prescribed_date=vd.get('prescribed_date'))
    return Response({'ok': True, 'data': [prescription_row(p) for p in created]}, status=status.HTTP_201_CREATED)


@api_view(['GET'])
def prescription_export(request, pk):
    """HTML document for printing (``?disposition=inline``) or download."""
    filename, body = prescription_html(get_prescription(pk))
    inline = request.query_params.get('disposition') == 'inline'
    return attachment(body, filename, 'text/html; charset=utf-8', inline=inline)
