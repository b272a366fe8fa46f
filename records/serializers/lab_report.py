from rest_framework import serializers

class LabTestSerializer(serializers.Serializer):
    test_name = serializers.CharField(max_length=255)
    result = serializers.CharField(max_length=255)
    normal_range = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)

class LabReportCreateSerializer(serializers.Serializer):
    patient_id = serializers.UUIDField()
    test_date = serializers.DateTimeField()
    tests = LabTestSerializer(many=True, allow_empty=False)
