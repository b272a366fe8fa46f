from rest_framework import serializers

class PrescriptionCreateSerializer(serializers.Serializer):
    """A single prescription row."""
    patient_id = serializers.UUIDField()
    medicine_name = serializers.CharField(max_length=255)
    dosage = serializers.CharField(max_length=128)
    frequency = serializers.CharField(max_length=128)
    duration = serializers.CharField(required=False, allow_blank=True, max_length=128)
    prescribed_date = serializers.DateTimeField(required=False)
    remarks = serializers.CharField(required=False, allow_blank=True, allow_null=True)

class MedicineSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    dosage = serializers.CharField(max_length=128)
    frequency = serializers.CharField(max_length=128)
    duration = serializers.CharField(max_length=128)
    instruction = serializers.CharField(required=False, allow_blank=True)

class PrescriptionBatchSerializer(serializers.Serializer):
    """Multi-medicine form: one prescription row per medicine."""
    patient_id = serializers.UUIDField()
    medicines = MedicineSerializer(many=True, allow_empty=False)
    prescribed_date = serializers.DateTimeField(required=False)
    advice = serializers.CharField(required=False, allow_blank=True)
