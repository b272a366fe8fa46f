from rest_framework import serializers

from records.models import Patient

GENDERS = [value for value, _ in Patient.GENDER_CHOICES]

class PatientCreateSerializer(serializers.Serializer):
    name = serializers.CharField(min_length=2, max_length=255,
                                 error_messages={'min_length': 'Name must be at least 2 characters.'})
    age = serializers.IntegerField(min_value=1, max_value=150,
                                   error_messages={'invalid': 'Age must be a positive number.',
                                                   'min_value': 'Age must be a positive number.'})
    gender = serializers.CharField(max_length=10, error_messages={'required': 'Please select a gender.'})
    contact = serializers.CharField(min_length=5, max_length=64,
                                    error_messages={'min_length': 'Contact number must be at least 5 characters.'})
    email = serializers.EmailField(required=False, allow_blank=True)
    address = serializers.CharField(required=False, allow_blank=True, max_length=2000)

    def validate_gender(self, v):
        v = (v or '').strip().lower()
        if v not in GENDERS:
            raise serializers.ValidationError('Please select a gender.')
        return v

class PatientListQuerySerializer(serializers.Serializer):
    search = serializers.CharField(required=False, allow_blank=True, max_length=255)
    gender = serializers.CharField(required=False, allow_blank=True, max_length=10)


class PatientLookupQuerySerializer(serializers.Serializer):
    q = serializers.CharField(required=False, allow_blank=True, max_length=255)
