from rest_framework import serializers

class LoginSerializer(serializers.Serializer):
    email = serializers.EmailField()
    password = serializers.CharField(min_length=6, trim_whitespace=False)

    def validate_email(self, v):
        return (v or '').strip().lower()

class LogoutSerializer(serializers.Serializer):
    refresh = serializers.CharField(required=False, allow_blank=True)

class ResendConfirmationSerializer(serializers.Serializer):
    email = serializers.EmailField()

class ConfirmEmailSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=512)
