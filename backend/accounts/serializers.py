from rest_framework import serializers

from .models import User


class UserBasicSerializer(serializers.ModelSerializer):
    """
    Lite user info embedded in offer payloads
    (the farmer shown to a transporter, the transporter shown to a farmer).
    """
    fullName = serializers.CharField(source="display_name", read_only=True)
    phone = serializers.CharField(source="phone_number", read_only=True)

    class Meta:
        model = User
        fields = ["id", "fullName", "phone"]
