from rest_framework import serializers

from clinic_backend.history.responses import MESSAGES


class VersionedFieldSerializer(serializers.Serializer):
    """One ``{version, data}`` history field."""

    version = serializers.IntegerField(min_value=0)
    data = serializers.JSONField()

    def validate_data(self, value):
        """History data is always a list or an object."""
        if not isinstance(value, (list, dict)):
            raise serializers.ValidationError('data must be a list or an object.')
        return value


class HistoryUpdateSerializer(serializers.Serializer):
    """Body of a history update: the patient and the fields to store."""

    patientId = serializers.IntegerField(
        min_value=1,
        error_messages={
            'required': MESSAGES['missing_patient_id'],
            'null': MESSAGES['missing_patient_id'],
            'invalid': MESSAGES['missing_patient_id'],
            'min_value': MESSAGES['missing_patient_id'],
        },
    )
    medicalHistory = serializers.DictField(child=VersionedFieldSerializer())

    def validate_medicalHistory(self, value):
        if not value:
            raise serializers.ValidationError('medicalHistory must contain at least one field.')
        return value
