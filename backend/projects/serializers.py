from rest_framework import serializers

from .models import Project


def sanitize_text(value: str) -> str:
    """Trim and drop angle brackets from free-text input."""
    return value.strip().replace('<', '').replace('>', '')


class ProjectSerializer(serializers.ModelSerializer):
    """
    Project create/list serializer
    """
    contractor_id = serializers.UUIDField(source='contractor.id', read_only=True)

    class Meta:
        model = Project
        fields = (
            'id', 'contractor_id', 'project_name', 'client_email',
            'start_date', 'end_date', 'created_at', 'updated_at'
        )
        read_only_fields = ('id', 'contractor_id', 'created_at', 'updated_at')

    def validate_project_name(self, value):
        cleaned = sanitize_text(value)
        if not cleaned:
            raise serializers.ValidationError("Project name is required.")
        return cleaned

    def validate_client_email(self, value):
        return value.strip().lower()

    def validate(self, attrs):
        if attrs['start_date'] >= attrs['end_date']:
            raise serializers.ValidationError({'end_date': "End date must be after the start date."})
        return attrs


class ContractSignedNotificationSerializer(serializers.Serializer):
    contractorEmail = serializers.EmailField()
    contractorName = serializers.CharField(max_length=255)
    projectName = serializers.CharField(max_length=255)
    documentName = serializers.CharField(max_length=255)
    clientName = serializers.CharField(max_length=255)

    def validate(self, attrs):
        return {
            key: sanitize_text(value) if key != 'contractorEmail' else value
            for key, value in attrs.items()
        }
