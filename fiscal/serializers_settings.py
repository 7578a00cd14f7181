# fiscal/serializers_settings.py
from rest_framework import serializers

from fiscal.models import FiscalEnvironment


class EnvironmentSwitchInputSerializer(serializers.Serializer):
    target = serializers.ChoiceField(choices=FiscalEnvironment.choices)
    confirmation_text = serializers.CharField(required=False, allow_blank=True, default="")


class RequirementSerializer(serializers.Serializer):
    requirement = serializers.CharField()
    message = serializers.CharField()


class EnvironmentReadinessSerializer(serializers.Serializer):
    environment = serializers.CharField()
    ready_for_production = serializers.BooleanField()
    checks = serializers.DictField(child=serializers.BooleanField())
    missing = RequirementSerializer(many=True)


class EnvironmentSwitchOutputSerializer(serializers.Serializer):
    changed = serializers.BooleanField()
    previous = serializers.CharField()
    environment = serializers.CharField()


class ProfileInitializeOutputSerializer(serializers.Serializer):
    created = serializers.BooleanField()
    profile_id = serializers.CharField()
    environment = serializers.CharField()
    enabled = serializers.BooleanField()
