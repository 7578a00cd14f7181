# fiscal/serializers_batch.py
from rest_framework import serializers

from fiscal.serializers_documents import FiscalDocumentSerializer


class SummaryRunInputSerializer(serializers.Serializer):
    """
    reference_date ausente -> dia local corrente.
    """

    reference_date = serializers.DateField(required=False)


class SummaryRunOutputSerializer(serializers.Serializer):
    status = serializers.CharField()
    receipt_count = serializers.IntegerField()
    document = FiscalDocumentSerializer(allow_null=True)
    job_id = serializers.CharField(allow_null=True)


class VoidInputSerializer(serializers.Serializer):
    """
    O limite de 500 documentos e o tamanho mínimo do motivo são checados
    na service (com a lista completa de erros).
    """

    document_ids = serializers.ListField(child=serializers.UUIDField(), allow_empty=True)
    reason = serializers.CharField(allow_blank=True)


class VoidOutputSerializer(serializers.Serializer):
    document = FiscalDocumentSerializer()
    job_id = serializers.CharField()
    document_count = serializers.IntegerField()
