# fiscal/serializers_documents.py
from rest_framework import serializers

from fiscal.models import DocType, FiscalDocument
from fiscal.services.issuance_service import ISSUABLE_DOC_TYPES


class CustomerInputSerializer(serializers.Serializer):
    """
    Snapshot do cliente. doc_type aceita nome (DNI, RUC, CE, PASAPORTE, ...)
    ou código oficial (1, 6, 4, 7, ...); a validação fiscal fica na service.
    """

    doc_type = serializers.CharField(required=False, allow_blank=True, default="-")
    doc_number = serializers.CharField(required=False, allow_blank=True, default="")
    name = serializers.CharField(allow_blank=True)
    address = serializers.CharField(required=False, allow_blank=True, allow_null=True)


class TotalsInputSerializer(serializers.Serializer):
    taxable = serializers.DecimalField(max_digits=12, decimal_places=2)
    tax = serializers.DecimalField(max_digits=12, decimal_places=2)
    total = serializers.DecimalField(max_digits=12, decimal_places=2)


class IssueDocumentInputSerializer(serializers.Serializer):
    """
    Dados de entrada para emissão de comprovante.

    reference_document_id só vale para nota de crédito/débito.
    """

    doc_type = serializers.ChoiceField(
        choices=[(value, DocType(value).label) for value in ISSUABLE_DOC_TYPES]
    )
    customer = CustomerInputSerializer()
    totals = TotalsInputSerializer()
    sale_id = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=64)
    reference_document_id = serializers.UUIDField(required=False, allow_null=True)
    currency = serializers.CharField(required=False, default="PEN", max_length=3)


class FiscalDocumentSerializer(serializers.ModelSerializer):
    """
    Saída de documento fiscal. Nunca expõe o XML assinado completo.
    """

    class Meta:
        model = FiscalDocument
        fields = [
            "id",
            "tenant_id",
            "sale_id",
            "doc_type",
            "series",
            "number",
            "full_number",
            "issue_date",
            "currency",
            "customer_doc_type",
            "customer_doc_number",
            "customer_name",
            "customer_address",
            "taxable",
            "tax",
            "total",
            "status",
            "content_hash",
            "submission_id",
            "authority_code",
            "authority_message",
            "authority_responded_at",
            "void_reason",
            "void_communication_id",
            "reference_document_id",
            "reported_in_summary",
            "reference_date",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class IssueDocumentOutputSerializer(serializers.Serializer):
    document = FiscalDocumentSerializer()
    job_id = serializers.CharField()
    warnings = serializers.ListField(child=serializers.CharField())


class DocumentListQuerySerializer(serializers.Serializer):
    doc_type = serializers.ChoiceField(choices=DocType.choices, required=False)
    status = serializers.CharField(required=False)
    issue_date = serializers.DateField(required=False)
    sale_id = serializers.CharField(required=False)
    limit = serializers.IntegerField(required=False, min_value=1, max_value=500, default=100)
    offset = serializers.IntegerField(required=False, min_value=0, default=0)
