import uuid
from decimal import Decimal

from django.db import models
from django.utils import timezone

from .profile_models import series_validator


class DocType(models.TextChoices):
    INVOICE = "INVOICE", "Factura"
    RECEIPT = "RECEIPT", "Boleta"
    CREDIT_NOTE = "CREDIT_NOTE", "Nota de crédito"
    DEBIT_NOTE = "DEBIT_NOTE", "Nota de débito"
    SUMMARY = "SUMMARY", "Resumen diario"
    VOID_COMMUNICATION = "VOID_COMMUNICATION", "Comunicación de baja"


# Código oficial de cada tipo junto à autoridade fiscal
AUTHORITY_DOC_CODES = {
    DocType.INVOICE: "01",
    DocType.RECEIPT: "03",
    DocType.CREDIT_NOTE: "07",
    DocType.DEBIT_NOTE: "08",
    DocType.SUMMARY: "RC",
    DocType.VOID_COMMUNICATION: "RA",
}

# Tipos que consolidam outros documentos (não podem ser anulados)
BATCH_DOC_TYPES = frozenset({DocType.SUMMARY, DocType.VOID_COMMUNICATION})


class DocumentStatus(models.TextChoices):
    DRAFT = "DRAFT", "Rascunho"
    SIGNED = "SIGNED", "Assinado"
    QUEUED = "QUEUED", "Na fila"
    SENT = "SENT", "Enviado"
    ACCEPTED = "ACCEPTED", "Aceito"
    REJECTED = "REJECTED", "Rejeitado"
    ERROR = "ERROR", "Erro"
    CANCELED = "CANCELED", "Anulado"


class IdentityDocType(models.TextChoices):
    DNI = "DNI", "DNI"
    RUC = "RUC", "RUC"
    CE = "CE", "Carnê de estrangeiro"
    PASAPORTE = "PASAPORTE", "Passaporte"
    CDI = "CDI", "Cédula diplomática"
    SIN_RUC = "SIN_RUC", "Não domiciliado"
    OTROS = "OTROS", "Outros"


# Código oficial de cada tipo de identidade
IDENTITY_AUTHORITY_CODES = {
    IdentityDocType.DNI: "1",
    IdentityDocType.RUC: "6",
    IdentityDocType.CE: "4",
    IdentityDocType.PASAPORTE: "7",
    IdentityDocType.CDI: "A",
    IdentityDocType.SIN_RUC: "0",
    IdentityDocType.OTROS: "-",
}


class FiscalDocument(models.Model):
    """
    Comprovante eletrônico (CPE) e lotes (resumo diário / comunicação de baixa).

    - Um registro por (tenant, doc_type, series, number); nunca removido.
    - Snapshot do cliente e dos totais é gravado na criação e não muda mais.
    - status só muda via fiscal.services.document_state_machine.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.PROTECT,
        related_name="fiscal_documents",
    )

    # Referência opcional à venda de origem (módulo de vendas é externo)
    sale_id = models.CharField(max_length=64, blank=True, null=True)

    doc_type = models.CharField(max_length=24, choices=DocType.choices)
    series = models.CharField(max_length=4, validators=[series_validator])
    number = models.PositiveIntegerField()
    full_number = models.CharField(max_length=13)

    issue_date = models.DateTimeField(default=timezone.now)
    currency = models.CharField(max_length=3, default="PEN")

    # Snapshot do cliente
    customer_doc_type = models.CharField(
        max_length=16,
        choices=IdentityDocType.choices,
        default=IdentityDocType.OTROS,
    )
    customer_doc_number = models.CharField(max_length=20, blank=True, default="")
    customer_name = models.CharField(max_length=255)
    customer_address = models.CharField(max_length=255, blank=True, null=True)

    # Snapshot monetário
    taxable = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))
    total = models.DecimalField(max_digits=12, decimal_places=2, default=Decimal("0.00"))

    status = models.CharField(
        max_length=16,
        choices=DocumentStatus.choices,
        default=DocumentStatus.DRAFT,
    )

    # Assinatura
    signed_payload = models.TextField(blank=True, null=True)
    content_hash = models.CharField(max_length=128, blank=True, null=True)

    # Retorno da autoridade fiscal
    submission_id = models.CharField(max_length=128, blank=True, null=True)
    authority_code = models.CharField(max_length=16, blank=True, null=True)
    authority_message = models.TextField(blank=True, null=True)
    authority_responded_at = models.DateTimeField(null=True, blank=True)
    # Constância de recebimento (CDR) devolvida pela autoridade
    authority_receipt = models.TextField(blank=True, null=True)

    # Anulação
    void_reason = models.CharField(max_length=255, blank=True, null=True)
    void_communication = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="voided_documents",
    )

    # Nota de crédito/débito -> documento que ela corrige
    reference_document = models.ForeignKey(
        "self",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="amendments",
    )

    # Só para RECEIPT
    reported_in_summary = models.BooleanField(default=False)

    # Só para SUMMARY / VOID_COMMUNICATION
    reference_date = models.DateField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "fiscal_document"
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "doc_type", "series", "number"],
                name="uniq_fiscal_document_number",
            ),
        ]
        indexes = [
            models.Index(fields=["tenant", "status"], name="idx_fiscal_doc_tenant_status"),
            models.Index(fields=["tenant", "doc_type", "issue_date"], name="idx_fiscal_doc_type_date"),
            models.Index(fields=["sale_id"], name="idx_fiscal_doc_sale"),
        ]

    def __str__(self):
        return f"{self.doc_type} {self.full_number} ({self.status})"

    @property
    def authority_doc_code(self) -> str:
        return AUTHORITY_DOC_CODES[self.doc_type]


class SummaryItem(models.Model):
    """
    Liga um resumo diário (SUMMARY) a cada boleta (RECEIPT) que ele inclui.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    summary = models.ForeignKey(
        FiscalDocument,
        on_delete=models.PROTECT,
        related_name="summary_items",
    )
    receipt = models.ForeignKey(
        FiscalDocument,
        on_delete=models.PROTECT,
        related_name="included_in_summaries",
    )

    class Meta:
        db_table = "fiscal_summary_item"
        constraints = [
            models.UniqueConstraint(
                fields=["summary", "receipt"],
                name="uniq_summary_item",
            ),
        ]
