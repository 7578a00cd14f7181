# tests/fiscal/test_issuance_service.py

from datetime import timedelta
from decimal import Decimal

import pytest
from django.db import DatabaseError
from django.utils import timezone

from fiscal.exceptions import (
    CertificateError,
    FiscalDisabled,
    FiscalValidationError,
    InvalidStateTransition,
    ProfileNotConfigured,
)
from fiscal.models import (
    DeliveryJob,
    DocType,
    DocumentStatus,
    FiscalAuditEvent,
    FiscalDocument,
    JobStatus,
    JobType,
    TenantCertificate,
)
from fiscal.services import document_service
from fiscal.services.issuance_service import issue_document, sign_document
from tests.helpers import invoice_payload, issue_accepted, make_profile, receipt_payload


# ---------------------------------------------------------------------
# 1. EMISSÃO NORMAL
# ---------------------------------------------------------------------


@pytest.mark.django_db
def test_emissao_factura_fica_em_fila_com_job(fiscal_ready, collaborators):
    result = issue_document(
        tenant=fiscal_ready.tenant,
        doc_type=DocType.INVOICE,
        sale_id="VENDA-1",
        collaborators=collaborators,
        **invoice_payload(),
    )

    document = FiscalDocument.objects.get(pk=result.document.pk)
    assert document.status == DocumentStatus.QUEUED
    assert document.full_number == "F001-00000001"
    assert document.customer_doc_type == "RUC"
    assert document.total == Decimal("118.00")
    assert document.signed_payload
    assert document.content_hash
    assert document.sale_id == "VENDA-1"

    assert result.job.job_type == JobType.SEND_DOCUMENT
    assert result.job.status == JobStatus.QUEUED
    assert result.job.max_attempts == 5

    events = set(FiscalAuditEvent.objects.filter(document=document).values_list("event_type", flat=True))
    assert events == {"DOCUMENT_CREATED", "DOCUMENT_SIGNED", "DOCUMENT_QUEUED"}


@pytest.mark.django_db
def test_emissao_boleta_usa_serie_de_boleta(fiscal_ready, collaborators):
    result = issue_document(
        tenant=fiscal_ready.tenant,
        doc_type=DocType.RECEIPT,
        collaborators=collaborators,
        **receipt_payload(),
    )
    assert result.document.full_number == "B001-00000001"
    assert result.document.customer_doc_type == "OTROS"


@pytest.mark.django_db
def test_avisos_nao_bloqueiam_emissao(fiscal_ready, collaborators):
    payload = invoice_payload(
        totals={"taxable": Decimal("100.00"), "tax": Decimal("10.00"), "total": Decimal("110.00")}
    )
    result = issue_document(
        tenant=fiscal_ready.tenant,
        doc_type=DocType.INVOICE,
        collaborators=collaborators,
        **payload,
    )
    assert result.document.status == DocumentStatus.QUEUED
    assert len(result.warnings) == 1


# ---------------------------------------------------------------------
# 2. PRÉ-CONDIÇÕES
# ---------------------------------------------------------------------


@pytest.mark.django_db
def test_sem_perfil(tenant, collaborators):
    with pytest.raises(ProfileNotConfigured):
        issue_document(tenant=tenant, doc_type=DocType.INVOICE, collaborators=collaborators, **invoice_payload())


@pytest.mark.django_db
def test_perfil_desabilitado(tenant, collaborators):
    make_profile(tenant, enabled=False)

    with pytest.raises(FiscalDisabled) as exc:
        issue_document(tenant=tenant, doc_type=DocType.INVOICE, collaborators=collaborators, **invoice_payload())

    assert exc.value.detail["code"] == "FISCAL_1002"
    assert FiscalDocument.objects.count() == 0


@pytest.mark.django_db
def test_validacao_nao_consome_numero(fiscal_ready, collaborators):
    bad = invoice_payload(customer={"doc_type": "DNI", "doc_number": "12345678", "name": "Fulano"})

    with pytest.raises(FiscalValidationError) as exc:
        issue_document(tenant=fiscal_ready.tenant, doc_type=DocType.INVOICE, collaborators=collaborators, **bad)

    assert exc.value.detail["code"] == "FISCAL_2001"
    assert len(exc.value.errors) == 2

    fiscal_ready.refresh_from_db()
    assert fiscal_ready.next_invoice_number == 1
    assert FiscalDocument.objects.count() == 0


@pytest.mark.django_db
def test_falha_ao_criar_draft_deixa_lacuna(fiscal_ready, collaborators, monkeypatch):
    """
    Cenário:
      - O número 1 é alocado, mas a criação do DRAFT falha.
      - A emissão seguinte recebe o número 2; o 1 nunca volta a sair.
    """
    original_create_draft = document_service.create_draft

    def broken_create_draft(**kwargs):
        raise DatabaseError("falha ao gravar documento")

    monkeypatch.setattr(document_service, "create_draft", broken_create_draft)
    with pytest.raises(DatabaseError):
        issue_document(tenant=fiscal_ready.tenant, doc_type=DocType.INVOICE, collaborators=collaborators, **invoice_payload())

    fiscal_ready.refresh_from_db()
    assert fiscal_ready.next_invoice_number == 2
    assert FiscalDocument.objects.count() == 0

    monkeypatch.setattr(document_service, "create_draft", original_create_draft)
    result = issue_document(tenant=fiscal_ready.tenant, doc_type=DocType.INVOICE, collaborators=collaborators, **invoice_payload())

    assert result.document.number == 2
    assert result.document.full_number == "F001-00000002"


@pytest.mark.django_db
def test_lote_nao_pode_ser_emitido_diretamente(fiscal_ready, collaborators):
    with pytest.raises(FiscalValidationError):
        issue_document(tenant=fiscal_ready.tenant, doc_type=DocType.SUMMARY, collaborators=collaborators, **receipt_payload())


# ---------------------------------------------------------------------
# 3. FALHA DE ASSINATURA
# ---------------------------------------------------------------------


@pytest.mark.django_db
def test_sem_certificado_documento_fica_em_draft(profile, collaborators):
    """
    Cenário:
      - Perfil habilitado, sem certificado.
      - CertificateError (CERT_MISSING) com document_id no detalhe.
      - Documento persiste em DRAFT; número já consumido; nenhum job.
    """
    with pytest.raises(CertificateError) as exc:
        issue_document(tenant=profile.tenant, doc_type=DocType.INVOICE, collaborators=collaborators, **invoice_payload())

    detail = exc.value.detail
    assert detail["code"] == "FISCAL_3001"
    assert detail["reason"] == "CERT_MISSING"

    document = FiscalDocument.objects.get()
    assert str(document.pk) == detail["document_id"]
    assert document.status == DocumentStatus.DRAFT
    assert DeliveryJob.objects.count() == 0
    assert FiscalAuditEvent.objects.filter(event_type="DOCUMENT_SIGN_FAILED", severity="ERROR").exists()


@pytest.mark.django_db
def test_certificado_expirado(profile, certificate, collaborators):
    certificate.expires_at = timezone.now() - timedelta(days=1)
    certificate.save()

    with pytest.raises(CertificateError) as exc:
        issue_document(tenant=profile.tenant, doc_type=DocType.INVOICE, collaborators=collaborators, **invoice_payload())

    assert exc.value.detail["reason"] == "CERT_EXPIRED"


@pytest.mark.django_db
def test_reassinatura_apos_renovar_certificado(profile, collaborators):
    with pytest.raises(CertificateError):
        issue_document(tenant=profile.tenant, doc_type=DocType.INVOICE, collaborators=collaborators, **invoice_payload())

    document = FiscalDocument.objects.get()
    TenantCertificate.objects.create(tenant=profile.tenant, pfx=b"pfx", password="x")

    job = sign_document(document, collaborators=collaborators)

    document.refresh_from_db()
    assert document.status == DocumentStatus.QUEUED
    assert job.document_id == document.pk


@pytest.mark.django_db
def test_assinar_documento_fora_de_draft(fiscal_ready, collaborators):
    result = issue_document(tenant=fiscal_ready.tenant, doc_type=DocType.INVOICE, collaborators=collaborators, **invoice_payload())

    with pytest.raises(InvalidStateTransition):
        sign_document(result.document, collaborators=collaborators)


# ---------------------------------------------------------------------
# 4. NOTAS DE CRÉDITO / DÉBITO
# ---------------------------------------------------------------------


@pytest.mark.django_db
def test_nota_de_credito_referencia_factura(fiscal_ready, collaborators):
    invoice = issue_accepted(fiscal_ready.tenant, collaborators)

    result = issue_document(
        tenant=fiscal_ready.tenant,
        doc_type=DocType.CREDIT_NOTE,
        reference_document_id=invoice.pk,
        collaborators=collaborators,
        **invoice_payload(),
    )

    assert result.document.full_number == "FC01-00000001"
    assert result.document.reference_document_id == invoice.pk
    assert "BillingReference" in result.document.signed_payload


@pytest.mark.django_db
def test_referencia_so_para_notas(fiscal_ready, collaborators):
    invoice = issue_accepted(fiscal_ready.tenant, collaborators)

    with pytest.raises(FiscalValidationError):
        issue_document(
            tenant=fiscal_ready.tenant,
            doc_type=DocType.INVOICE,
            reference_document_id=invoice.pk,
            collaborators=collaborators,
            **invoice_payload(),
        )


@pytest.mark.django_db
def test_referencia_de_outro_tenant_nao_e_aceita(fiscal_ready, other_tenant, collaborators):
    make_profile(other_tenant)
    TenantCertificate.objects.create(tenant=other_tenant, pfx=b"pfx", password="x")
    foreign = issue_accepted(other_tenant, collaborators)

    with pytest.raises(FiscalValidationError) as exc:
        issue_document(
            tenant=fiscal_ready.tenant,
            doc_type=DocType.DEBIT_NOTE,
            reference_document_id=foreign.pk,
            collaborators=collaborators,
            **invoice_payload(),
        )

    assert "referência" in exc.value.errors[0]
