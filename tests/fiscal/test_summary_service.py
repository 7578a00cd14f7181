# tests/fiscal/test_summary_service.py

from datetime import timedelta

import pytest
from django.db import DatabaseError
from django.utils import timezone

from fiscal.collaborator_factory import build_mock_collaborators
from fiscal.collaborators import POLL_REJECTED, MockTransport
from fiscal.exceptions import FiscalDisabled, InvalidStateTransition
from fiscal.models import (
    DocType,
    DocumentStatus,
    FiscalAuditEvent,
    FiscalDocument,
    JobType,
    SummaryItem,
)
from fiscal.services import document_service
from fiscal.services.document_service import retry_document
from fiscal.services.summary_service import NOTHING_PENDING, SUMMARY_CREATED, build_summary, pending_receipts
from tests.helpers import drain_queue, issue_accepted


def _today():
    return timezone.localdate()


# ---------------------------------------------------------------------
# 1. Montagem
# ---------------------------------------------------------------------


@pytest.mark.django_db
def test_sem_boletas_nao_aloca_numero(fiscal_ready, collaborators):
    result = build_summary(fiscal_ready.tenant, _today(), collaborators=collaborators)

    assert result.status == NOTHING_PENDING
    assert result.document is None
    fiscal_ready.refresh_from_db()
    assert fiscal_ready.next_summary_number == 1


@pytest.mark.django_db
def test_resumo_inclui_boletas_aceitas_do_dia(fiscal_ready, collaborators):
    receipts = [issue_accepted(fiscal_ready.tenant, collaborators, doc_type="RECEIPT") for _ in range(3)]
    issue_accepted(fiscal_ready.tenant, collaborators)  # FACTURA fica de fora

    result = build_summary(fiscal_ready.tenant, _today(), collaborators=collaborators)

    assert result.status == SUMMARY_CREATED
    assert result.receipt_count == 3

    summary = result.document
    assert summary.doc_type == DocType.SUMMARY
    assert summary.full_number == "RC01-00000001"
    assert summary.reference_date == _today()
    assert summary.status == DocumentStatus.QUEUED
    assert summary.total == sum(r.total for r in receipts)
    assert result.job.job_type == JobType.SEND_SUMMARY
    assert set(SummaryItem.objects.filter(summary=summary).values_list("receipt_id", flat=True)) == {
        r.pk for r in receipts
    }


@pytest.mark.django_db
def test_boletas_de_outro_dia_ficam_de_fora(fiscal_ready, collaborators):
    receipt = issue_accepted(fiscal_ready.tenant, collaborators, doc_type="RECEIPT")
    FiscalDocument.objects.filter(pk=receipt.pk).update(issue_date=timezone.now() - timedelta(days=2))

    assert build_summary(fiscal_ready.tenant, _today(), collaborators=collaborators).status == NOTHING_PENDING


@pytest.mark.django_db
def test_segunda_chamada_nao_duplica(fiscal_ready, collaborators):
    issue_accepted(fiscal_ready.tenant, collaborators, doc_type="RECEIPT")

    first = build_summary(fiscal_ready.tenant, _today(), collaborators=collaborators)
    second = build_summary(fiscal_ready.tenant, _today(), collaborators=collaborators)

    assert first.status == SUMMARY_CREATED
    assert second.status == NOTHING_PENDING
    assert FiscalDocument.objects.filter(doc_type=DocType.SUMMARY).count() == 1


@pytest.mark.django_db
def test_limite_de_boletas_por_resumo(monkeypatch, fiscal_ready, collaborators):
    monkeypatch.setattr("fiscal.services.summary_service.MAX_RECEIPTS_PER_SUMMARY", 2)
    for _ in range(3):
        issue_accepted(fiscal_ready.tenant, collaborators, doc_type="RECEIPT")

    first = build_summary(fiscal_ready.tenant, _today(), collaborators=collaborators)
    second = build_summary(fiscal_ready.tenant, _today(), collaborators=collaborators)

    assert first.receipt_count == 2
    assert second.receipt_count == 1


@pytest.mark.django_db
def test_perfil_desabilitado(fiscal_ready, collaborators):
    fiscal_ready.enabled = False
    fiscal_ready.save()

    with pytest.raises(FiscalDisabled):
        build_summary(fiscal_ready.tenant, _today(), collaborators=collaborators)


# ---------------------------------------------------------------------
# 2. Resultado da autoridade
# ---------------------------------------------------------------------


@pytest.mark.django_db
def test_resumo_aceito_marca_boletas_reportadas(fiscal_ready, collaborators):
    receipt = issue_accepted(fiscal_ready.tenant, collaborators, doc_type="RECEIPT")
    result = build_summary(fiscal_ready.tenant, _today(), collaborators=collaborators)

    receipt.refresh_from_db()
    assert receipt.reported_in_summary is False

    drain_queue(collaborators)

    result.document.refresh_from_db()
    receipt.refresh_from_db()
    assert result.document.status == DocumentStatus.ACCEPTED
    assert receipt.reported_in_summary is True
    assert FiscalAuditEvent.objects.filter(event_type="SUMMARY_ACCEPTED").exists()
    assert not pending_receipts(fiscal_ready.tenant, _today()).exists()


@pytest.mark.django_db
def test_resumo_rejeitado_libera_boletas(fiscal_ready, collaborators):
    """
    Cenário:
      - Resumo rejeitado pela autoridade.
      - Boletas continuam não reportadas e entram num resumo novo.
      - O resumo rejeitado não pode ser re-tentado.
    """
    receipt = issue_accepted(fiscal_ready.tenant, collaborators, doc_type="RECEIPT")

    rejecting = build_mock_collaborators(transport=MockTransport(poll_outcome=POLL_REJECTED))
    rejected = build_summary(fiscal_ready.tenant, _today(), collaborators=rejecting)
    drain_queue(rejecting)

    rejected.document.refresh_from_db()
    assert rejected.document.status == DocumentStatus.REJECTED

    with pytest.raises(InvalidStateTransition):
        retry_document(rejected.document)

    again = build_summary(fiscal_ready.tenant, _today(), collaborators=collaborators)
    assert again.status == SUMMARY_CREATED
    assert again.document.full_number == "RC01-00000002"
    assert SummaryItem.objects.filter(receipt=receipt).count() == 2


@pytest.mark.django_db
def test_falha_na_montagem_nao_reaproveita_numero(fiscal_ready, collaborators, monkeypatch):
    """
    Cenário:
      - RC01-00000001 é alocado e a montagem do resumo falha.
      - O próximo resumo sai como RC01-00000002 com as mesmas boletas.
    """
    receipt = issue_accepted(fiscal_ready.tenant, collaborators, doc_type="RECEIPT")
    original_create_draft = document_service.create_draft

    def broken_create_draft(**kwargs):
        raise DatabaseError("falha ao gravar resumo")

    monkeypatch.setattr(document_service, "create_draft", broken_create_draft)
    with pytest.raises(DatabaseError):
        build_summary(fiscal_ready.tenant, _today(), collaborators=collaborators)

    assert not SummaryItem.objects.exists()

    monkeypatch.setattr(document_service, "create_draft", original_create_draft)
    result = build_summary(fiscal_ready.tenant, _today(), collaborators=collaborators)

    assert result.document.full_number == "RC01-00000002"
    assert list(pending_receipts(fiscal_ready.tenant, _today())) == []
    assert SummaryItem.objects.filter(summary=result.document, receipt=receipt).exists()
