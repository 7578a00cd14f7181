# fiscal/services/document_service.py

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Mapping, Optional

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from fiscal.exceptions import DocumentFileNotAvailable, FiscalValidationError
from fiscal.models.document_models import BATCH_DOC_TYPES
from fiscal.models import (
    DeliveryJob,
    DocType,
    DocumentStatus,
    FiscalDocument,
    IdentityDocType,
    JobStatus,
    JobType,
)
from fiscal.services.document_state_machine import DocumentStateMachine
from fiscal.services.sequence_service import format_full_number
from fiscal.services.validation import normalize_identity_type, to_decimal
from fiscal.signals import emit_fiscal_event

logger = logging.getLogger("cpe.fiscal")


JOB_TYPE_BY_DOC_TYPE = {
    DocType.SUMMARY: JobType.SEND_SUMMARY,
    DocType.VOID_COMMUNICATION: JobType.SEND_VOID,
}

LIVE_JOB_STATUSES = (JobStatus.QUEUED, JobStatus.RUNNING)


def job_type_for(document: FiscalDocument) -> str:
    return JOB_TYPE_BY_DOC_TYPE.get(document.doc_type, JobType.SEND_DOCUMENT)


def _max_attempts() -> int:
    return int(getattr(settings, "FISCAL_MAX_ATTEMPTS", 5))


# ---------------------------------------------------------------------------
# Criação
# ---------------------------------------------------------------------------


def create_draft(
    *,
    tenant,
    doc_type: str,
    series: str,
    number: int,
    customer: Mapping[str, Any],
    totals: Mapping[str, Any],
    sale_id: Optional[str] = None,
    issue_date: Optional[datetime] = None,
    currency: str = "PEN",
    reference_document: Optional[FiscalDocument] = None,
    reference_date: Optional[date] = None,
    actor=None,
) -> FiscalDocument:
    """
    Persiste o documento em DRAFT com snapshot imutável de cliente e totais.

    O número já deve ter sido alocado (sequence_service.allocate_number).
    """
    identity_type = normalize_identity_type(customer.get("doc_type")) or IdentityDocType.OTROS

    document = FiscalDocument.objects.create(
        tenant_id=getattr(tenant, "pk", tenant),
        sale_id=sale_id,
        doc_type=doc_type,
        series=series,
        number=number,
        full_number=format_full_number(series, number),
        issue_date=issue_date or timezone.now(),
        currency=currency,
        customer_doc_type=identity_type,
        customer_doc_number=(customer.get("doc_number") or "").strip(),
        customer_name=(customer.get("name") or "").strip(),
        customer_address=customer.get("address") or None,
        taxable=to_decimal(totals.get("taxable", 0)),
        tax=to_decimal(totals.get("tax", 0)),
        total=to_decimal(totals.get("total", 0)),
        status=DocumentStatus.DRAFT,
        reference_document=reference_document,
        reference_date=reference_date,
    )

    emit_fiscal_event(
        tenant_id=document.tenant_id,
        event_type="DOCUMENT_CREATED",
        document_id=document.pk,
        actor_id=getattr(actor, "pk", actor),
        meta={
            "doc_type": document.doc_type,
            "full_number": document.full_number,
            "total": str(document.total),
            "sale_id": sale_id,
        },
    )
    return document


# ---------------------------------------------------------------------------
# Transições
# ---------------------------------------------------------------------------


def attach_signed_payload(document: FiscalDocument, *, signed_xml: str, digest_value: str, actor=None) -> FiscalDocument:
    return DocumentStateMachine.apply(
        document,
        "sign",
        fields={"signed_payload": signed_xml, "content_hash": digest_value},
        actor=actor,
    )


def _schedule_job(document: FiscalDocument, *, job_type: str) -> DeliveryJob:
    return DeliveryJob.objects.create(
        tenant_id=document.tenant_id,
        document=document,
        job_type=job_type,
        status=JobStatus.QUEUED,
        next_run_at=timezone.now(),
        max_attempts=_max_attempts(),
    )


def enqueue_document(document: FiscalDocument, *, actor=None) -> DeliveryJob:
    """
    SIGNED -> QUEUED e cria o job de envio na mesma transação.
    """
    with transaction.atomic():
        DocumentStateMachine.apply(document, "enqueue", actor=actor)
        job = _schedule_job(document, job_type=job_type_for(document))

    logger.info(
        "document_enqueued",
        extra={
            "event": "document_enqueue",
            "tenant_id": str(document.tenant_id),
            "document_id": str(document.pk),
            "job_id": str(job.pk),
            "job_type": job.job_type,
        },
    )
    return job


def mark_sent(document: FiscalDocument, *, submission_id: str, actor=None) -> FiscalDocument:
    return DocumentStateMachine.apply(
        document,
        "submit",
        fields={"submission_id": submission_id},
        actor=actor,
        meta={"submission_id": submission_id},
    )


def mark_accepted(
    document: FiscalDocument,
    *,
    code: str,
    message: str,
    receipt: Optional[str] = None,
    actor=None,
) -> FiscalDocument:
    return DocumentStateMachine.apply(
        document,
        "accept",
        fields={
            "authority_code": code,
            "authority_message": message,
            "authority_receipt": receipt,
            "authority_responded_at": timezone.now(),
        },
        actor=actor,
        meta={"authority_code": code},
    )


def mark_rejected(
    document: FiscalDocument,
    *,
    code: str,
    message: str,
    receipt: Optional[str] = None,
    actor=None,
) -> FiscalDocument:
    return DocumentStateMachine.apply(
        document,
        "reject",
        fields={
            "authority_code": code,
            "authority_message": message,
            "authority_receipt": receipt,
            "authority_responded_at": timezone.now(),
        },
        actor=actor,
        meta={"authority_code": code, "authority_message": message},
    )


def mark_error(document: FiscalDocument, *, error: str, actor=None) -> FiscalDocument:
    return DocumentStateMachine.apply(
        document,
        "error",
        fields={"authority_message": error},
        actor=actor,
        meta={"error": error},
    )


def retry_document(document: FiscalDocument, *, actor=None) -> DeliveryJob:
    """
    Re-enfileira um documento (REJECTED / ERROR / QUEUED / SENT).

    Regras:
      - Passa pela transição "retry" (status volta a QUEUED).
      - Lote (resumo / baixa) REJEITADO não volta: foi substituído e as
        boletas/documentos ficam livres para um lote novo.
      - Consultas de ticket ainda vivas são encerradas (o envio recomeça).
      - Se já existe job de envio vivo (QUEUED/RUNNING), reaproveita;
        um job QUEUED é antecipado para agora.
      - Caso contrário cria um job novo com tentativas zeradas.
    """
    if document.doc_type in BATCH_DOC_TYPES and document.status == DocumentStatus.REJECTED:
        raise DocumentStateMachine.invalid(document, "retry", document.status)

    job_type = job_type_for(document)
    now = timezone.now()

    with transaction.atomic():
        DocumentStateMachine.apply(document, "retry", actor=actor)

        DeliveryJob.objects.filter(
            document=document,
            job_type=JobType.POLL_STATUS,
            status__in=LIVE_JOB_STATUSES,
        ).update(
            status=JobStatus.FAILED,
            last_error="Substituído por re-tentativa manual.",
            completed_at=now,
            locked_at=None,
            locked_by=None,
            updated_at=now,
        )

        job = (
            DeliveryJob.objects.select_for_update()
            .filter(document=document, job_type=job_type, status__in=LIVE_JOB_STATUSES)
            .order_by("-created_at")
            .first()
        )
        if job is None:
            job = _schedule_job(document, job_type=job_type)
            reused = False
        else:
            if job.status == JobStatus.QUEUED:
                job.next_run_at = now
                job.save(update_fields=["next_run_at", "updated_at"])
            reused = True

    logger.info(
        "document_retry",
        extra={
            "event": "document_retry",
            "tenant_id": str(document.tenant_id),
            "document_id": str(document.pk),
            "job_id": str(job.pk),
            "job_reused": reused,
            "actor_id": getattr(actor, "pk", None),
        },
    )
    return job


def cancel_document(document: FiscalDocument, *, actor=None) -> FiscalDocument:
    """
    ACCEPTED -> CANCELED, somente quando uma comunicação de baixa ACEITA
    referencia o documento.
    """
    void = document.void_communication
    if void is None or void.status != DocumentStatus.ACCEPTED:
        raise DocumentStateMachine.invalid(document, "cancel", document.status)

    return DocumentStateMachine.apply(
        document,
        "cancel",
        actor=actor,
        meta={"void_communication_id": str(void.pk), "void_reason": document.void_reason},
    )


# ---------------------------------------------------------------------------
# Download
# ---------------------------------------------------------------------------

FILE_SIGNED_XML = "xml"
FILE_AUTHORITY_RECEIPT = "cdr"


def get_document_file(document: FiscalDocument, file_type: Optional[str], *, actor=None) -> tuple[str, str]:
    """
    Devolve (nome do arquivo, conteúdo) para download.

    - "xml": XML assinado ({full_number}.xml)
    - "cdr": constância da autoridade (R-{full_number}.xml)

    Arquivo ainda inexistente -> DocumentFileNotAvailable. Todo download
    entregue gera DOCUMENT_DOWNLOADED na auditoria.
    """
    file_type = (file_type or FILE_SIGNED_XML).strip().lower()

    if file_type == FILE_SIGNED_XML:
        content = document.signed_payload
        filename = f"{document.full_number}.xml"
        missing = "XML assinado não disponível."
    elif file_type == FILE_AUTHORITY_RECEIPT:
        content = document.authority_receipt
        filename = f"R-{document.full_number}.xml"
        missing = "Constância da autoridade ainda não recebida."
    else:
        raise FiscalValidationError([f"Tipo de arquivo inválido: {file_type}. Use xml ou cdr."])

    if not content:
        raise DocumentFileNotAvailable(
            missing,
            extra={"document_id": str(document.pk), "type": file_type},
        )

    emit_fiscal_event(
        tenant_id=document.tenant_id,
        event_type="DOCUMENT_DOWNLOADED",
        document_id=document.pk,
        actor_id=getattr(actor, "pk", actor),
        meta={"type": file_type.upper(), "full_number": document.full_number},
    )
    return filename, content
