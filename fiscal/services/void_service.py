# fiscal/services/void_service.py

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from django.db import transaction
from django.db.models import Q, Sum
from django.utils import timezone

from fiscal.collaborator_factory import FiscalCollaborators
from fiscal.exceptions import FiscalValidationError
from fiscal.models import (
    DeliveryJob,
    DocType,
    DocumentStatus,
    FiscalDocument,
    IdentityDocType,
    TenantFiscalProfile,
)
from fiscal.models.document_models import BATCH_DOC_TYPES
from fiscal.services import document_service
from fiscal.services.issuance_service import get_enabled_profile, sign_document
from fiscal.services.sequence_service import allocate_number
from fiscal.signals import emit_fiscal_event

logger = logging.getLogger("cpe.fiscal")

MAX_DOCUMENTS_PER_VOID = 500
MIN_REASON_LENGTH = 3

# Documento "livre" para nova baixa: sem back-reference ou com baixa rejeitada
NOT_UNDER_LIVE_VOID = Q(void_communication__isnull=True) | Q(
    void_communication__status=DocumentStatus.REJECTED
)


@dataclass
class VoidResult:
    document: FiscalDocument
    job: DeliveryJob
    document_count: int


def _check_request(document_ids: list, reason: str) -> list[str]:
    errors = []
    if not document_ids:
        errors.append("Informe ao menos um documento para a comunicação de baixa.")
    elif len(document_ids) > MAX_DOCUMENTS_PER_VOID:
        errors.append(
            f"Máximo de {MAX_DOCUMENTS_PER_VOID} documentos por comunicação de baixa "
            f"(recebidos {len(document_ids)})."
        )
    for doc_id in dict.fromkeys(document_ids):
        try:
            uuid.UUID(str(doc_id))
        except ValueError:
            errors.append(f"Identificador de documento inválido: {doc_id}.")
    if len((reason or "").strip()) < MIN_REASON_LENGTH:
        errors.append(f"Motivo da baixa deve ter ao menos {MIN_REASON_LENGTH} caracteres.")
    return errors


def _check_documents(tenant_id, document_ids: list) -> tuple[list[FiscalDocument], list[str]]:
    documents = list(
        FiscalDocument.objects.select_related("void_communication")
        .filter(tenant_id=tenant_id, pk__in=document_ids)
        .order_by("doc_type", "series", "number")
    )
    found = {str(doc.pk) for doc in documents}
    errors = [f"Documento {doc_id} não encontrado." for doc_id in document_ids if str(doc_id) not in found]

    for doc in documents:
        if doc.doc_type in BATCH_DOC_TYPES:
            errors.append(f"{doc.full_number}: resumos e comunicações de baixa não podem ser anulados.")
        if doc.status != DocumentStatus.ACCEPTED:
            errors.append(f"{doc.full_number}: apenas documentos ACEITOS podem ser anulados (status {doc.status}).")
        if doc.void_communication_id and doc.void_communication.status != DocumentStatus.REJECTED:
            errors.append(f"{doc.full_number}: já referenciado pela baixa {doc.void_communication.full_number}.")

    issue_dates = {timezone.localdate(doc.issue_date) for doc in documents}
    if len(issue_dates) > 1:
        errors.append("Todos os documentos da baixa devem ter a mesma data de emissão.")

    return documents, errors


def _reject(tenant_id, errors: list[str], gap: Optional[str] = None):
    logger.warning(
        "void_invalid",
        extra={
            "event": "void_build",
            "tenant_id": str(tenant_id),
            "errors": errors,
            "gap": gap,
            "outcome": "validation_error",
        },
    )
    raise FiscalValidationError(errors)


def build_void(
    tenant,
    document_ids: Iterable,
    reason: str,
    *,
    actor=None,
    collaborators: Optional[FiscalCollaborators] = None,
) -> VoidResult:
    """
    Monta a comunicação de baixa para documentos ACEITOS do mesmo dia.

    Regras:
      - 1..500 documentos e motivo >= 3 caracteres, checados antes de
        qualquer alocação de número.
      - O limite conta os ids recebidos, repetidos inclusive.
      - Todos os erros por documento são reunidos em um único
        FiscalValidationError.
      - Documentos referenciados recebem motivo + back-reference na hora;
        só viram CANCELED quando a baixa for ACEITA.
    """
    tenant_id = getattr(tenant, "pk", tenant)
    requested_ids = [str(doc_id) for doc_id in document_ids]
    reason = (reason or "").strip()

    errors = _check_request(requested_ids, reason)
    if errors:
        raise FiscalValidationError(errors)

    # Ids repetidos são dobrados só depois do limite
    document_ids = list(dict.fromkeys(requested_ids))

    profile = get_enabled_profile(tenant_id)

    _, errors = _check_documents(tenant_id, document_ids)
    if errors:
        _reject(tenant_id, errors)

    series, number = allocate_number(tenant_id, DocType.VOID_COMMUNICATION)

    with transaction.atomic():
        TenantFiscalProfile.objects.select_for_update().filter(pk=profile.pk).first()

        # Revalida sob lock; o número alocado vira lacuna se algo mudou
        documents, errors = _check_documents(tenant_id, document_ids)
        if errors:
            _reject(tenant_id, errors, gap=f"{series}-{number}")

        aggregated = FiscalDocument.objects.filter(pk__in=document_ids).aggregate(
            taxable=Sum("taxable"),
            tax=Sum("tax"),
            total=Sum("total"),
        )
        reference_date = timezone.localdate(documents[0].issue_date)

        void = document_service.create_draft(
            tenant=tenant_id,
            doc_type=DocType.VOID_COMMUNICATION,
            series=series,
            number=number,
            customer={
                "doc_type": IdentityDocType.RUC,
                "doc_number": profile.tax_id,
                "name": profile.legal_name or "COMUNICACION DE BAJA",
            },
            totals={key: value or Decimal("0.00") for key, value in aggregated.items()},
            reference_date=reference_date,
            actor=actor,
        )
        void.void_reason = reason
        void.save(update_fields=["void_reason", "updated_at"])

        stamped = (
            FiscalDocument.objects.filter(
                NOT_UNDER_LIVE_VOID,
                tenant_id=tenant_id,
                pk__in=document_ids,
                status=DocumentStatus.ACCEPTED,
            )
            .update(void_reason=reason, void_communication=void, updated_at=timezone.now())
        )
        if stamped != len(document_ids):
            raise FiscalValidationError(
                ["Documentos mudaram de status durante a baixa; tente novamente."]
            )

        emit_fiscal_event(
            tenant_id=tenant_id,
            event_type="VOID_CREATED",
            document_id=void.pk,
            actor_id=getattr(actor, "pk", actor),
            meta={
                "reason": reason,
                "document_count": len(document_ids),
                "documents": [doc.full_number for doc in documents],
                "full_number": void.full_number,
            },
        )

    job = sign_document(void, collaborators=collaborators, actor=actor)

    logger.info(
        "void_queued",
        extra={
            "event": "void_build",
            "tenant_id": str(tenant_id),
            "document_id": str(void.pk),
            "document_count": len(document_ids),
            "outcome": "success",
        },
    )
    return VoidResult(document=void, job=job, document_count=len(document_ids))
