# fiscal/services/issuance_service.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional

from django.db import transaction

from fiscal.collaborator_factory import FiscalCollaborators, get_collaborators
from fiscal.exceptions import (
    CertificateError,
    FiscalDisabled,
    FiscalValidationError,
    ProfileNotConfigured,
    SignatureError,
)
from fiscal.models import (
    DeliveryJob,
    DocType,
    DocumentStatus,
    FiscalDocument,
    TenantFiscalProfile,
)
from fiscal.services import document_service
from fiscal.services.document_state_machine import DocumentStateMachine
from fiscal.services.sequence_service import allocate_number
from fiscal.services.validation import validate_for_issuance
from fiscal.signals import emit_fiscal_event

logger = logging.getLogger("cpe.fiscal")

NOTE_DOC_TYPES = (DocType.CREDIT_NOTE, DocType.DEBIT_NOTE)
AMENDABLE_DOC_TYPES = (DocType.INVOICE, DocType.RECEIPT)
ISSUABLE_DOC_TYPES = (DocType.INVOICE, DocType.RECEIPT) + NOTE_DOC_TYPES


# ---------------------------------------------------------------------------
# DTO de saída
# ---------------------------------------------------------------------------


@dataclass
class IssueResult:
    document: FiscalDocument
    job: DeliveryJob
    warnings: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def get_profile(tenant) -> TenantFiscalProfile:
    profile = TenantFiscalProfile.objects.filter(tenant_id=getattr(tenant, "pk", tenant)).first()
    if profile is None:
        raise ProfileNotConfigured()
    return profile


def get_enabled_profile(tenant) -> TenantFiscalProfile:
    profile = get_profile(tenant)
    if not profile.enabled:
        raise FiscalDisabled()
    return profile


def _build_xml(document: FiscalDocument, profile: TenantFiscalProfile, collaborators: FiscalCollaborators) -> str:
    generator = collaborators.xml_generator

    if document.doc_type == DocType.SUMMARY:
        receipts = (
            FiscalDocument.objects.filter(included_in_summaries__summary=document)
            .order_by("number")
        )
        return generator.generate_summary_xml(summary=document, receipts=list(receipts), profile=profile)

    if document.doc_type == DocType.VOID_COMMUNICATION:
        documents = document.voided_documents.order_by("doc_type", "series", "number")
        return generator.generate_void_xml(void=document, documents=list(documents), profile=profile)

    return generator.generate_document_xml(document=document, profile=profile)


# ---------------------------------------------------------------------------
# Assinatura + enfileiramento
# ---------------------------------------------------------------------------


def sign_document(
    document: FiscalDocument,
    *,
    collaborators: Optional[FiscalCollaborators] = None,
    actor=None,
) -> DeliveryJob:
    """
    Gera XML, carrega certificado, assina e enfileira um documento em DRAFT.

    Usado na emissão, nos lotes (resumo / baixa) e na re-assinatura manual.
    Falha de certificado ou assinatura deixa o documento em DRAFT e propaga
    o erro (com document_id no detalhe) para o chamador.
    """
    if document.status != DocumentStatus.DRAFT:
        raise DocumentStateMachine.invalid(document, "sign", document.status)

    profile = get_profile(document.tenant_id)
    collaborators = collaborators or get_collaborators(environment=profile.environment)

    try:
        xml = _build_xml(document, profile, collaborators)
        certificate = collaborators.certificate_loader.load_certificate(document.tenant)
        signed = collaborators.signer.sign(xml, certificate, str(document.pk))
    except (CertificateError, SignatureError) as exc:
        exc.detail["document_id"] = str(document.pk)
        emit_fiscal_event(
            tenant_id=document.tenant_id,
            event_type="DOCUMENT_SIGN_FAILED",
            severity="ERROR",
            document_id=document.pk,
            actor_id=getattr(actor, "pk", actor),
            meta={"error_code": exc.error_code, "reason": exc.reason},
        )
        raise

    with transaction.atomic():
        document_service.attach_signed_payload(
            document,
            signed_xml=signed.signed_xml,
            digest_value=signed.digest_value,
            actor=actor,
        )
        job = document_service.enqueue_document(document, actor=actor)

    return job


# ---------------------------------------------------------------------------
# Emissão
# ---------------------------------------------------------------------------


def issue_document(
    *,
    tenant,
    doc_type: str,
    customer: Mapping[str, Any],
    totals: Mapping[str, Any],
    sale_id: Optional[str] = None,
    reference_document_id: Any = None,
    issue_date: Optional[datetime] = None,
    currency: str = "PEN",
    actor=None,
    collaborators: Optional[FiscalCollaborators] = None,
) -> IssueResult:
    """
    Fluxo síncrono de emissão.

    Regras:
      1. Perfil fiscal existe e está habilitado.
      2. validate_for_issuance ANTES de alocar número (erro não consome número).
      3. Nota de crédito/débito pode referenciar a FACTURA/BOLETA que corrige.
      4. Aloca o número na transação do alocador e só então cria o DRAFT.
         Falha na criação deixa uma lacuna; o número nunca volta a sair.
      5. Assina e enfileira (sign_document). Falha aqui mantém o DRAFT.
    """
    tenant_id = getattr(tenant, "pk", tenant)

    logger.info(
        "issue_document_started",
        extra={
            "event": "document_issue",
            "tenant_id": str(tenant_id),
            "doc_type": doc_type,
            "sale_id": sale_id,
            "actor_id": getattr(actor, "pk", None),
        },
    )

    profile = get_enabled_profile(tenant_id)

    if doc_type not in ISSUABLE_DOC_TYPES:
        raise FiscalValidationError([f"Tipo de documento {doc_type} não pode ser emitido diretamente."])

    validation = validate_for_issuance(doc_type, customer, totals)
    errors = list(validation.errors)

    reference_document = None
    if reference_document_id:
        if doc_type not in NOTE_DOC_TYPES:
            errors.append("Somente notas de crédito/débito podem referenciar outro documento.")
        else:
            reference_document = FiscalDocument.objects.filter(
                pk=reference_document_id,
                tenant_id=tenant_id,
                doc_type__in=AMENDABLE_DOC_TYPES,
            ).first()
            if reference_document is None:
                errors.append("Documento de referência não encontrado para o tenant.")

    if errors:
        logger.warning(
            "issue_document_invalid",
            extra={
                "event": "document_issue",
                "tenant_id": str(tenant_id),
                "doc_type": doc_type,
                "errors": errors,
                "outcome": "validation_error",
            },
        )
        raise FiscalValidationError(errors, validation.warnings)

    series, number = allocate_number(tenant_id, doc_type)
    with transaction.atomic():
        document = document_service.create_draft(
            tenant=tenant_id,
            doc_type=doc_type,
            series=series,
            number=number,
            customer=customer,
            totals=totals,
            sale_id=sale_id,
            issue_date=issue_date,
            currency=currency,
            reference_document=reference_document,
            actor=actor,
        )

    collaborators = collaborators or get_collaborators(environment=profile.environment)
    job = sign_document(document, collaborators=collaborators, actor=actor)

    logger.info(
        "issue_document_queued",
        extra={
            "event": "document_issue",
            "tenant_id": str(tenant_id),
            "document_id": str(document.pk),
            "full_number": document.full_number,
            "job_id": str(job.pk),
            "warnings": validation.warnings,
            "outcome": "success",
        },
    )
    return IssueResult(document=document, job=job, warnings=list(validation.warnings))
