# fiscal/services/summary_service.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from fiscal.collaborator_factory import FiscalCollaborators
from fiscal.models import (
    DeliveryJob,
    DocType,
    DocumentStatus,
    FiscalDocument,
    IdentityDocType,
    SummaryItem,
    TenantFiscalProfile,
)
from fiscal.services import document_service
from fiscal.services.issuance_service import get_enabled_profile, sign_document
from fiscal.services.sequence_service import allocate_number
from fiscal.signals import emit_fiscal_event

logger = logging.getLogger("cpe.fiscal")

MAX_RECEIPTS_PER_SUMMARY = 500

SUMMARY_CREATED = "created"
NOTHING_PENDING = "nothing_pending"


@dataclass
class SummaryResult:
    status: str
    document: Optional[FiscalDocument] = None
    job: Optional[DeliveryJob] = None
    receipt_count: int = 0


def local_day_bounds(reference_date: date) -> tuple[datetime, datetime]:
    """[00:00, 00:00 do dia seguinte) no fuso local configurado."""
    start = timezone.make_aware(datetime.combine(reference_date, time.min))
    return start, start + timedelta(days=1)


def pending_receipts(tenant, reference_date: date):
    """
    Boletas ACEITAS do dia, ainda não reportadas e fora de qualquer resumo
    vigente (resumo REJEITADO é considerado substituído).
    """
    start, end = local_day_bounds(reference_date)

    in_live_summary = (
        SummaryItem.objects.exclude(summary__status=DocumentStatus.REJECTED)
        .values("receipt_id")
    )

    return (
        FiscalDocument.objects.filter(
            tenant_id=getattr(tenant, "pk", tenant),
            doc_type=DocType.RECEIPT,
            status=DocumentStatus.ACCEPTED,
            reported_in_summary=False,
            issue_date__gte=start,
            issue_date__lt=end,
        )
        .exclude(pk__in=in_live_summary)
        .order_by("number")
    )


def _nothing_pending(tenant_id, reference_date: date, gap: Optional[str] = None) -> SummaryResult:
    logger.info(
        "summary_nothing_pending",
        extra={
            "event": "summary_build",
            "tenant_id": str(tenant_id),
            "reference_date": reference_date.isoformat(),
            "gap": gap,
            "outcome": NOTHING_PENDING,
        },
    )
    return SummaryResult(status=NOTHING_PENDING)


def build_summary(
    tenant,
    reference_date: date,
    *,
    actor=None,
    collaborators: Optional[FiscalCollaborators] = None,
) -> SummaryResult:
    """
    Monta o resumo diário de boletas para reference_date.

    Regras:
      - Sem boletas pendentes -> NOTHING_PENDING (nenhum número alocado).
      - O número sai do alocador antes da montagem; se a montagem falhar
        o número vira lacuna e nunca é reaproveitado.
      - Lock no perfil fiscal serializa resumos concorrentes do mesmo tenant,
        então duas chamadas seguidas nunca geram resumo duplicado.
      - Até 500 boletas, em ordem de número.
      - Boletas só viram reported_in_summary quando o resumo for ACEITO
        (delivery_queue).
    """
    tenant_id = getattr(tenant, "pk", tenant)
    profile = get_enabled_profile(tenant_id)

    if not pending_receipts(tenant_id, reference_date).exists():
        return _nothing_pending(tenant_id, reference_date)

    series, number = allocate_number(tenant_id, DocType.SUMMARY)

    with transaction.atomic():
        TenantFiscalProfile.objects.select_for_update().filter(pk=profile.pk).first()

        receipts = list(pending_receipts(tenant_id, reference_date)[:MAX_RECEIPTS_PER_SUMMARY])
        if not receipts:
            # Outro resumo levou as boletas; o número alocado fica como lacuna
            return _nothing_pending(tenant_id, reference_date, gap=f"{series}-{number}")

        aggregated = FiscalDocument.objects.filter(pk__in=[r.pk for r in receipts]).aggregate(
            taxable=Sum("taxable"),
            tax=Sum("tax"),
            total=Sum("total"),
        )

        summary = document_service.create_draft(
            tenant=tenant_id,
            doc_type=DocType.SUMMARY,
            series=series,
            number=number,
            customer={
                "doc_type": IdentityDocType.RUC,
                "doc_number": profile.tax_id,
                "name": profile.legal_name or "RESUMEN DIARIO",
            },
            totals={key: value or Decimal("0.00") for key, value in aggregated.items()},
            reference_date=reference_date,
            actor=actor,
        )

        SummaryItem.objects.bulk_create(
            [SummaryItem(summary=summary, receipt=receipt) for receipt in receipts]
        )

        emit_fiscal_event(
            tenant_id=tenant_id,
            event_type="SUMMARY_CREATED",
            document_id=summary.pk,
            actor_id=getattr(actor, "pk", actor),
            meta={
                "reference_date": reference_date.isoformat(),
                "receipt_count": len(receipts),
                "full_number": summary.full_number,
            },
        )

    job = sign_document(summary, collaborators=collaborators, actor=actor)

    logger.info(
        "summary_queued",
        extra={
            "event": "summary_build",
            "tenant_id": str(tenant_id),
            "document_id": str(summary.pk),
            "receipt_count": len(receipts),
            "outcome": SUMMARY_CREATED,
        },
    )
    return SummaryResult(
        status=SUMMARY_CREATED,
        document=summary,
        job=job,
        receipt_count=len(receipts),
    )
