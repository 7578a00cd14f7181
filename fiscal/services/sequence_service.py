# fiscal/services/sequence_service.py

from __future__ import annotations

import logging
import re
from typing import Tuple

from django.db import transaction
from django.db.models import F

from fiscal.exceptions import ConfigurationError, ProfileNotConfigured
from fiscal.models import DocType, TenantFiscalProfile
from fiscal.models.profile_models import SERIES_REGEX
from fiscal.signals import emit_fiscal_event

logger = logging.getLogger("cpe.fiscal")


# Série padrão e contador de cada tipo de documento no perfil fiscal
SERIES_FIELD_BY_DOC_TYPE = {
    DocType.INVOICE: "default_invoice_series",
    DocType.RECEIPT: "default_receipt_series",
    DocType.CREDIT_NOTE: "default_credit_note_series",
    DocType.DEBIT_NOTE: "default_debit_note_series",
    DocType.SUMMARY: "default_summary_series",
    DocType.VOID_COMMUNICATION: "default_void_series",
}

COUNTER_FIELD_BY_DOC_TYPE = {
    DocType.INVOICE: "next_invoice_number",
    DocType.RECEIPT: "next_receipt_number",
    DocType.CREDIT_NOTE: "next_credit_note_number",
    DocType.DEBIT_NOTE: "next_debit_note_number",
    DocType.SUMMARY: "next_summary_number",
    DocType.VOID_COMMUNICATION: "next_void_number",
}

NUMBER_WIDTH = 8
MAX_NUMBER = 10 ** NUMBER_WIDTH - 1

_SERIES_RE = re.compile(SERIES_REGEX)
_FULL_NUMBER_RE = re.compile(r"^(?P<series>[A-Z0-9]{4})-(?P<number>\d{8})\Z")


def _tenant_pk(tenant):
    return getattr(tenant, "pk", tenant)


# ---------------------------------------------------------------------------
# Número completo (SERIE-00000042)
# ---------------------------------------------------------------------------


def format_full_number(series: str, number: int) -> str:
    """
    "F001", 42 -> "F001-00000042"

    Aceita apenas séries que parse_full_number reconhece.
    """
    if not _SERIES_RE.match(series or ""):
        raise ValueError(f"Série inválida: {series!r}")
    if number < 1 or number > MAX_NUMBER:
        raise ValueError(f"Número fora da faixa permitida: {number}")
    return f"{series}-{str(number).zfill(NUMBER_WIDTH)}"


def parse_full_number(full_number: str) -> Tuple[str, int]:
    """
    "F001-00000042" -> ("F001", 42). Inverso exato de format_full_number.
    """
    match = _FULL_NUMBER_RE.match(full_number or "")
    if not match:
        raise ValueError(f"Número completo inválido: {full_number!r}")
    number = int(match.group("number"))
    if number < 1:
        raise ValueError(f"Número completo inválido: {full_number!r}")
    return match.group("series"), number


# ---------------------------------------------------------------------------
# Alocação
# ---------------------------------------------------------------------------


def allocate_number(tenant, doc_type: str) -> Tuple[str, int]:
    """
    Reserva o próximo número legal para (tenant, doc_type).

    Regras:
      - Lock pessimista (SELECT ... FOR UPDATE) na linha do perfil fiscal.
      - Incremento via F() numa única UPDATE; retorna o valor ANTERIOR.
      - Números nunca são reutilizados; lacunas são aceitas quando o
        chamador aloca fora da transação que cria o documento.
      - Sem perfil -> ProfileNotConfigured (erro de configuração, sem retry).
      - Série fora do formato -> ConfigurationError, sem consumir número.
    """
    counter_field = COUNTER_FIELD_BY_DOC_TYPE[doc_type]
    series_field = SERIES_FIELD_BY_DOC_TYPE[doc_type]
    tenant_id = _tenant_pk(tenant)

    with transaction.atomic():
        profile = (
            TenantFiscalProfile.objects.select_for_update()
            .only("id", counter_field, series_field)
            .filter(tenant_id=tenant_id)
            .first()
        )
        if profile is None:
            raise ProfileNotConfigured()

        series = getattr(profile, series_field)
        number = getattr(profile, counter_field)
        if not _SERIES_RE.match(series or ""):
            raise ConfigurationError(
                f"Série configurada inválida para {doc_type}.",
                extra={"series": series},
            )

        TenantFiscalProfile.objects.filter(pk=profile.pk).update(
            **{counter_field: F(counter_field) + 1}
        )

    logger.debug(
        "number_allocated",
        extra={
            "event": "sequence_allocate",
            "tenant_id": str(tenant_id),
            "doc_type": doc_type,
            "series": series,
            "number": number,
        },
    )
    return series, number


# ---------------------------------------------------------------------------
# Inicialização do perfil
# ---------------------------------------------------------------------------


def initialize_fiscal_profile(tenant, *, actor=None) -> Tuple[TenantFiscalProfile, bool]:
    """
    Cria o perfil fiscal com séries padrão e contadores em 1.

    Idempotente: chamadas repetidas devolvem o perfil existente sem tocar
    em contadores ou séries.
    """
    profile, created = TenantFiscalProfile.objects.get_or_create(tenant_id=_tenant_pk(tenant))

    if created:
        emit_fiscal_event(
            tenant_id=profile.tenant_id,
            event_type="PROFILE_INITIALIZED",
            actor_id=getattr(actor, "pk", None),
            meta={"environment": profile.environment},
        )

    return profile, created
