# fiscal/services/environment_service.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from fiscal.exceptions import FiscalValidationError, NotSuperAdmin, ProdRequirementsNotMet
from fiscal.models import FiscalEnvironment, TenantFiscalProfile
from fiscal.services.issuance_service import get_profile
from fiscal.services.validation import validate_tax_id
from fiscal.signals import emit_fiscal_event

logger = logging.getLogger("cpe.fiscal")

# Frase que o operador precisa digitar, exatamente, para ativar produção
PRODUCTION_CONFIRMATION_PHRASE = "ACTIVATE PRODUCTION"

REQ_CONFIRMATION = "CONFIRMATION_TEXT"
REQ_TAX_ID = "TAX_ID"
REQ_CREDENTIALS = "SOL_CREDENTIALS"
REQ_CERTIFICATE = "CERTIFICATE"
REQ_LEGAL_NAME = "LEGAL_NAME"


@dataclass
class EnvironmentReadiness:
    environment: str
    checks: dict[str, bool] = field(default_factory=dict)
    missing: list[dict] = field(default_factory=list)

    @property
    def ready_for_production(self) -> bool:
        return not self.missing


@dataclass
class SwitchResult:
    changed: bool
    previous: str
    environment: str


def _is_superadmin(actor) -> bool:
    return bool(actor is not None and getattr(actor, "is_superadmin", False))


def _audit(tenant_id, event_type: str, *, actor, severity: str = "INFO", **meta) -> None:
    emit_fiscal_event(
        tenant_id=tenant_id,
        event_type=event_type,
        severity=severity,
        actor_id=getattr(actor, "pk", None),
        meta=meta,
    )


def get_environment_readiness(tenant) -> EnvironmentReadiness:
    """
    Avalia os requisitos de produção (exceto a frase de confirmação).

    O RUC é verificado com dígito verificador obrigatório, mesmo com
    FISCAL_SKIP_TAX_ID_CHECK_DIGIT ligado.
    """
    profile: TenantFiscalProfile = get_profile(tenant)

    checks = {
        REQ_TAX_ID: validate_tax_id(profile.tax_id, verify_check_digit=True),
        REQ_CREDENTIALS: profile.has_credentials,
        REQ_CERTIFICATE: profile.has_certificate,
        REQ_LEGAL_NAME: bool((profile.legal_name or "").strip()),
    }
    messages = {
        REQ_TAX_ID: "RUC do emissor ausente ou inválido.",
        REQ_CREDENTIALS: "Credenciais SOL não configuradas.",
        REQ_CERTIFICATE: "Certificado digital não configurado.",
        REQ_LEGAL_NAME: "Razão social não configurada.",
    }
    missing = [
        {"requirement": key, "message": messages[key]}
        for key, ok in checks.items()
        if not ok
    ]
    return EnvironmentReadiness(environment=profile.environment, checks=checks, missing=missing)


def switch_environment(tenant, target: str, confirmation_text: str | None, actor) -> SwitchResult:
    """
    Troca SANDBOX <-> PRODUCTION.

    Regras:
      - Somente SUPERADMIN (checado antes de qualquer outra coisa).
      - Já no ambiente alvo -> no-op.
      - Para PRODUCTION: frase exata + RUC válido + credenciais SOL +
        certificado + razão social. Falha devolve a lista COMPLETA.
      - Toda tentativa é auditada, sem credenciais.
    """
    tenant_id = getattr(tenant, "pk", tenant)

    if not _is_superadmin(actor):
        _audit(
            tenant_id,
            "ENVIRONMENT_SWITCH_DENIED",
            actor=actor,
            severity="WARN",
            target=target,
            reason="not_superadmin",
        )
        raise NotSuperAdmin()

    if target not in FiscalEnvironment.values:
        _audit(
            tenant_id,
            "ENVIRONMENT_SWITCH_BLOCKED",
            actor=actor,
            severity="WARN",
            target=target,
            reason="invalid_target",
        )
        raise FiscalValidationError([f"Ambiente inválido: {target}."])

    profile = get_profile(tenant_id)
    previous = profile.environment

    if previous == target:
        _audit(
            tenant_id,
            "ENVIRONMENT_SWITCH_NOOP",
            actor=actor,
            previous=previous,
            target=target,
        )
        return SwitchResult(changed=False, previous=previous, environment=previous)

    if target == FiscalEnvironment.PRODUCTION:
        missing = []
        if (confirmation_text or "") != PRODUCTION_CONFIRMATION_PHRASE:
            missing.append(
                {
                    "requirement": REQ_CONFIRMATION,
                    "message": f'Digite exatamente "{PRODUCTION_CONFIRMATION_PHRASE}" para confirmar.',
                }
            )
        missing.extend(get_environment_readiness(tenant_id).missing)

        if missing:
            _audit(
                tenant_id,
                "ENVIRONMENT_SWITCH_BLOCKED",
                actor=actor,
                severity="WARN",
                previous=previous,
                target=target,
                missing=[item["requirement"] for item in missing],
            )
            raise ProdRequirementsNotMet(missing)

    updated = TenantFiscalProfile.objects.filter(pk=profile.pk, environment=previous).update(
        environment=target
    )
    if updated != 1:
        # Outro SUPERADMIN trocou o ambiente no meio do caminho
        current = TenantFiscalProfile.objects.filter(pk=profile.pk).values_list("environment", flat=True).first()
        _audit(
            tenant_id,
            "ENVIRONMENT_SWITCH_NOOP",
            actor=actor,
            previous=previous,
            target=target,
            current=current,
        )
        return SwitchResult(changed=current != previous, previous=previous, environment=current)

    _audit(
        tenant_id,
        "ENVIRONMENT_SWITCHED",
        actor=actor,
        severity="WARN" if target == FiscalEnvironment.PRODUCTION else "INFO",
        previous=previous,
        target=target,
    )
    logger.info(
        "environment_switched",
        extra={
            "event": "environment_switch",
            "tenant_id": str(tenant_id),
            "previous": previous,
            "environment": target,
            "actor_id": getattr(actor, "pk", None),
            "outcome": "success",
        },
    )
    return SwitchResult(changed=True, previous=previous, environment=target)
