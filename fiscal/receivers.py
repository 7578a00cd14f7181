# fiscal/receivers.py
import logging

from django.db import transaction
from django.dispatch import receiver

from fiscal.models import FiscalAuditEvent
from fiscal.signals import fiscal_event

logger = logging.getLogger("cpe.fiscal")

# Chaves que nunca podem chegar à auditoria/log
SENSITIVE_KEY_FRAGMENTS = (
    "password",
    "passphrase",
    "secret",
    "token",
    "pfx",
    "certificate_bytes",
    "private_key",
)

REDACTED = "[REDACTED]"

_LOG_LEVEL_BY_SEVERITY = {
    "INFO": logging.INFO,
    "WARN": logging.WARNING,
    "ERROR": logging.ERROR,
}


def sanitize_meta(value):
    """Remove material sensível recursivamente (dicts e listas)."""
    if isinstance(value, dict):
        clean = {}
        for key, item in value.items():
            lowered = str(key).lower()
            if any(fragment in lowered for fragment in SENSITIVE_KEY_FRAGMENTS):
                clean[key] = REDACTED
            else:
                clean[key] = sanitize_meta(item)
        return clean
    if isinstance(value, (list, tuple)):
        return [sanitize_meta(item) for item in value]
    if isinstance(value, (bytes, bytearray, memoryview)):
        return REDACTED
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


@receiver(fiscal_event, dispatch_uid="fiscal_audit_persist")
def persist_fiscal_event(sender, *, tenant_id, event_type, severity, document_id, actor_id, meta, **kwargs):
    meta = sanitize_meta(meta or {})

    # Savepoint próprio: erro de banco aqui não invalida a transação do chamador
    with transaction.atomic():
        audit = FiscalAuditEvent.objects.create(
            tenant_id=tenant_id,
            event_type=event_type,
            severity=severity,
            document_id=document_id,
            actor_id=actor_id,
            meta=meta,
        )

    logger.log(
        _LOG_LEVEL_BY_SEVERITY.get(severity, logging.INFO),
        event_type.lower(),
        extra={
            "event": "fiscal_audit",
            "audit_id": str(audit.id),
            "event_type": event_type,
            "tenant_id": tenant_id,
            "document_id": str(document_id) if document_id else None,
            "actor_id": actor_id,
            "meta": meta,
        },
    )
    return audit
