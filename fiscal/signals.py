# fiscal/signals.py
"""
Sinal único de eventos fiscais.

Toda transição de documento e toda tentativa de troca de ambiente emite
fiscal_event; o receiver em fiscal/receivers.py grava FiscalAuditEvent e
registra o log estruturado. As services não escrevem auditoria diretamente.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from django.dispatch import Signal

logger = logging.getLogger("cpe.fiscal")

# kwargs: tenant_id, event_type, severity, document_id, actor_id, meta
fiscal_event = Signal()


def emit_fiscal_event(
    *,
    tenant_id: Any,
    event_type: str,
    severity: str = "INFO",
    document_id: Any = None,
    actor_id: Any = None,
    meta: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Dispara fiscal_event. Falha de auditoria não derruba a operação fiscal,
    mas é sempre registrada como erro.
    """
    responses = fiscal_event.send_robust(
        sender=None,
        tenant_id=str(tenant_id) if tenant_id is not None else None,
        event_type=event_type,
        severity=severity,
        document_id=document_id,
        actor_id=str(actor_id) if actor_id is not None else None,
        meta=meta or {},
    )
    for receiver_fn, result in responses:
        if isinstance(result, Exception):
            logger.error(
                "fiscal_event_receiver_failed",
                extra={
                    "event": "fiscal_audit",
                    "event_type": event_type,
                    "tenant_id": str(tenant_id) if tenant_id is not None else None,
                    "receiver": getattr(receiver_fn, "__name__", repr(receiver_fn)),
                    "error": repr(result),
                },
            )
