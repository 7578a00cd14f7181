# fiscal/services/document_state_machine.py

from __future__ import annotations

import logging
from typing import Any, Dict, FrozenSet, NamedTuple

from django.utils import timezone

from fiscal.exceptions import InvalidStateTransition
from fiscal.models import DocumentStatus, FiscalDocument
from fiscal.signals import emit_fiscal_event

logger = logging.getLogger("cpe.fiscal")


class Transition(NamedTuple):
    sources: FrozenSet[str]
    target: str
    event_type: str
    severity: str = "INFO"


# Tabela única de transições do documento fiscal:
#   ação -> (status de origem permitidos, status de destino, evento de auditoria)
TRANSITIONS: Dict[str, Transition] = {
    "sign": Transition(
        frozenset({DocumentStatus.DRAFT}),
        DocumentStatus.SIGNED,
        "DOCUMENT_SIGNED",
    ),
    "enqueue": Transition(
        frozenset({DocumentStatus.SIGNED}),
        DocumentStatus.QUEUED,
        "DOCUMENT_QUEUED",
    ),
    "submit": Transition(
        frozenset({DocumentStatus.QUEUED}),
        DocumentStatus.SENT,
        "DOCUMENT_SENT",
    ),
    "accept": Transition(
        frozenset({DocumentStatus.SENT}),
        DocumentStatus.ACCEPTED,
        "DOCUMENT_ACCEPTED",
    ),
    "reject": Transition(
        frozenset({DocumentStatus.SENT}),
        DocumentStatus.REJECTED,
        "DOCUMENT_REJECTED",
        "WARN",
    ),
    "error": Transition(
        frozenset({DocumentStatus.SIGNED, DocumentStatus.QUEUED, DocumentStatus.SENT}),
        DocumentStatus.ERROR,
        "DOCUMENT_ERROR",
        "ERROR",
    ),
    "retry": Transition(
        frozenset({
            DocumentStatus.QUEUED,
            DocumentStatus.SENT,
            DocumentStatus.REJECTED,
            DocumentStatus.ERROR,
        }),
        DocumentStatus.QUEUED,
        "DOCUMENT_RETRY",
    ),
    "cancel": Transition(
        frozenset({DocumentStatus.ACCEPTED}),
        DocumentStatus.CANCELED,
        "DOCUMENT_CANCELED",
    ),
}


def can_transition(current_status: str, action: str) -> bool:
    rule = TRANSITIONS.get(action)
    return rule is not None and current_status in rule.sources


class DocumentStateMachine:
    """
    ÚNICO ponto autorizado a trocar o status de FiscalDocument.

    - Valida a ação contra TRANSITIONS a partir do status atual.
    - Aplica a troca com UPDATE condicional no status esperado
      (concorrência otimista): se outro processo mudou o status antes,
      nenhuma linha é afetada e a transição falha.
    - Emite fiscal_event para cada transição bem-sucedida.
    """

    @classmethod
    def invalid(cls, document: FiscalDocument, action: str, current_status: str | None) -> InvalidStateTransition:
        logger.error(
            "invalid_state_transition",
            extra={
                "event": "document_transition",
                "tenant_id": str(document.tenant_id),
                "document_id": str(document.pk),
                "action": action,
                "current_status": current_status,
                "outcome": "rejected",
            },
        )
        return InvalidStateTransition(
            document_id=document.pk,
            action=action,
            current_status=current_status,
        )

    @classmethod
    def apply(
        cls,
        document: FiscalDocument,
        action: str,
        *,
        fields: Dict[str, Any] | None = None,
        actor=None,
        meta: Dict[str, Any] | None = None,
    ) -> FiscalDocument:
        """
        Executa `action` sobre o documento e atualiza a instância em memória.

        fields: colunas extras gravadas na mesma UPDATE da troca de status.
        """
        rule = TRANSITIONS.get(action)
        if rule is None:
            raise ValueError(f"Ação desconhecida: {action}")

        expected = document.status
        if expected not in rule.sources:
            raise cls.invalid(document, action, expected)

        fields = dict(fields or {})
        now = timezone.now()

        updated = FiscalDocument.objects.filter(pk=document.pk, status=expected).update(
            status=rule.target,
            updated_at=now,
            **fields,
        )
        if updated != 1:
            current = (
                FiscalDocument.objects.filter(pk=document.pk)
                .values_list("status", flat=True)
                .first()
            )
            raise cls.invalid(document, action, current)

        document.status = rule.target
        document.updated_at = now
        for name, value in fields.items():
            setattr(document, name, value)

        emit_fiscal_event(
            tenant_id=document.tenant_id,
            event_type=rule.event_type,
            severity=rule.severity,
            document_id=document.pk,
            actor_id=getattr(actor, "pk", actor),
            meta={
                "action": action,
                "from": expected,
                "to": rule.target,
                "doc_type": document.doc_type,
                "full_number": document.full_number,
                **(meta or {}),
            },
        )
        return document
