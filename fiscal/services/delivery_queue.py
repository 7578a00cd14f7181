# fiscal/services/delivery_queue.py
"""
Fila durável de entrega à autoridade fiscal.

Cada DeliveryJob é processado por um worker (run_delivery_worker), que pode
rodar em vários processos ao mesmo tempo:

  1. reclaim_stale_jobs: jobs RUNNING com lease vencido voltam para QUEUED.
  2. find_ready_jobs: jobs QUEUED com next_run_at <= agora.
  3. claim_job: UPDATE condicional QUEUED -> RUNNING (só um worker ganha).
  4. process_job: envia (SEND_*) ou consulta ticket (POLL_STATUS).

Falha técnica (DeliveryError) re-agenda com backoff exponencial; esgotadas as
tentativas o job vira FAILED e o documento ERROR (exige retry manual).
"""

from __future__ import annotations

import logging
import os
import socket
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Optional

from django.conf import settings
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from fiscal.collaborator_factory import FiscalCollaborators, get_collaborators
from fiscal.collaborators import (
    POLL_ACCEPTED,
    POLL_PENDING,
    POLL_REJECTED,
    SolCredentials,
)
from fiscal.exceptions import DeliveryError, FiscalError
from fiscal.models import (
    DeliveryJob,
    DocType,
    DocumentStatus,
    FiscalDocument,
    JobStatus,
    JobType,
    SummaryItem,
    TenantFiscalProfile,
)
from fiscal.services import document_service
from fiscal.services.document_state_machine import TRANSITIONS
from fiscal.signals import emit_fiscal_event

logger = logging.getLogger("cpe.worker")

SEND_JOB_TYPES = (JobType.SEND_DOCUMENT, JobType.SEND_SUMMARY, JobType.SEND_VOID)

DEFAULT_BACKOFF_SECONDS = [60, 5 * 60, 15 * 60, 60 * 60, 120 * 60]


# ---------------------------------------------------------------------------
# Configuração
# ---------------------------------------------------------------------------


def default_worker_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}"


def backoff_delay(attempts: int) -> timedelta:
    """
    Atraso após a tentativa número `attempts` (1-based): 1, 5, 15, 60, 120 min.
    """
    delays = getattr(settings, "FISCAL_BACKOFF_SECONDS", None) or DEFAULT_BACKOFF_SECONDS
    index = min(max(attempts, 1), len(delays)) - 1
    return timedelta(seconds=delays[index])


def _lease() -> timedelta:
    return timedelta(seconds=int(getattr(settings, "FISCAL_JOB_LEASE_SECONDS", 300)))


def _poll_delay() -> timedelta:
    return timedelta(seconds=int(getattr(settings, "FISCAL_POLL_DELAY_SECONDS", 60)))


def _poll_max_attempts() -> int:
    return int(getattr(settings, "FISCAL_POLL_MAX_ATTEMPTS", 10))


# ---------------------------------------------------------------------------
# Resultado de um ciclo
# ---------------------------------------------------------------------------


@dataclass
class WorkerCycleResult:
    reclaimed: int = 0
    claimed: int = 0
    done: int = 0
    retried: int = 0
    failed: int = 0
    skipped: int = 0
    job_ids: list[str] = field(default_factory=list)


# Resultado de process_job
OUTCOME_DONE = "done"
OUTCOME_RETRY = "retry"
OUTCOME_FAILED = "failed"
OUTCOME_LEASE_LOST = "lease_lost"


# ---------------------------------------------------------------------------
# Claim / reclaim
# ---------------------------------------------------------------------------


def reclaim_stale_jobs(*, now=None) -> int:
    """RUNNING com locked_at mais antigo que o lease volta para QUEUED."""
    now = now or timezone.now()
    reclaimed = DeliveryJob.objects.filter(
        status=JobStatus.RUNNING,
        locked_at__lt=now - _lease(),
    ).update(
        status=JobStatus.QUEUED,
        locked_at=None,
        locked_by=None,
        next_run_at=now,
        updated_at=now,
    )
    if reclaimed:
        logger.warning(
            "stale_jobs_reclaimed",
            extra={"event": "worker_reclaim", "count": reclaimed},
        )
    return reclaimed


def find_ready_jobs(*, limit: int = 10, now=None) -> list[str]:
    now = now or timezone.now()
    return [
        str(pk)
        for pk in DeliveryJob.objects.filter(
            status=JobStatus.QUEUED,
            next_run_at__lte=now,
        )
        .order_by("next_run_at", "created_at")
        .values_list("pk", flat=True)[:limit]
    ]


def claim_job(job_id, *, worker_id: str) -> Optional[DeliveryJob]:
    """
    UPDATE condicional QUEUED -> RUNNING. Devolve None se outro worker
    ganhou a corrida.
    """
    now = timezone.now()
    claimed = DeliveryJob.objects.filter(pk=job_id, status=JobStatus.QUEUED).update(
        status=JobStatus.RUNNING,
        locked_at=now,
        locked_by=worker_id,
        attempts=F("attempts") + 1,
        updated_at=now,
    )
    if claimed != 1:
        return None
    return DeliveryJob.objects.select_related("document", "tenant").get(pk=job_id)


def _finish(job: DeliveryJob, *, worker_id: str, **values) -> bool:
    """Atualiza o job somente se este worker ainda detém o lease."""
    now = timezone.now()
    updated = DeliveryJob.objects.filter(
        pk=job.pk,
        status=JobStatus.RUNNING,
        locked_by=worker_id,
    ).update(locked_at=None, locked_by=None, updated_at=now, **values)

    if updated != 1:
        logger.warning(
            "job_lease_lost",
            extra={"event": "worker_job", "job_id": str(job.pk), "worker_id": worker_id},
        )
        return False

    for name, value in values.items():
        setattr(job, name, value)
    job.locked_at = None
    job.locked_by = None
    return True


def _complete(job: DeliveryJob, *, worker_id: str, note: str | None = None) -> bool:
    return _finish(
        job,
        worker_id=worker_id,
        status=JobStatus.DONE,
        completed_at=timezone.now(),
        last_error=note,
    )


def _error_document(document: FiscalDocument, error: str, *, worker_id: str) -> None:
    document.refresh_from_db(fields=["status"])
    if document.status in TRANSITIONS["error"].sources:
        document_service.mark_error(document, error=error, actor=worker_id)


def _fail_permanently(job: DeliveryJob, error: str, *, worker_id: str) -> str:
    with transaction.atomic():
        if not _finish(
            job,
            worker_id=worker_id,
            status=JobStatus.FAILED,
            completed_at=timezone.now(),
            last_error=error,
        ):
            return OUTCOME_LEASE_LOST
        _error_document(job.document, error, worker_id=worker_id)

    logger.error(
        "job_failed",
        extra={
            "event": "worker_job",
            "job_id": str(job.pk),
            "job_type": job.job_type,
            "document_id": str(job.document_id),
            "attempts": job.attempts,
            "error": error,
            "outcome": OUTCOME_FAILED,
        },
    )
    return OUTCOME_FAILED


def _retry_later(job: DeliveryJob, error: str, *, worker_id: str, delay: timedelta) -> str:
    if job.attempts >= job.max_attempts:
        return _fail_permanently(
            job,
            f"Tentativas esgotadas ({job.attempts}/{job.max_attempts}): {error}",
            worker_id=worker_id,
        )

    if not _finish(
        job,
        worker_id=worker_id,
        status=JobStatus.QUEUED,
        next_run_at=timezone.now() + delay,
        last_error=error,
    ):
        return OUTCOME_LEASE_LOST

    logger.warning(
        "job_rescheduled",
        extra={
            "event": "worker_job",
            "job_id": str(job.pk),
            "job_type": job.job_type,
            "document_id": str(job.document_id),
            "attempts": job.attempts,
            "delay_seconds": int(delay.total_seconds()),
            "error": error,
            "outcome": OUTCOME_RETRY,
        },
    )
    return OUTCOME_RETRY


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _credentials(tenant_id) -> SolCredentials:
    profile = TenantFiscalProfile.objects.filter(tenant_id=tenant_id).first()
    if profile is None:
        return SolCredentials(user="", password="")
    user, password = profile.resolve_sol_credentials()
    return SolCredentials(user=user, password=password)


def _handle_send(job: DeliveryJob, collaborators: FiscalCollaborators, *, worker_id: str) -> str:
    document = job.document

    if document.status != DocumentStatus.QUEUED:
        _complete(job, worker_id=worker_id, note=f"Documento em {document.status}; envio ignorado.")
        return OUTCOME_DONE

    if not document.signed_payload:
        return _fail_permanently(job, "Documento sem XML assinado.", worker_id=worker_id)

    submission_id = collaborators.transport.submit(
        document=document,
        signed_xml=document.signed_payload,
        credentials=_credentials(job.tenant_id),
    )

    with transaction.atomic():
        if not _complete(job, worker_id=worker_id):
            return OUTCOME_LEASE_LOST
        document_service.mark_sent(document, submission_id=submission_id, actor=worker_id)
        poll_job = DeliveryJob.objects.create(
            tenant_id=job.tenant_id,
            document=document,
            job_type=JobType.POLL_STATUS,
            status=JobStatus.QUEUED,
            next_run_at=timezone.now() + _poll_delay(),
            max_attempts=_poll_max_attempts(),
        )

    logger.info(
        "document_submitted",
        extra={
            "event": "worker_job",
            "job_id": str(job.pk),
            "job_type": job.job_type,
            "document_id": str(document.pk),
            "submission_id": submission_id,
            "poll_job_id": str(poll_job.pk),
            "outcome": OUTCOME_DONE,
        },
    )
    return OUTCOME_DONE


def _on_accepted(document: FiscalDocument, *, worker_id: str) -> None:
    if document.doc_type == DocType.SUMMARY:
        receipt_ids = SummaryItem.objects.filter(summary=document).values("receipt_id")
        reported = FiscalDocument.objects.filter(pk__in=receipt_ids).update(
            reported_in_summary=True,
            updated_at=timezone.now(),
        )
        emit_fiscal_event(
            tenant_id=document.tenant_id,
            event_type="SUMMARY_ACCEPTED",
            document_id=document.pk,
            actor_id=worker_id,
            meta={"reported_receipts": reported},
        )

    elif document.doc_type == DocType.VOID_COMMUNICATION:
        canceled = 0
        for voided in document.voided_documents.filter(status=DocumentStatus.ACCEPTED):
            document_service.cancel_document(voided, actor=worker_id)
            canceled += 1
        emit_fiscal_event(
            tenant_id=document.tenant_id,
            event_type="VOID_ACCEPTED",
            document_id=document.pk,
            actor_id=worker_id,
            meta={"canceled_documents": canceled},
        )


def _handle_poll(job: DeliveryJob, collaborators: FiscalCollaborators, *, worker_id: str) -> str:
    document = job.document

    if document.status != DocumentStatus.SENT:
        _complete(job, worker_id=worker_id, note=f"Documento em {document.status}; consulta ignorada.")
        return OUTCOME_DONE

    result = collaborators.transport.poll_status(
        document.submission_id,
        credentials=_credentials(job.tenant_id),
    )

    if result.status == POLL_PENDING:
        return _retry_later(
            job,
            f"Ticket pendente ({result.code}).",
            worker_id=worker_id,
            delay=_poll_delay(),
        )

    with transaction.atomic():
        if not _complete(job, worker_id=worker_id):
            return OUTCOME_LEASE_LOST

        if result.status == POLL_ACCEPTED:
            document_service.mark_accepted(
                document,
                code=result.code,
                message=result.message,
                receipt=result.receipt_xml,
                actor=worker_id,
            )
            _on_accepted(document, worker_id=worker_id)
        elif result.status == POLL_REJECTED:
            document_service.mark_rejected(
                document,
                code=result.code,
                message=result.message,
                receipt=result.receipt_xml,
                actor=worker_id,
            )
        else:
            raise DeliveryError(f"Status de consulta desconhecido: {result.status}", code=result.code)

    logger.info(
        "document_polled",
        extra={
            "event": "worker_job",
            "job_id": str(job.pk),
            "document_id": str(document.pk),
            "authority_status": result.status,
            "authority_code": result.code,
            "outcome": OUTCOME_DONE,
        },
    )
    return OUTCOME_DONE


# ---------------------------------------------------------------------------
# Processamento
# ---------------------------------------------------------------------------


def process_job(
    job: DeliveryJob,
    *,
    worker_id: str,
    collaborators: Optional[FiscalCollaborators] = None,
) -> str:
    """
    Processa um job já reivindicado (RUNNING, locked_by=worker_id).

    Regras:
      - DeliveryError / erro inesperado -> backoff até max_attempts.
      - FiscalError (configuração, transição inválida) -> FAILED direto.
    """
    if collaborators is None:
        profile = TenantFiscalProfile.objects.filter(tenant_id=job.tenant_id).first()
        collaborators = get_collaborators(environment=getattr(profile, "environment", None))

    try:
        if job.job_type in SEND_JOB_TYPES:
            return _handle_send(job, collaborators, worker_id=worker_id)
        if job.job_type == JobType.POLL_STATUS:
            return _handle_poll(job, collaborators, worker_id=worker_id)
        return _fail_permanently(job, f"Tipo de job desconhecido: {job.job_type}", worker_id=worker_id)

    except DeliveryError as exc:
        return _retry_later(
            job,
            f"{exc.code or 'DELIVERY'}: {exc}",
            worker_id=worker_id,
            delay=backoff_delay(job.attempts),
        )

    except FiscalError as exc:
        return _fail_permanently(job, str(exc), worker_id=worker_id)

    except Exception as exc:
        logger.exception(
            "job_unexpected_error",
            extra={"event": "worker_job", "job_id": str(job.pk), "job_type": job.job_type},
        )
        return _retry_later(
            job,
            f"Erro inesperado: {exc!r}",
            worker_id=worker_id,
            delay=backoff_delay(job.attempts),
        )


def run_once(
    *,
    worker_id: Optional[str] = None,
    batch_size: int = 10,
    collaborators_provider: Optional[Callable[[DeliveryJob], FiscalCollaborators]] = None,
) -> WorkerCycleResult:
    """
    Um ciclo do worker: reclaim, busca, claim e processamento em lote.
    """
    worker_id = worker_id or default_worker_id()
    result = WorkerCycleResult(reclaimed=reclaim_stale_jobs())

    for job_id in find_ready_jobs(limit=batch_size):
        job = claim_job(job_id, worker_id=worker_id)
        if job is None:
            result.skipped += 1
            continue

        result.claimed += 1
        result.job_ids.append(job_id)

        collaborators = collaborators_provider(job) if collaborators_provider else None
        outcome = process_job(job, worker_id=worker_id, collaborators=collaborators)

        if outcome == OUTCOME_DONE:
            result.done += 1
        elif outcome == OUTCOME_RETRY:
            result.retried += 1
        elif outcome == OUTCOME_FAILED:
            result.failed += 1
        else:
            result.skipped += 1

    return result
