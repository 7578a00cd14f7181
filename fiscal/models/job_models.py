import uuid

from django.db import models
from django.utils import timezone


class JobType(models.TextChoices):
    SEND_DOCUMENT = "SEND_DOCUMENT", "Enviar comprovante"
    SEND_SUMMARY = "SEND_SUMMARY", "Enviar resumo diário"
    SEND_VOID = "SEND_VOID", "Enviar comunicação de baixa"
    POLL_STATUS = "POLL_STATUS", "Consultar ticket"


class JobStatus(models.TextChoices):
    QUEUED = "QUEUED", "Na fila"
    RUNNING = "RUNNING", "Em execução"
    DONE = "DONE", "Concluído"
    FAILED = "FAILED", "Falhou"


class DeliveryJob(models.Model):
    """
    Job durável de entrega à autoridade fiscal.

    Ciclo: QUEUED -> RUNNING -> DONE | QUEUED (backoff) | FAILED.
    Mantido após a conclusão para auditoria.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.PROTECT,
        related_name="delivery_jobs",
    )
    document = models.ForeignKey(
        "fiscal.FiscalDocument",
        on_delete=models.PROTECT,
        related_name="delivery_jobs",
    )

    job_type = models.CharField(max_length=16, choices=JobType.choices)
    status = models.CharField(
        max_length=16,
        choices=JobStatus.choices,
        default=JobStatus.QUEUED,
    )

    next_run_at = models.DateTimeField(default=timezone.now)
    attempts = models.PositiveIntegerField(default=0)
    max_attempts = models.PositiveIntegerField(default=5)
    last_error = models.TextField(blank=True, null=True)

    locked_at = models.DateTimeField(null=True, blank=True)
    locked_by = models.CharField(max_length=128, blank=True, null=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "fiscal_delivery_job"
        indexes = [
            models.Index(fields=["status", "next_run_at"], name="idx_job_status_next_run"),
            models.Index(fields=["document", "status"], name="idx_job_document_status"),
        ]

    def __str__(self):
        return f"{self.job_type} doc={self.document_id} ({self.status}, {self.attempts}/{self.max_attempts})"
