import uuid

from django.db import models
from django.utils import timezone


class AuditSeverity(models.TextChoices):
    INFO = "INFO", "Info"
    WARN = "WARN", "Aviso"
    ERROR = "ERROR", "Erro"


class FiscalAuditEvent(models.Model):
    """
    Trilha de auditoria append-only dos eventos fiscais.

    Exemplos de event_type:
      - DOCUMENT_SIGNED
      - DOCUMENT_ACCEPTED
      - SUMMARY_CREATED
      - ENVIRONMENT_SWITCH_DENIED

    meta nunca guarda senha SOL, senha do certificado ou bytes do PFX.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant_id = models.CharField(max_length=64, blank=True, null=True)
    event_type = models.CharField(max_length=64)
    severity = models.CharField(
        max_length=8,
        choices=AuditSeverity.choices,
        default=AuditSeverity.INFO,
    )

    document = models.ForeignKey(
        "fiscal.FiscalDocument",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_events",
    )
    actor_id = models.CharField(max_length=64, blank=True, null=True)

    meta = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "fiscal_audit_event"
        indexes = [
            models.Index(fields=["tenant_id", "created_at"], name="idx_audit_tenant_created"),
            models.Index(fields=["event_type"], name="idx_audit_event_type"),
        ]

    def __str__(self):
        return f"[{self.event_type}] tenant={self.tenant_id} doc={self.document_id}"
