import uuid

from django.conf import settings
from django.core.validators import RegexValidator
from django.db import models
from django.utils import timezone


# Série: 4 caracteres, letras maiúsculas ou dígitos (F001, FC01, RA01)
SERIES_REGEX = r"^[A-Z0-9]{4}\Z"

series_validator = RegexValidator(
    regex=SERIES_REGEX,
    message="Série deve ter 4 caracteres entre A-Z e 0-9.",
    code="invalid_series",
)


class FiscalEnvironment(models.TextChoices):
    SANDBOX = "SANDBOX", "Sandbox (beta)"
    PRODUCTION = "PRODUCTION", "Produção"


class TenantFiscalProfile(models.Model):
    """
    Configuração fiscal de um tenant (uma linha por tenant).

    - Criada pelo inicializador idempotente, nunca removida.
    - Os contadores next_*_number só podem ser alterados pelo alocador
      (fiscal.services.sequence_service.allocate_number).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant = models.OneToOneField(
        "tenants.Tenant",
        on_delete=models.PROTECT,
        related_name="fiscal_profile",
    )

    environment = models.CharField(
        max_length=16,
        choices=FiscalEnvironment.choices,
        default=FiscalEnvironment.SANDBOX,
    )
    enabled = models.BooleanField(default=False)

    # Identificação do contribuinte
    tax_id = models.CharField(max_length=11, blank=True, default="")
    legal_name = models.CharField(max_length=255, blank=True, default="")
    address = models.CharField(max_length=255, blank=True, default="")

    # Credenciais SOL (as variáveis de ambiente têm prioridade)
    sol_user = models.CharField(max_length=64, blank=True, default="")
    sol_password = models.CharField(max_length=128, blank=True, default="")

    # Séries padrão por tipo de documento
    default_invoice_series = models.CharField(max_length=4, default="F001", validators=[series_validator])
    default_receipt_series = models.CharField(max_length=4, default="B001", validators=[series_validator])
    default_credit_note_series = models.CharField(max_length=4, default="FC01", validators=[series_validator])
    default_debit_note_series = models.CharField(max_length=4, default="FD01", validators=[series_validator])
    default_summary_series = models.CharField(max_length=4, default="RC01", validators=[series_validator])
    default_void_series = models.CharField(max_length=4, default="RA01", validators=[series_validator])

    # Próximo número a emitir por tipo de documento
    next_invoice_number = models.PositiveIntegerField(default=1)
    next_receipt_number = models.PositiveIntegerField(default=1)
    next_credit_note_number = models.PositiveIntegerField(default=1)
    next_debit_note_number = models.PositiveIntegerField(default=1)
    next_summary_number = models.PositiveIntegerField(default=1)
    next_void_number = models.PositiveIntegerField(default=1)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "tenant_fiscal_profile"

    def __str__(self):
        return f"Perfil fiscal {self.tenant_id} ({self.environment})"

    def resolve_sol_credentials(self) -> tuple[str, str]:
        """Variáveis de ambiente primeiro, depois o que está salvo no perfil."""
        env_user = getattr(settings, "FISCAL_SOL_USER", "") or ""
        env_password = getattr(settings, "FISCAL_SOL_PASSWORD", "") or ""
        if env_user and env_password:
            return env_user, env_password
        return self.sol_user, self.sol_password

    @property
    def has_credentials(self) -> bool:
        user, password = self.resolve_sol_credentials()
        return bool(user and password)

    @property
    def has_certificate(self) -> bool:
        return TenantCertificate.objects.filter(tenant_id=self.tenant_id).exists()


class TenantCertificate(models.Model):
    """
    Certificado digital (PFX) usado na assinatura dos documentos.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    tenant = models.OneToOneField(
        "tenants.Tenant",
        on_delete=models.PROTECT,
        related_name="fiscal_certificate",
    )

    pfx = models.BinaryField()
    password = models.CharField(max_length=128, blank=True, default="")
    serial_number = models.CharField(max_length=128, blank=True, default="")
    issuer = models.CharField(max_length=255, blank=True, default="")
    expires_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "tenant_certificate"

    def __str__(self):
        return f"Certificado {self.serial_number or '-'} (tenant={self.tenant_id})"

    @property
    def is_expired(self) -> bool:
        return bool(self.expires_at and self.expires_at <= timezone.now())
