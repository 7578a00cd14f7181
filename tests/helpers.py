# tests/helpers.py

from datetime import timedelta
from decimal import Decimal

from django.utils import timezone

from fiscal.models import TenantCertificate, TenantFiscalProfile
from tenants.models import Tenant
from users.models import User, UserRole

# RUC com dígito verificador válido
VALID_TAX_ID = "20100070970"
OTHER_VALID_TAX_ID = "20131312955"

USER_PASSWORD = "Senha@123"


# =============================================================================
# HELPERS
# =============================================================================

def make_tenant(code: str = "T001", name: str = "Loja Teste") -> Tenant:
    return Tenant.objects.create(code=code, name=name)


def make_profile(tenant: Tenant, **overrides) -> TenantFiscalProfile:
    """
    Perfil pronto para emitir em SANDBOX (habilitado, RUC válido, SOL).
    """
    values = {
        "enabled": True,
        "tax_id": VALID_TAX_ID,
        "legal_name": "EMPRESA DE TESTE S.A.C.",
        "address": "Av. Arequipa 123, Lima",
        "sol_user": "MODDATOS",
        "sol_password": "moddatos",
    }
    values.update(overrides)
    return TenantFiscalProfile.objects.create(tenant=tenant, **values)


def make_certificate(tenant: Tenant, **overrides) -> TenantCertificate:
    values = {
        "pfx": b"\x30\x82\x01\x00fake-pfx-bytes",
        "password": "cert-secret",
        "serial_number": "SN-0001",
        "issuer": "CA Teste",
        "expires_at": timezone.now() + timedelta(days=365),
    }
    values.update(overrides)
    return TenantCertificate.objects.create(tenant=tenant, **values)


def make_user(username: str, *, tenant=None, role=UserRole.OPERATOR) -> User:
    return User.objects.create_user(
        username=username,
        password=USER_PASSWORD,
        tenant=tenant,
        role=role,
    )


def invoice_payload(**overrides) -> dict:
    """Dados mínimos de uma FACTURA válida (base 100, IGV 18)."""
    payload = {
        "customer": {
            "doc_type": "RUC",
            "doc_number": OTHER_VALID_TAX_ID,
            "name": "CLIENTE CORPORATIVO S.A.",
        },
        "totals": {
            "taxable": Decimal("100.00"),
            "tax": Decimal("18.00"),
            "total": Decimal("118.00"),
        },
    }
    payload.update(overrides)
    return payload


def receipt_payload(**overrides) -> dict:
    """BOLETA abaixo do limite de identificação obrigatória."""
    payload = {
        "customer": {"doc_type": "-", "doc_number": "", "name": "CLIENTES VARIOS"},
        "totals": {
            "taxable": Decimal("50.00"),
            "tax": Decimal("9.00"),
            "total": Decimal("59.00"),
        },
    }
    payload.update(overrides)
    return payload




# =============================================================================
# FILA / WORKER
# =============================================================================

def make_jobs_ready() -> None:
    """Antecipa todos os jobs QUEUED para agora (ignora backoff e poll delay)."""
    from django.utils import timezone as tz

    from fiscal.models import DeliveryJob, JobStatus

    DeliveryJob.objects.filter(status=JobStatus.QUEUED).update(next_run_at=tz.now())


def drain_queue(collaborators, *, max_cycles: int = 10, worker_id: str = "test-worker") -> None:
    """Roda ciclos do worker até a fila esvaziar (jobs prontos)."""
    from fiscal.models import DeliveryJob, JobStatus
    from fiscal.services.delivery_queue import run_once

    for _ in range(max_cycles):
        make_jobs_ready()
        if not DeliveryJob.objects.filter(status=JobStatus.QUEUED).exists():
            return
        run_once(worker_id=worker_id, collaborators_provider=lambda job: collaborators)


def issue_accepted(tenant, collaborators, *, doc_type="INVOICE", **overrides):
    """Emite e processa a fila até o documento ficar ACCEPTED."""
    from fiscal.services.issuance_service import issue_document

    payload = invoice_payload() if doc_type == "INVOICE" else receipt_payload()
    payload.update(overrides)
    result = issue_document(tenant=tenant, doc_type=doc_type, collaborators=collaborators, **payload)
    drain_queue(collaborators)
    result.document.refresh_from_db()
    return result.document
