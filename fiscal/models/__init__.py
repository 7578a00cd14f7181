from .profile_models import FiscalEnvironment, TenantFiscalProfile, TenantCertificate
from .document_models import (
    DocType,
    DocumentStatus,
    IdentityDocType,
    FiscalDocument,
    SummaryItem,
)
from .job_models import JobType, JobStatus, DeliveryJob
from .audit_models import AuditSeverity, FiscalAuditEvent


__all__ = [
    "FiscalEnvironment",
    "TenantFiscalProfile",
    "TenantCertificate",
    "DocType",
    "DocumentStatus",
    "IdentityDocType",
    "FiscalDocument",
    "SummaryItem",
    "JobType",
    "JobStatus",
    "DeliveryJob",
    "AuditSeverity",
    "FiscalAuditEvent",
]
