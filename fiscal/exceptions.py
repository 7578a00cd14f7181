# fiscal/exceptions.py
"""
Erros de domínio da emissão fiscal.

Todas as exceções expostas pela API herdam de APIException, então as services
levantam e as views deixam o DRF renderizar:

    {"code": "FISCAL_2001", "message": "...", ...}

Nenhuma mensagem carrega senha SOL, senha do certificado ou bytes do PFX.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from rest_framework import status
from rest_framework.exceptions import APIException


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------


class FiscalError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "FISCAL_1000"
    default_message = "Erro fiscal."

    def __init__(
        self,
        message: str | None = None,
        *,
        error_code: str | None = None,
        extra: Dict[str, Any] | None = None,
    ):
        self.error_code = error_code or self.error_code
        self.message = message or self.default_message
        self.extra: Dict[str, Any] = extra or {}

        detail: Dict[str, Any] = {"code": self.error_code, "message": self.message}
        detail.update(self.extra)
        super().__init__(detail=detail)

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"


# ---------------------------------------------------------------------------
# Configuração (nunca re-tentada)
# ---------------------------------------------------------------------------


class ConfigurationError(FiscalError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "FISCAL_1000"
    default_message = "Configuração fiscal inválida."


class ProfileNotConfigured(ConfigurationError):
    error_code = "FISCAL_1001"
    default_message = "Perfil fiscal não configurado para o tenant."


class FiscalDisabled(ConfigurationError):
    error_code = "FISCAL_1002"
    default_message = "Emissão fiscal desabilitada para o tenant."


# ---------------------------------------------------------------------------
# Validação
# ---------------------------------------------------------------------------


class FiscalValidationError(FiscalError):
    """
    Agrega TODAS as regras violadas (não para na primeira).
    """

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "FISCAL_2001"
    default_message = "Documento não atende às regras fiscais."

    def __init__(
        self,
        errors: Iterable[str],
        warnings: Iterable[str] | None = None,
        *,
        message: str | None = None,
    ):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__(
            message,
            extra={"errors": self.errors, "warnings": self.warnings},
        )


# ---------------------------------------------------------------------------
# Certificado / assinatura
# ---------------------------------------------------------------------------


class CertificateError(FiscalError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "FISCAL_3001"
    default_message = "Certificado digital indisponível."

    def __init__(self, message: str | None = None, *, reason: str = "CERT_INVALID"):
        # reason: CERT_MISSING | CERT_EXPIRED | CERT_INVALID
        self.reason = reason
        super().__init__(message, extra={"reason": reason})


class SignatureError(FiscalError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    error_code = "FISCAL_3002"
    default_message = "Falha ao assinar o documento."

    def __init__(self, message: str | None = None, *, reason: str = "SIGN_FAILED"):
        self.reason = reason
        super().__init__(message, extra={"reason": reason})


# ---------------------------------------------------------------------------
# Ciclo de vida do documento
# ---------------------------------------------------------------------------


class InvalidStateTransition(FiscalError):
    status_code = status.HTTP_409_CONFLICT
    error_code = "FISCAL_4001"
    default_message = "Transição de status não permitida."

    def __init__(self, *, document_id: Any, action: str, current_status: Optional[str]):
        self.document_id = document_id
        self.action = action
        self.current_status = current_status
        super().__init__(
            f"Ação '{action}' não permitida para o documento {document_id} "
            f"no status {current_status}.",
            extra={
                "document_id": str(document_id),
                "action": action,
                "current_status": current_status,
            },
        )


class DocumentNotFound(FiscalError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "FISCAL_4004"
    default_message = "Documento fiscal não encontrado."


class DocumentFileNotAvailable(DocumentNotFound):
    error_code = "FISCAL_4005"
    default_message = "Arquivo do documento não disponível."


# ---------------------------------------------------------------------------
# Entrega (uso interno do worker)
# ---------------------------------------------------------------------------


class DeliveryError(Exception):
    """
    Falha na comunicação com a autoridade fiscal (timeout, conexão, SOAP fault).

    Não é exposta pela API: o worker converte em re-tentativa com backoff.
    """

    error_code = "FISCAL_5001"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        raw: Dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.raw: Dict[str, Any] = raw or {}


# ---------------------------------------------------------------------------
# Ambiente (SANDBOX -> PRODUCTION)
# ---------------------------------------------------------------------------


class ProdRequirementsNotMet(FiscalError):
    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "FISCAL_6001"
    default_message = "Requisitos para ativar produção não atendidos."

    def __init__(self, missing: Iterable[Dict[str, str]]):
        self.missing = list(missing)
        super().__init__(extra={"missing": self.missing})


class NotSuperAdmin(FiscalError):
    status_code = status.HTTP_403_FORBIDDEN
    error_code = "AUTH_1007"
    default_message = "Apenas SUPERADMIN pode alterar o ambiente fiscal."
