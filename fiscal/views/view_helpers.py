# fiscal/views/view_helpers.py

import logging
from contextlib import contextmanager

from django.core.exceptions import ValidationError as DjangoValidationError
from rest_framework.exceptions import (
    APIException,
    NotFound,
    PermissionDenied,
    ValidationError as DRFValidationError,
)

from fiscal.exceptions import (
    ConfigurationError,
    DocumentNotFound,
    FiscalValidationError,
    InvalidStateTransition,
    ProdRequirementsNotMet,
)

logger = logging.getLogger("cpe.fiscal")

# Ordem importa: subclasses antes de APIException
_OUTCOME_BY_EXCEPTION = (
    (FiscalValidationError, "validation_error", logging.WARNING),
    (DRFValidationError, "validation_error", logging.WARNING),
    (ProdRequirementsNotMet, "requirements_not_met", logging.WARNING),
    (InvalidStateTransition, "conflict", logging.WARNING),
    (ConfigurationError, "configuration_error", logging.WARNING),
    (NotFound, "not_found", logging.WARNING),
    (DocumentNotFound, "not_found", logging.WARNING),
    (PermissionDenied, "forbidden", logging.WARNING),
    (APIException, "api_exception", logging.ERROR),
)


def tenant_id_from_request(request):
    """
    Tenant do usuário; SUPERADMIN sem tenant pode informar tenant_id
    na query string ou no corpo.
    """
    user = request.user
    explicit = request.query_params.get("tenant_id") or (
        request.data.get("tenant_id") if hasattr(request.data, "get") else None
    )
    if explicit and getattr(user, "is_superadmin", False):
        return explicit

    tenant_id = getattr(user, "tenant_id", None)
    if tenant_id is None:
        raise PermissionDenied({"code": "AUTH_1006", "message": "Usuário sem tenant fiscal vinculado."})
    return tenant_id


@contextmanager
def fiscal_view_errors(event: str, request, **context):
    """
    Registra o outcome de erro de cada endpoint fiscal.

    - Exceções DRF/domínio são logadas e re-levantadas (DRF renderiza).
    - ValidationError do Django vira 400.
    - Qualquer outra exceção vira FISCAL_5999.
    """
    base = {
        "event": event,
        "user_id": getattr(request.user, "id", None),
        **{key: (str(value) if value is not None else None) for key, value in context.items()},
    }

    try:
        yield base

    except DjangoValidationError as exc:
        errors = exc.message_dict if hasattr(exc, "message_dict") else exc.messages
        logger.warning(f"{event}_validation_django", extra={**base, "errors": errors, "outcome": "validation_error"})
        raise DRFValidationError(detail={"code": "FISCAL_2001", "message": "Dados inválidos.", "errors": errors})

    except APIException as exc:
        for exc_type, outcome, level in _OUTCOME_BY_EXCEPTION:
            if isinstance(exc, exc_type):
                logger.log(
                    level,
                    f"{event}_{outcome}",
                    extra={**base, "detail": exc.detail, "outcome": outcome},
                )
                break
        raise

    except Exception as exc:
        logger.exception(f"{event}_error", extra={**base, "error": repr(exc), "outcome": "error"})
        raise APIException(
            detail={
                "code": "FISCAL_5999",
                "message": "Erro interno na emissão fiscal.",
            }
        )
