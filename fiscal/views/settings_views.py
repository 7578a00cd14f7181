# fiscal/views/settings_views.py

import logging

from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from fiscal.permissions import HasFiscalTenant, IsOwnerOrSuperAdmin
from fiscal.serializers_settings import (
    EnvironmentReadinessSerializer,
    EnvironmentSwitchInputSerializer,
    EnvironmentSwitchOutputSerializer,
    ProfileInitializeOutputSerializer,
)
from fiscal.services.environment_service import get_environment_readiness, switch_environment
from fiscal.services.sequence_service import initialize_fiscal_profile
from fiscal.views.view_helpers import fiscal_view_errors, tenant_id_from_request

logger = logging.getLogger("cpe.fiscal")


def _readiness_payload(readiness) -> dict:
    return EnvironmentReadinessSerializer(
        {
            "environment": readiness.environment,
            "ready_for_production": readiness.ready_for_production,
            "checks": readiness.checks,
            "missing": readiness.missing,
        }
    ).data


@extend_schema(
    methods=["GET"],
    responses={200: EnvironmentReadinessSerializer},
    tags=["Fiscal - Configuração"],
)
@extend_schema(
    methods=["POST"],
    request=EnvironmentSwitchInputSerializer,
    responses={200: EnvironmentSwitchOutputSerializer},
    tags=["Fiscal - Configuração"],
)
@api_view(["GET", "POST"])
@permission_classes([IsAuthenticated, HasFiscalTenant])
def environment_view(request):
    """
    GET: ambiente atual + checklist de produção.
    POST: troca de ambiente (SUPERADMIN; a service audita inclusive as
    tentativas negadas, por isso o papel não é checado aqui).
    """
    tenant_id = tenant_id_from_request(request)

    if request.method == "GET":
        with fiscal_view_errors("environment_readiness", request, tenant_id=tenant_id):
            readiness = get_environment_readiness(tenant_id)
        return Response(_readiness_payload(readiness))

    serializer = EnvironmentSwitchInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    with fiscal_view_errors("environment_switch", request, tenant_id=tenant_id, target=data["target"]) as log_ctx:
        result = switch_environment(
            tenant_id,
            data["target"],
            data.get("confirmation_text"),
            request.user,
        )
        logger.info(
            "environment_switch_request",
            extra={**log_ctx, "changed": result.changed, "outcome": "success"},
        )

    output = EnvironmentSwitchOutputSerializer(
        {"changed": result.changed, "previous": result.previous, "environment": result.environment}
    )
    return Response(output.data, status=status.HTTP_200_OK)


@extend_schema(request=None, responses={201: ProfileInitializeOutputSerializer}, tags=["Fiscal - Configuração"])
@api_view(["POST"])
@permission_classes([IsAuthenticated, HasFiscalTenant, IsOwnerOrSuperAdmin])
def initialize_profile_view(request):
    """
    Cria o perfil fiscal do tenant (SANDBOX, desabilitado, contadores em 1).
    Idempotente: perfil existente volta com created=false e HTTP 200.
    """
    tenant_id = tenant_id_from_request(request)

    with fiscal_view_errors("profile_initialize", request, tenant_id=tenant_id):
        profile, created = initialize_fiscal_profile(tenant_id, actor=request.user)

    output = ProfileInitializeOutputSerializer(
        {
            "created": created,
            "profile_id": str(profile.pk),
            "environment": profile.environment,
            "enabled": profile.enabled,
        }
    )
    return Response(output.data, status=status.HTTP_201_CREATED if created else status.HTTP_200_OK)
