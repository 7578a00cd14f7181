# fiscal/views/batch_views.py

import logging

from django.utils import timezone
from drf_spectacular.utils import extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from fiscal.permissions import HasFiscalTenant, IsOwnerOrSuperAdmin
from fiscal.serializers_batch import (
    SummaryRunInputSerializer,
    SummaryRunOutputSerializer,
    VoidInputSerializer,
    VoidOutputSerializer,
)
from fiscal.services.summary_service import SUMMARY_CREATED, build_summary
from fiscal.services.void_service import build_void
from fiscal.views.view_helpers import fiscal_view_errors, tenant_id_from_request

logger = logging.getLogger("cpe.fiscal")


@extend_schema(
    request=SummaryRunInputSerializer,
    responses={201: SummaryRunOutputSerializer, 200: SummaryRunOutputSerializer},
    tags=["Fiscal - Lotes"],
)
@api_view(["POST"])
@permission_classes([IsAuthenticated, HasFiscalTenant, IsOwnerOrSuperAdmin])
def run_summary_view(request):
    """
    Gera o resumo diário de boletas.

    201 quando um resumo foi criado; 200 com status "nothing_pending" quando
    não há boletas a reportar no dia.
    """
    tenant_id = tenant_id_from_request(request)

    serializer = SummaryRunInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    reference_date = serializer.validated_data.get("reference_date") or timezone.localdate()

    with fiscal_view_errors(
        "summary_run", request, tenant_id=tenant_id, reference_date=reference_date.isoformat()
    ) as log_ctx:
        result = build_summary(tenant_id, reference_date, actor=request.user)

        logger.info(
            "summary_run_success",
            extra={**log_ctx, "receipt_count": result.receipt_count, "outcome": result.status},
        )

    output = SummaryRunOutputSerializer(
        {
            "status": result.status,
            "receipt_count": result.receipt_count,
            "document": result.document,
            "job_id": str(result.job.pk) if result.job else None,
        }
    )
    http_status = status.HTTP_201_CREATED if result.status == SUMMARY_CREATED else status.HTTP_200_OK
    return Response(output.data, status=http_status)


@extend_schema(
    request=VoidInputSerializer,
    responses={201: VoidOutputSerializer},
    tags=["Fiscal - Lotes"],
)
@api_view(["POST"])
@permission_classes([IsAuthenticated, HasFiscalTenant, IsOwnerOrSuperAdmin])
def void_documents_view(request):
    """
    Comunicação de baixa de documentos ACEITOS do mesmo dia.

    Os documentos só passam a CANCELED quando a autoridade aceitar a baixa.
    """
    tenant_id = tenant_id_from_request(request)

    serializer = VoidInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    with fiscal_view_errors(
        "void_build", request, tenant_id=tenant_id, document_count=len(data["document_ids"])
    ) as log_ctx:
        result = build_void(tenant_id, data["document_ids"], data["reason"], actor=request.user)

        logger.info(
            "void_build_success",
            extra={**log_ctx, "document_id": str(result.document.pk), "outcome": "success"},
        )

    output = VoidOutputSerializer(
        {
            "document": result.document,
            "job_id": str(result.job.pk),
            "document_count": result.document_count,
        }
    )
    return Response(output.data, status=status.HTTP_201_CREATED)
