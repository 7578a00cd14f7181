# fiscal/views/document_views.py

import logging

from django.http import HttpResponse
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from fiscal.exceptions import DocumentNotFound
from fiscal.models import FiscalDocument
from fiscal.permissions import HasFiscalTenant, IsOwnerOrSuperAdmin
from fiscal.serializers_documents import (
    DocumentListQuerySerializer,
    FiscalDocumentSerializer,
    IssueDocumentInputSerializer,
    IssueDocumentOutputSerializer,
)
from fiscal.services import document_service
from fiscal.services.issuance_service import issue_document, sign_document
from fiscal.services.summary_service import local_day_bounds
from fiscal.views.view_helpers import fiscal_view_errors, tenant_id_from_request

logger = logging.getLogger("cpe.fiscal")


def _get_document(tenant_id, pk) -> FiscalDocument:
    document = FiscalDocument.objects.filter(pk=pk, tenant_id=tenant_id).first()
    if document is None:
        raise DocumentNotFound(extra={"document_id": str(pk)})
    return document


@extend_schema(
    request=IssueDocumentInputSerializer,
    responses={201: IssueDocumentOutputSerializer},
    tags=["Fiscal - Documentos"],
)
@api_view(["POST"])
@permission_classes([IsAuthenticated, HasFiscalTenant])
def issue_document_view(request):
    """
    Emite FACTURA, BOLETA ou nota de crédito/débito.

    Valida, aloca número, assina e enfileira a entrega. A resposta traz o
    documento em QUEUED e o id do job; o resultado da autoridade chega
    depois pelo worker.
    """
    tenant_id = tenant_id_from_request(request)

    serializer = IssueDocumentInputSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    with fiscal_view_errors("document_issue", request, tenant_id=tenant_id, doc_type=data["doc_type"]) as log_ctx:
        result = issue_document(
            tenant=tenant_id,
            doc_type=data["doc_type"],
            customer=dict(data["customer"]),
            totals=dict(data["totals"]),
            sale_id=data.get("sale_id") or None,
            reference_document_id=data.get("reference_document_id"),
            currency=data.get("currency") or "PEN",
            actor=request.user,
        )

        logger.info(
            "document_issue_success",
            extra={**log_ctx, "document_id": str(result.document.pk), "outcome": "success"},
        )

    output = IssueDocumentOutputSerializer(
        {
            "document": result.document,
            "job_id": str(result.job.pk),
            "warnings": result.warnings,
        }
    )
    return Response(output.data, status=status.HTTP_201_CREATED)


@extend_schema(
    parameters=[
        OpenApiParameter("doc_type", str, required=False),
        OpenApiParameter("status", str, required=False),
        OpenApiParameter("issue_date", str, required=False),
        OpenApiParameter("sale_id", str, required=False),
        OpenApiParameter("limit", int, required=False),
        OpenApiParameter("offset", int, required=False),
    ],
    responses={200: FiscalDocumentSerializer(many=True)},
    tags=["Fiscal - Documentos"],
)
@api_view(["GET"])
@permission_classes([IsAuthenticated, HasFiscalTenant])
def list_documents_view(request):
    tenant_id = tenant_id_from_request(request)

    query = DocumentListQuerySerializer(data=request.query_params)
    query.is_valid(raise_exception=True)
    filters = query.validated_data

    qs = FiscalDocument.objects.filter(tenant_id=tenant_id)
    if filters.get("doc_type"):
        qs = qs.filter(doc_type=filters["doc_type"])
    if filters.get("status"):
        qs = qs.filter(status=filters["status"].upper())
    if filters.get("sale_id"):
        qs = qs.filter(sale_id=filters["sale_id"])
    if filters.get("issue_date"):
        start, end = local_day_bounds(filters["issue_date"])
        qs = qs.filter(issue_date__gte=start, issue_date__lt=end)

    offset = filters["offset"]
    limit = filters["limit"]
    total = qs.count()
    documents = qs.order_by("-issue_date", "-number")[offset:offset + limit]

    return Response(
        {
            "count": total,
            "results": FiscalDocumentSerializer(documents, many=True).data,
        }
    )


@extend_schema(responses={200: FiscalDocumentSerializer}, tags=["Fiscal - Documentos"])
@api_view(["GET"])
@permission_classes([IsAuthenticated, HasFiscalTenant])
def document_detail_view(request, pk):
    tenant_id = tenant_id_from_request(request)
    document = _get_document(tenant_id, pk)
    return Response(FiscalDocumentSerializer(document).data)


@extend_schema(request=None, responses={202: FiscalDocumentSerializer}, tags=["Fiscal - Documentos"])
@api_view(["POST"])
@permission_classes([IsAuthenticated, HasFiscalTenant])
def sign_document_view(request, pk):
    """
    Re-assina um documento que ficou em DRAFT (ex.: certificado expirado
    que já foi renovado).
    """
    tenant_id = tenant_id_from_request(request)

    with fiscal_view_errors("document_sign", request, tenant_id=tenant_id, document_id=pk) as log_ctx:
        document = _get_document(tenant_id, pk)
        job = sign_document(document, actor=request.user)
        document.refresh_from_db()

        logger.info("document_sign_success", extra={**log_ctx, "job_id": str(job.pk), "outcome": "success"})

    return Response(
        {"document": FiscalDocumentSerializer(document).data, "job_id": str(job.pk)},
        status=status.HTTP_202_ACCEPTED,
    )


@extend_schema(request=None, responses={202: FiscalDocumentSerializer}, tags=["Fiscal - Documentos"])
@api_view(["POST"])
@permission_classes([IsAuthenticated, HasFiscalTenant, IsOwnerOrSuperAdmin])
def retry_document_view(request, pk):
    """
    Re-tentativa manual de um documento em ERROR (ou REJECTED, para
    documentos individuais corrigidos fora do sistema).
    """
    tenant_id = tenant_id_from_request(request)

    with fiscal_view_errors("document_retry", request, tenant_id=tenant_id, document_id=pk) as log_ctx:
        document = _get_document(tenant_id, pk)
        job = document_service.retry_document(document, actor=request.user)
        document.refresh_from_db()

        logger.info("document_retry_success", extra={**log_ctx, "job_id": str(job.pk), "outcome": "success"})

    return Response(
        {"document": FiscalDocumentSerializer(document).data, "job_id": str(job.pk)},
        status=status.HTTP_202_ACCEPTED,
    )


@extend_schema(
    parameters=[OpenApiParameter("type", str, required=False, enum=["xml", "cdr"])],
    responses={(200, "application/xml"): OpenApiTypes.STR},
    tags=["Fiscal - Documentos"],
)
@api_view(["GET"])
@permission_classes([IsAuthenticated, HasFiscalTenant])
def download_document_view(request, pk):
    """
    Baixa o XML assinado (?type=xml, padrão) ou a constância da autoridade
    (?type=cdr) de um documento do tenant.
    """
    tenant_id = tenant_id_from_request(request)
    file_type = request.query_params.get("type")

    with fiscal_view_errors("document_download", request, tenant_id=tenant_id, document_id=pk) as log_ctx:
        document = _get_document(tenant_id, pk)
        filename, content = document_service.get_document_file(document, file_type, actor=request.user)

        logger.info("document_download_success", extra={**log_ctx, "type": file_type or "xml", "outcome": "success"})

    response = HttpResponse(content, content_type="application/xml; charset=utf-8")
    response["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response
