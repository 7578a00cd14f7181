# tests/api/test_fiscal_api.py

import uuid

import pytest
from django.urls import reverse
from rest_framework.test import APIClient

from fiscal.models import DocumentStatus, FiscalAuditEvent, FiscalDocument
from tests.helpers import (
    OTHER_VALID_TAX_ID,
    drain_queue,
    make_certificate,
    make_profile,
    make_user,
)

ISSUE_URL = reverse("fiscal:document-issue")
LIST_URL = reverse("fiscal:document-list")
SUMMARY_URL = reverse("fiscal:summary-run")
VOID_URL = reverse("fiscal:void")
ENV_URL = reverse("fiscal:settings-environment")
INIT_URL = reverse("fiscal:settings-initialize")


def _invoice_body(**overrides):
    body = {
        "doc_type": "INVOICE",
        "customer": {"doc_type": "RUC", "doc_number": OTHER_VALID_TAX_ID, "name": "CLIENTE S.A."},
        "totals": {"taxable": "100.00", "tax": "18.00", "total": "118.00"},
        "sale_id": "VENDA-77",
    }
    body.update(overrides)
    return body


def _receipt_body():
    return {
        "doc_type": "RECEIPT",
        "customer": {"name": "CLIENTES VARIOS"},
        "totals": {"taxable": "50.00", "tax": "9.00", "total": "59.00"},
    }


# ---------------------------------------------------------------------
# 1. Autenticação / tenant
# ---------------------------------------------------------------------


@pytest.mark.django_db
def test_sem_autenticacao(api_client):
    response = api_client.post(ISSUE_URL, _invoice_body(), format="json")
    assert response.status_code == 401


@pytest.mark.django_db
def test_usuario_sem_tenant(db):
    user = make_user("solto")
    client = APIClient()
    client.force_authenticate(user=user)

    response = client.get(LIST_URL)

    assert response.status_code == 403
    assert response.data["code"] == "AUTH_1006"


# ---------------------------------------------------------------------
# 2. Emissão
# ---------------------------------------------------------------------


@pytest.mark.django_db
def test_emitir_factura(fiscal_ready, operator_client):
    response = operator_client.post(ISSUE_URL, _invoice_body(), format="json")

    assert response.status_code == 201, response.data
    document = response.data["document"]
    assert document["full_number"] == "F001-00000001"
    assert document["status"] == DocumentStatus.QUEUED
    assert document["sale_id"] == "VENDA-77"
    assert "signed_payload" not in document
    assert response.data["job_id"]
    assert response.data["warnings"] == []


@pytest.mark.django_db
def test_emitir_boleta_sem_identidade(fiscal_ready, operator_client):
    response = operator_client.post(ISSUE_URL, _receipt_body(), format="json")

    assert response.status_code == 201, response.data
    assert response.data["document"]["full_number"] == "B001-00000001"


@pytest.mark.django_db
def test_emitir_factura_invalida(fiscal_ready, operator_client):
    body = _invoice_body(customer={"doc_type": "DNI", "doc_number": "12345678", "name": "Fulano"})

    response = operator_client.post(ISSUE_URL, body, format="json")

    assert response.status_code == 400
    assert response.data["code"] == "FISCAL_2001"
    assert len(response.data["errors"]) == 2


@pytest.mark.django_db
def test_payload_mal_formado(fiscal_ready, operator_client):
    response = operator_client.post(ISSUE_URL, {"doc_type": "SUMMARY"}, format="json")

    assert response.status_code == 400
    assert "doc_type" in response.data
    assert "totals" in response.data


@pytest.mark.django_db
def test_emissao_desabilitada(tenant, operator_client):
    make_profile(tenant, enabled=False)

    response = operator_client.post(ISSUE_URL, _invoice_body(), format="json")

    assert response.status_code == 409
    assert response.data["code"] == "FISCAL_1002"


@pytest.mark.django_db
def test_sem_certificado_retorna_422_com_document_id(profile, operator_client):
    response = operator_client.post(ISSUE_URL, _invoice_body(), format="json")

    assert response.status_code == 422
    assert response.data["code"] == "FISCAL_3001"
    assert FiscalDocument.objects.get(pk=response.data["document_id"]).status == DocumentStatus.DRAFT


@pytest.mark.django_db
def test_erro_inesperado_vira_fiscal_5999(monkeypatch, fiscal_ready, operator_client):
    def boom(**kwargs):
        raise RuntimeError("falha inesperada")

    monkeypatch.setattr("fiscal.views.document_views.issue_document", boom)

    response = operator_client.post(ISSUE_URL, _invoice_body(), format="json")

    assert response.status_code == 500
    assert response.data["code"] == "FISCAL_5999"


# ---------------------------------------------------------------------
# 3. Consulta
# ---------------------------------------------------------------------


@pytest.mark.django_db
def test_listagem_e_detalhe_isolados_por_tenant(fiscal_ready, operator_client, other_tenant):
    operator_client.post(ISSUE_URL, _invoice_body(), format="json")
    operator_client.post(ISSUE_URL, _receipt_body(), format="json")

    response = operator_client.get(LIST_URL, {"doc_type": "RECEIPT"})
    assert response.status_code == 200
    assert response.data["count"] == 1

    document_id = response.data["results"][0]["id"]
    detail = operator_client.get(reverse("fiscal:document-detail", args=[document_id]))
    assert detail.status_code == 200
    assert detail.data["doc_type"] == "RECEIPT"

    foreign_user = make_user("outro", tenant=other_tenant)
    foreign_client = APIClient()
    foreign_client.force_authenticate(user=foreign_user)

    assert foreign_client.get(LIST_URL).data["count"] == 0
    not_found = foreign_client.get(reverse("fiscal:document-detail", args=[document_id]))
    assert not_found.status_code == 404
    assert not_found.data["code"] == "FISCAL_4004"


@pytest.mark.django_db
def test_listagem_filtra_status(fiscal_ready, operator_client):
    operator_client.post(ISSUE_URL, _invoice_body(), format="json")

    assert operator_client.get(LIST_URL, {"status": "queued"}).data["count"] == 1
    assert operator_client.get(LIST_URL, {"status": "ACCEPTED"}).data["count"] == 0


# ---------------------------------------------------------------------
# 4. Re-assinatura / retry
# ---------------------------------------------------------------------


@pytest.mark.django_db
def test_reassinar_documento_em_draft(profile, operator_client):
    failed = operator_client.post(ISSUE_URL, _invoice_body(), format="json")
    make_certificate(profile.tenant)

    response = operator_client.post(reverse("fiscal:document-sign", args=[failed.data["document_id"]]))

    assert response.status_code == 202
    assert response.data["document"]["status"] == DocumentStatus.QUEUED


@pytest.mark.django_db
def test_retry_exige_owner(fiscal_ready, operator_client):
    issued = operator_client.post(ISSUE_URL, _invoice_body(), format="json")

    response = operator_client.post(reverse("fiscal:document-retry", args=[issued.data["document"]["id"]]))

    assert response.status_code == 403
    assert response.data["code"] == "AUTH_1008"


@pytest.mark.django_db
def test_retry_de_documento_aceito_e_conflito(fiscal_ready, owner_client, collaborators):
    issued = owner_client.post(ISSUE_URL, _invoice_body(), format="json")
    drain_queue(collaborators)

    response = owner_client.post(reverse("fiscal:document-retry", args=[issued.data["document"]["id"]]))

    assert response.status_code == 409
    assert response.data["code"] == "FISCAL_4001"
    assert response.data["current_status"] == DocumentStatus.ACCEPTED


@pytest.mark.django_db
def test_download_do_xml_assinado(fiscal_ready, operator_client):
    issued = operator_client.post(ISSUE_URL, _invoice_body(), format="json")
    document_id = issued.data["document"]["id"]

    response = operator_client.get(reverse("fiscal:document-download", args=[document_id]))

    assert response.status_code == 200
    assert response["Content-Type"].startswith("application/xml")
    assert response["Content-Disposition"] == 'attachment; filename="F001-00000001.xml"'
    assert "<Signature" in response.content.decode()

    event = FiscalAuditEvent.objects.get(event_type="DOCUMENT_DOWNLOADED")
    assert str(event.document_id) == document_id
    assert event.meta["type"] == "XML"


@pytest.mark.django_db
def test_download_da_constancia_so_depois_da_resposta(fiscal_ready, operator_client, collaborators):
    issued = operator_client.post(ISSUE_URL, _invoice_body(), format="json")
    url = reverse("fiscal:document-download", args=[issued.data["document"]["id"]])

    pending = operator_client.get(url, {"type": "cdr"})
    assert pending.status_code == 404
    assert pending.data["code"] == "FISCAL_4005"

    drain_queue(collaborators)

    response = operator_client.get(url, {"type": "cdr"})
    assert response.status_code == 200
    assert response["Content-Disposition"] == 'attachment; filename="R-F001-00000001.xml"'
    body = response.content.decode()
    assert "<ReferenceID>F001-00000001</ReferenceID>" in body
    assert "<ResponseCode>0</ResponseCode>" in body


@pytest.mark.django_db
def test_download_tipo_invalido(fiscal_ready, operator_client):
    issued = operator_client.post(ISSUE_URL, _invoice_body(), format="json")

    response = operator_client.get(
        reverse("fiscal:document-download", args=[issued.data["document"]["id"]]),
        {"type": "pdf"},
    )

    assert response.status_code == 400
    assert response.data["code"] == "FISCAL_2001"
    assert not FiscalAuditEvent.objects.filter(event_type="DOCUMENT_DOWNLOADED").exists()


@pytest.mark.django_db
def test_download_de_outro_tenant(fiscal_ready, operator_client, other_tenant):
    issued = operator_client.post(ISSUE_URL, _invoice_body(), format="json")

    foreign_client = APIClient()
    foreign_client.force_authenticate(user=make_user("outro", tenant=other_tenant))
    response = foreign_client.get(reverse("fiscal:document-download", args=[issued.data["document"]["id"]]))

    assert response.status_code == 404
    assert response.data["code"] == "FISCAL_4004"


# ---------------------------------------------------------------------
# 5. Lotes
# ---------------------------------------------------------------------


@pytest.mark.django_db
def test_resumo_sem_pendencias(fiscal_ready, owner_client):
    response = owner_client.post(SUMMARY_URL, {}, format="json")

    assert response.status_code == 200
    assert response.data["status"] == "nothing_pending"
    assert response.data["document"] is None


@pytest.mark.django_db
def test_resumo_criado(fiscal_ready, owner_client, collaborators):
    owner_client.post(ISSUE_URL, _receipt_body(), format="json")
    drain_queue(collaborators)

    response = owner_client.post(SUMMARY_URL, {}, format="json")

    assert response.status_code == 201
    assert response.data["receipt_count"] == 1
    assert response.data["document"]["doc_type"] == "SUMMARY"


@pytest.mark.django_db
def test_resumo_exige_owner(fiscal_ready, operator_client):
    assert operator_client.post(SUMMARY_URL, {}, format="json").status_code == 403


@pytest.mark.django_db
def test_baixa_acima_do_limite(fiscal_ready, owner_client):
    body = {"document_ids": [str(uuid.uuid4()) for _ in range(501)], "reason": "Erro de digitação"}

    response = owner_client.post(VOID_URL, body, format="json")

    assert response.status_code == 400
    assert response.data["code"] == "FISCAL_2001"


@pytest.mark.django_db
def test_baixa_criada(fiscal_ready, owner_client, collaborators):
    issued = owner_client.post(ISSUE_URL, _invoice_body(), format="json")
    drain_queue(collaborators)

    response = owner_client.post(
        VOID_URL,
        {"document_ids": [issued.data["document"]["id"]], "reason": "Erro de digitação"},
        format="json",
    )

    assert response.status_code == 201, response.data
    assert response.data["document_count"] == 1
    assert response.data["document"]["doc_type"] == "VOID_COMMUNICATION"


# ---------------------------------------------------------------------
# 6. Configuração
# ---------------------------------------------------------------------


@pytest.mark.django_db
def test_readiness_via_api(fiscal_ready, operator_client):
    response = operator_client.get(ENV_URL)

    assert response.status_code == 200
    assert response.data["environment"] == "SANDBOX"
    assert response.data["ready_for_production"] is True


@pytest.mark.django_db
def test_troca_de_ambiente_por_operador_negada(fiscal_ready, operator_client):
    response = operator_client.post(
        ENV_URL,
        {"target": "PRODUCTION", "confirmation_text": "ACTIVATE PRODUCTION"},
        format="json",
    )

    assert response.status_code == 403
    assert response.data["code"] == "AUTH_1007"


@pytest.mark.django_db
def test_troca_de_ambiente_requisitos_faltantes(tenant, superadmin_client):
    make_profile(tenant)

    response = superadmin_client.post(ENV_URL, {"target": "PRODUCTION"}, format="json")

    assert response.status_code == 400
    assert response.data["code"] == "FISCAL_6001"
    requirements = [item["requirement"] for item in response.data["missing"]]
    assert requirements == ["CONFIRMATION_TEXT", "CERTIFICATE"]


@pytest.mark.django_db
def test_troca_de_ambiente_por_superadmin(fiscal_ready, superadmin_client):
    response = superadmin_client.post(
        ENV_URL,
        {"target": "PRODUCTION", "confirmation_text": "ACTIVATE PRODUCTION"},
        format="json",
    )

    assert response.status_code == 200
    assert response.data == {"changed": True, "previous": "SANDBOX", "environment": "PRODUCTION"}


@pytest.mark.django_db
def test_inicializar_perfil(tenant, owner_client):
    first = owner_client.post(INIT_URL)
    second = owner_client.post(INIT_URL)

    assert first.status_code == 201
    assert first.data["created"] is True
    assert first.data["enabled"] is False
    assert second.status_code == 200
    assert second.data["profile_id"] == first.data["profile_id"]
