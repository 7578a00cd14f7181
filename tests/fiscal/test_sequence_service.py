# tests/fiscal/test_sequence_service.py

import threading

import pytest
from django.core.exceptions import ValidationError
from django.db import connection, connections

from fiscal.exceptions import ConfigurationError, ProfileNotConfigured
from fiscal.models import DocType, FiscalAuditEvent, TenantFiscalProfile
from fiscal.models.profile_models import series_validator
from fiscal.services.sequence_service import (
    allocate_number,
    format_full_number,
    initialize_fiscal_profile,
    parse_full_number,
)


# ---------------------------------------------------------------------
# 1. Número completo
# ---------------------------------------------------------------------


def test_format_full_number_preenche_com_zeros():
    assert format_full_number("F001", 42) == "F001-00000042"
    assert format_full_number("B001", 99999999) == "B001-99999999"


@pytest.mark.parametrize("series,number", [("F01", 1), ("F0001", 1), ("F001", 0), ("F001", 100000000)])
def test_format_full_number_rejeita_fora_da_faixa(series, number):
    with pytest.raises(ValueError):
        format_full_number(series, number)


@pytest.mark.parametrize("series,number", [("F001", 1), ("FC01", 123), ("RA01", 99999999)])
def test_parse_e_inverso_de_format(series, number):
    assert parse_full_number(format_full_number(series, number)) == (series, number)


@pytest.mark.parametrize("value", ["F001-0000042", "f001-00000042", "F001_00000042", "F001-00000000", ""])
def test_parse_rejeita_formato_invalido(value):
    with pytest.raises(ValueError):
        parse_full_number(value)


@pytest.mark.parametrize("series", ["b001", "B-01", "F 01", "F00\u00ba", "F001\n"])
def test_format_rejeita_serie_que_parse_nao_reconhece(series):
    with pytest.raises(ValueError):
        parse_full_number(f"{series}-00000042")
    with pytest.raises(ValueError):
        format_full_number(series, 42)


@pytest.mark.parametrize("series", ["b001", "B-01", "F 01"])
def test_serie_invalida_barrada_no_modelo(series):
    with pytest.raises(ValidationError):
        series_validator(series)


# ---------------------------------------------------------------------
# 2. Alocação
# ---------------------------------------------------------------------


@pytest.mark.django_db
def test_alocacao_sequencial_sem_buracos(profile):
    numbers = [allocate_number(profile.tenant, DocType.INVOICE) for _ in range(5)]

    assert numbers == [("F001", n) for n in range(1, 6)]
    profile.refresh_from_db()
    assert profile.next_invoice_number == 6


@pytest.mark.django_db
def test_contadores_independentes_por_tipo(profile):
    allocate_number(profile.tenant, DocType.INVOICE)
    allocate_number(profile.tenant, DocType.INVOICE)

    assert allocate_number(profile.tenant, DocType.RECEIPT) == ("B001", 1)
    assert allocate_number(profile.tenant, DocType.SUMMARY) == ("RC01", 1)
    assert allocate_number(profile.tenant, DocType.VOID_COMMUNICATION) == ("RA01", 1)


@pytest.mark.django_db
def test_alocacao_respeita_serie_configurada(profile):
    profile.default_invoice_series = "F777"
    profile.next_invoice_number = 40
    profile.save()

    assert allocate_number(profile.tenant, DocType.INVOICE) == ("F777", 40)


@pytest.mark.django_db
def test_alocacao_com_serie_invalida_nao_consome_numero(profile):
    TenantFiscalProfile.objects.filter(pk=profile.pk).update(default_invoice_series="f001")

    with pytest.raises(ConfigurationError) as exc:
        allocate_number(profile.tenant, DocType.INVOICE)

    assert exc.value.detail["series"] == "f001"
    profile.refresh_from_db()
    assert profile.next_invoice_number == 1


@pytest.mark.django_db
def test_alocacao_sem_perfil(tenant):
    with pytest.raises(ProfileNotConfigured) as exc:
        allocate_number(tenant, DocType.INVOICE)

    assert exc.value.detail["code"] == "FISCAL_1001"


@pytest.mark.django_db
def test_tenants_nao_compartilham_contadores(profile, other_tenant):
    TenantFiscalProfile.objects.create(tenant=other_tenant)

    allocate_number(profile.tenant, DocType.INVOICE)
    allocate_number(profile.tenant, DocType.INVOICE)

    assert allocate_number(other_tenant, DocType.INVOICE) == ("F001", 1)


@pytest.mark.django_db(transaction=True)
@pytest.mark.skipif(connection.vendor == "sqlite", reason="SELECT FOR UPDATE exige PostgreSQL (TEST_DB=postgres)")
def test_alocacao_concorrente_nao_duplica(profile):
    """
    Cenário:
      - 8 threads alocam 5 números cada para o mesmo tenant.
      - Todos os 40 números são distintos e contíguos.
    """
    results = []
    errors = []
    lock = threading.Lock()

    def worker():
        try:
            for _ in range(5):
                allocated = allocate_number(profile.tenant_id, DocType.RECEIPT)
                with lock:
                    results.append(allocated[1])
        except Exception as exc:  # pragma: no cover - só para diagnóstico
            errors.append(exc)
        finally:
            connections.close_all()

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert sorted(results) == list(range(1, 41))


# ---------------------------------------------------------------------
# 3. Inicialização do perfil
# ---------------------------------------------------------------------


@pytest.mark.django_db
def test_inicializacao_idempotente(tenant):
    profile, created = initialize_fiscal_profile(tenant)
    assert created is True
    assert profile.environment == "SANDBOX"
    assert profile.enabled is False
    assert profile.next_invoice_number == 1

    allocate_number(tenant, DocType.INVOICE)

    again, created_again = initialize_fiscal_profile(tenant)
    assert created_again is False
    assert again.pk == profile.pk
    assert again.next_invoice_number == 2

    assert FiscalAuditEvent.objects.filter(event_type="PROFILE_INITIALIZED").count() == 1
