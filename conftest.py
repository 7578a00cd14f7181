# conftest.py (na raiz do projeto)

import pytest
from rest_framework.test import APIClient

from fiscal.collaborator_factory import build_mock_collaborators
from fiscal.collaborators import MockTransport
from tests.helpers import make_certificate, make_profile, make_tenant, make_user
from users.models import UserRole


# =============================================================================
# FIXTURES DE DADOS
# =============================================================================

@pytest.fixture
def tenant(db):
    return make_tenant()


@pytest.fixture
def other_tenant(db):
    return make_tenant(code="T002", name="Outra Loja")


@pytest.fixture
def profile(tenant):
    return make_profile(tenant)


@pytest.fixture
def certificate(tenant):
    return make_certificate(tenant)


@pytest.fixture
def fiscal_ready(profile, certificate):
    """Tenant com perfil habilitado + certificado válido."""
    return profile


@pytest.fixture
def operator_user(tenant):
    return make_user("operador", tenant=tenant, role=UserRole.OPERATOR)


@pytest.fixture
def owner_user(tenant):
    return make_user("dono", tenant=tenant, role=UserRole.OWNER)


@pytest.fixture
def superadmin_user(tenant):
    return make_user("super", tenant=tenant, role=UserRole.SUPERADMIN)


# =============================================================================
# COLABORADORES
# =============================================================================

@pytest.fixture
def mock_transport():
    return MockTransport()


@pytest.fixture
def collaborators(mock_transport):
    return build_mock_collaborators(transport=mock_transport)


@pytest.fixture(autouse=True)
def _clear_sol_env(settings):
    # Credenciais do ambiente nunca vazam para os testes
    settings.FISCAL_SOL_USER = ""
    settings.FISCAL_SOL_PASSWORD = ""
    settings.FISCAL_SKIP_TAX_ID_CHECK_DIGIT = False


# =============================================================================
# CLIENTES HTTP
# =============================================================================

@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def operator_client(operator_user):
    client = APIClient()
    client.force_authenticate(user=operator_user)
    return client


@pytest.fixture
def owner_client(owner_user):
    client = APIClient()
    client.force_authenticate(user=owner_user)
    return client


@pytest.fixture
def superadmin_client(superadmin_user):
    client = APIClient()
    client.force_authenticate(user=superadmin_user)
    return client
