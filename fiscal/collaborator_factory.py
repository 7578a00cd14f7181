# fiscal/collaborator_factory.py
"""
Factory dos colaboradores externos (XML, certificado, assinatura, transporte).

Ponto único onde as classes configuradas em settings.FISCAL_COLLABORATORS
são resolvidas. Services e worker recebem um FiscalCollaborators pronto e
nunca instanciam implementações concretas diretamente.
"""

from __future__ import annotations

from dataclasses import dataclass

from django.conf import settings
from django.utils.module_loading import import_string

from fiscal.collaborators import (
    CertificateLoader,
    DatabaseCertificateLoader,
    MockSigner,
    MockTransport,
    Signer,
    SimpleXmlGenerator,
    Transport,
    XmlGenerator,
)
from fiscal.models import FiscalEnvironment

DEFAULT_COLLABORATORS = {
    "xml_generator": "fiscal.collaborators.SimpleXmlGenerator",
    "certificate_loader": "fiscal.collaborators.DatabaseCertificateLoader",
    "signer": "fiscal.collaborators.MockSigner",
    "transport": "fiscal.collaborators.MockTransport",
}


@dataclass
class FiscalCollaborators:
    xml_generator: XmlGenerator
    certificate_loader: CertificateLoader
    signer: Signer
    transport: Transport


def _resolve(name: str):
    configured = getattr(settings, "FISCAL_COLLABORATORS", None) or {}
    return import_string(configured.get(name, DEFAULT_COLLABORATORS[name]))


def get_collaborators(*, environment: str | None = None) -> FiscalCollaborators:
    """
    Monta os colaboradores para o ambiente informado.

    O transporte recebe o ambiente (SANDBOX / PRODUCTION) para escolher o
    endpoint; os demais são independentes do ambiente.
    """
    environment = environment or FiscalEnvironment.SANDBOX

    return FiscalCollaborators(
        xml_generator=_resolve("xml_generator")(),
        certificate_loader=_resolve("certificate_loader")(),
        signer=_resolve("signer")(),
        transport=_resolve("transport")(environment=environment),
    )


def build_mock_collaborators(*, transport=None) -> FiscalCollaborators:
    """Colaboradores simulados (sandbox/testes), com transporte opcional."""
    return FiscalCollaborators(
        xml_generator=SimpleXmlGenerator(),
        certificate_loader=DatabaseCertificateLoader(),
        signer=MockSigner(),
        transport=transport or MockTransport(),
    )
