"""
Colaboradores externos da emissão fiscal.

Este módulo define:

- Contratos (Protocols) para geração de XML, carga de certificado,
  assinatura e transporte até a autoridade fiscal.
- Implementações simples/mock usadas em sandbox e testes:
    * SimpleXmlGenerator
    * DatabaseCertificateLoader
    * MockSigner
    * MockTransport / MockTransportAlwaysFail

O formato UBL, o algoritmo XML-DSig e o protocolo SOAP reais ficam fora
daqui: basta plugar outras classes em settings.FISCAL_COLLABORATORS.
"""

from __future__ import annotations

import base64
import hashlib
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, Optional, Protocol

from lxml import etree

from fiscal.exceptions import CertificateError, DeliveryError, SignatureError
from fiscal.models import FiscalEnvironment, TenantCertificate
from fiscal.models.document_models import AUTHORITY_DOC_CODES, IDENTITY_AUTHORITY_CODES


# ---------------------------------------------------------------------------
# DTOs
# ---------------------------------------------------------------------------


@dataclass
class LoadedCertificate:
    """
    Certificado pronto para assinatura. Nunca deve ser logado.
    """

    pfx: bytes = field(repr=False)
    password: str = field(repr=False)
    serial_number: str = ""
    issuer: str = ""
    expires_at: Optional[datetime] = None


@dataclass
class SignResult:
    signed_xml: str
    digest_value: str


@dataclass
class SolCredentials:
    user: str
    password: str = field(repr=False)


@dataclass
class PollResult:
    """
    status: ACCEPTED | REJECTED | PENDING
    receipt_xml: constância (CDR) da autoridade, quando já existe
    """

    status: str
    code: str
    message: str
    raw: Dict[str, Any] = field(default_factory=dict)
    receipt_xml: Optional[str] = None


POLL_ACCEPTED = "ACCEPTED"
POLL_REJECTED = "REJECTED"
POLL_PENDING = "PENDING"


# ---------------------------------------------------------------------------
# Contratos
# ---------------------------------------------------------------------------


class XmlGenerator(Protocol):
    def generate_document_xml(self, *, document, profile) -> str:
        ...

    def generate_summary_xml(self, *, summary, receipts: Iterable, profile) -> str:
        ...

    def generate_void_xml(self, *, void, documents: Iterable, profile) -> str:
        ...


class CertificateLoader(Protocol):
    def load_certificate(self, tenant) -> LoadedCertificate:
        """Levanta CertificateError (reason CERT_MISSING / CERT_EXPIRED / CERT_INVALID)."""
        ...


class Signer(Protocol):
    def sign(self, xml: str, certificate: LoadedCertificate, document_id: str) -> SignResult:
        """Levanta SignatureError."""
        ...


class Transport(Protocol):
    """
    submit devolve o identificador da submissão (ticket); poll_status consulta
    o resultado. Falhas técnicas levantam DeliveryError.
    """

    def submit(self, *, document, signed_xml: str, credentials: SolCredentials) -> str:
        ...

    def poll_status(self, submission_id: str, *, credentials: SolCredentials) -> PollResult:
        ...


# ---------------------------------------------------------------------------
# XML
# ---------------------------------------------------------------------------


def _money(value) -> str:
    return f"{value:.2f}"


class SimpleXmlGenerator:
    """
    Gera um XML mínimo e determinístico com os dados do documento.

    Serve para sandbox/testes: o conteúdo é estável para o mesmo documento,
    então o hash de conteúdo também é.
    """

    def _issuer(self, root: etree._Element, profile) -> None:
        issuer = etree.SubElement(root, "Issuer")
        etree.SubElement(issuer, "TaxId").text = profile.tax_id
        etree.SubElement(issuer, "LegalName").text = profile.legal_name
        etree.SubElement(issuer, "Address").text = profile.address

    def _totals(self, root: etree._Element, doc) -> None:
        totals = etree.SubElement(root, "Totals", currency=doc.currency)
        etree.SubElement(totals, "Taxable").text = _money(doc.taxable)
        etree.SubElement(totals, "Tax").text = _money(doc.tax)
        etree.SubElement(totals, "Total").text = _money(doc.total)

    def generate_document_xml(self, *, document, profile) -> str:
        root = etree.Element(
            "Invoice",
            id=document.full_number,
            type=AUTHORITY_DOC_CODES[document.doc_type],
        )
        etree.SubElement(root, "IssueDate").text = document.issue_date.date().isoformat()
        self._issuer(root, profile)

        customer = etree.SubElement(
            root,
            "Customer",
            idType=IDENTITY_AUTHORITY_CODES.get(document.customer_doc_type, "-"),
        )
        etree.SubElement(customer, "Id").text = document.customer_doc_number
        etree.SubElement(customer, "Name").text = document.customer_name
        if document.customer_address:
            etree.SubElement(customer, "Address").text = document.customer_address

        if document.reference_document_id:
            ref = document.reference_document
            etree.SubElement(
                root,
                "BillingReference",
                id=ref.full_number,
                type=AUTHORITY_DOC_CODES[ref.doc_type],
            )

        self._totals(root, document)
        return etree.tostring(root, encoding="unicode")

    def generate_summary_xml(self, *, summary, receipts: Iterable, profile) -> str:
        root = etree.Element("SummaryDocuments", id=summary.full_number)
        etree.SubElement(root, "ReferenceDate").text = summary.reference_date.isoformat()
        etree.SubElement(root, "IssueDate").text = summary.issue_date.date().isoformat()
        self._issuer(root, profile)

        lines = etree.SubElement(root, "Lines")
        for idx, receipt in enumerate(receipts, start=1):
            line = etree.SubElement(lines, "Line", lineId=str(idx), id=receipt.full_number)
            etree.SubElement(line, "Total").text = _money(receipt.total)
            etree.SubElement(line, "Tax").text = _money(receipt.tax)

        self._totals(root, summary)
        return etree.tostring(root, encoding="unicode")

    def generate_void_xml(self, *, void, documents: Iterable, profile) -> str:
        root = etree.Element("VoidedDocuments", id=void.full_number)
        etree.SubElement(root, "ReferenceDate").text = void.reference_date.isoformat()
        etree.SubElement(root, "IssueDate").text = void.issue_date.date().isoformat()
        self._issuer(root, profile)

        lines = etree.SubElement(root, "Lines")
        for idx, doc in enumerate(documents, start=1):
            line = etree.SubElement(
                lines,
                "Line",
                lineId=str(idx),
                type=AUTHORITY_DOC_CODES[doc.doc_type],
                series=doc.series,
                number=str(doc.number),
            )
            etree.SubElement(line, "Reason").text = void.void_reason or ""

        return etree.tostring(root, encoding="unicode")


# ---------------------------------------------------------------------------
# Certificado
# ---------------------------------------------------------------------------


class DatabaseCertificateLoader:
    """
    Carrega o certificado salvo em TenantCertificate.

    Regras:
      - Sem linha de certificado -> CERT_MISSING.
      - expires_at no passado -> CERT_EXPIRED.
      - PFX vazio -> CERT_INVALID.
    """

    def load_certificate(self, tenant) -> LoadedCertificate:
        cert = TenantCertificate.objects.filter(tenant_id=tenant.pk).first()
        if cert is None:
            raise CertificateError(
                "Tenant não possui certificado digital configurado.",
                reason="CERT_MISSING",
            )

        if cert.is_expired:
            raise CertificateError(
                "Certificado digital expirado. Emissão bloqueada.",
                reason="CERT_EXPIRED",
            )

        pfx = bytes(cert.pfx or b"")
        if not pfx:
            raise CertificateError(
                "Certificado digital sem conteúdo.",
                reason="CERT_INVALID",
            )

        return LoadedCertificate(
            pfx=pfx,
            password=cert.password,
            serial_number=cert.serial_number,
            issuer=cert.issuer,
            expires_at=cert.expires_at,
        )


# ---------------------------------------------------------------------------
# Assinatura
# ---------------------------------------------------------------------------


class MockSigner:
    """
    Assinatura simulada: anexa um bloco Signature com o digest SHA-256 do XML.
    """

    def sign(self, xml: str, certificate: LoadedCertificate, document_id: str) -> SignResult:
        if not xml:
            raise SignatureError("XML vazio não pode ser assinado.", reason="SIGN_EMPTY_XML")

        try:
            root = etree.fromstring(xml.encode("utf-8"))
        except etree.XMLSyntaxError as exc:
            raise SignatureError("XML mal formado.", reason="SIGN_INVALID_XML") from exc

        digest = base64.b64encode(hashlib.sha256(xml.encode("utf-8")).digest()).decode("ascii")

        signature = etree.SubElement(root, "Signature", Id=f"SIGN-{document_id}")
        etree.SubElement(signature, "DigestValue").text = digest
        etree.SubElement(signature, "CertificateSerial").text = certificate.serial_number

        return SignResult(signed_xml=etree.tostring(root, encoding="unicode"), digest_value=digest)


# ---------------------------------------------------------------------------
# Transporte
# ---------------------------------------------------------------------------


def build_receipt_xml(*, reference_id: str, code: str, message: str) -> str:
    """Constância (CDR) mínima: ApplicationResponse com código e descrição."""
    root = etree.Element("ApplicationResponse")
    etree.SubElement(root, "ResponseDate").text = datetime.now().date().isoformat()
    response = etree.SubElement(root, "DocumentResponse")
    etree.SubElement(response, "ReferenceID").text = reference_id
    etree.SubElement(response, "ResponseCode").text = code
    etree.SubElement(response, "Description").text = message
    return etree.tostring(root, encoding="unicode")


class MockTransport:
    """
    Transporte simulado.

    - submit devolve um ticket aleatório.
    - poll_status devolve sempre ACCEPTED (código "0"), a não ser que
      poll_outcome seja outro (REJECTED / PENDING) para cenários de teste.
    - Respostas finais trazem uma constância (CDR) simulada.
    """

    def __init__(
        self,
        *,
        environment: str = FiscalEnvironment.SANDBOX,
        poll_outcome: str = POLL_ACCEPTED,
    ):
        self.environment = environment
        self.poll_outcome = poll_outcome
        self.submitted: list[str] = []
        self.polled: list[str] = []
        self._references: dict[str, str] = {}

    def submit(self, *, document, signed_xml: str, credentials: SolCredentials) -> str:
        if not credentials.user or not credentials.password:
            raise DeliveryError(
                "Credenciais SOL ausentes.",
                code="AUTH_MISSING",
                raw={"environment": self.environment},
            )

        ticket = f"TICKET-{uuid.uuid4().hex[:16]}"
        self.submitted.append(ticket)
        self._references[ticket] = document.full_number
        return ticket

    def _final(self, status: str, code: str, message: str, submission_id: str) -> PollResult:
        return PollResult(
            status=status,
            code=code,
            message=message,
            raw={"ticket": submission_id, "environment": self.environment},
            receipt_xml=build_receipt_xml(
                reference_id=self._references.get(submission_id, submission_id),
                code=code,
                message=message,
            ),
        )

    def poll_status(self, submission_id: str, *, credentials: SolCredentials) -> PollResult:
        self.polled.append(submission_id)

        if self.poll_outcome == POLL_PENDING:
            return PollResult(
                status=POLL_PENDING,
                code="98",
                message="Ticket em processamento (mock).",
                raw={"ticket": submission_id, "environment": self.environment},
            )

        if self.poll_outcome == POLL_REJECTED:
            return self._final(POLL_REJECTED, "2800", "Documento rejeitado (mock).", submission_id)

        return self._final(POLL_ACCEPTED, "0", "Documento aceito (mock).", submission_id)


class MockTransportAlwaysFail(MockTransport):
    """
    Transporte que SEMPRE falha tecnicamente. Usado para testar backoff
    e esgotamento de tentativas.
    """

    def _raise_technical_error(self) -> None:
        raise DeliveryError(
            "Falha técnica simulada na comunicação com a autoridade fiscal (mock).",
            code="TECH_FAIL",
            raw={"environment": self.environment},
        )

    def submit(self, *, document, signed_xml: str, credentials: SolCredentials) -> str:
        self._raise_technical_error()

    def poll_status(self, submission_id: str, *, credentials: SolCredentials) -> PollResult:
        self._raise_technical_error()
