# fiscal/services/validation.py
"""
Validações fiscais puras (sem banco, sem rede).

Regras principais:
  - RUC: 11 dígitos, prefixo 10/15/16/17/20, dígito verificador módulo 11.
  - DNI: exatamente 8 dígitos.
  - CE: 1 a 12 caracteres alfanuméricos.
  - FACTURA (e notas): cliente com RUC válido.
  - BOLETA: identidade opcional até 700.00; acima disso, obrigatória.
  - Totais: não negativos; total = gravável + imposto (tolerância 0.02);
    imposto ≈ 18% do gravável (apenas aviso).

Cada função devolve ValidationResult com TODOS os erros e avisos.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Mapping, Optional

from django.conf import settings

from fiscal.models import DocType, IdentityDocType

logger = logging.getLogger("cpe.fiscal")


TAX_ID_PREFIXES = frozenset({"10", "15", "16", "17", "20"})
TAX_ID_WEIGHTS = (5, 4, 3, 2, 7, 6, 5, 4, 3, 2)

TAX_RATE = Decimal("0.18")
TOTALS_TOLERANCE = Decimal("0.02")
RECEIPT_IDENTITY_THRESHOLD = Decimal("700.00")

PASSPORT_MAX_LENGTH = 20

# Valores aceitos como "sem documento"
NO_DOCUMENT_PLACEHOLDERS = frozenset({"", "-", "00000000"})

_ONLY_DIGITS_11 = re.compile(r"^\d{11}$")
_ONLY_DIGITS_8 = re.compile(r"^\d{8}$")
_ALNUM_1_12 = re.compile(r"^[A-Za-z0-9]{1,12}$")

# Nomes, apelidos e códigos oficiais aceitos para cada tipo de identidade
_IDENTITY_ALIASES = {
    "DNI": IdentityDocType.DNI,
    "NATIONAL_ID": IdentityDocType.DNI,
    "1": IdentityDocType.DNI,
    "RUC": IdentityDocType.RUC,
    "TAX_ID": IdentityDocType.RUC,
    "6": IdentityDocType.RUC,
    "CE": IdentityDocType.CE,
    "FOREIGN_RESIDENT_ID": IdentityDocType.CE,
    "4": IdentityDocType.CE,
    "PASAPORTE": IdentityDocType.PASAPORTE,
    "PASSPORT": IdentityDocType.PASAPORTE,
    "7": IdentityDocType.PASAPORTE,
    "CDI": IdentityDocType.CDI,
    "DIPLOMATIC_ID": IdentityDocType.CDI,
    "A": IdentityDocType.CDI,
    "SIN_RUC": IdentityDocType.SIN_RUC,
    "NON_DOMICILED": IdentityDocType.SIN_RUC,
    "0": IdentityDocType.SIN_RUC,
    "OTROS": IdentityDocType.OTROS,
    "OTHER": IdentityDocType.OTROS,
    "-": IdentityDocType.OTROS,
}


# ---------------------------------------------------------------------------
# Resultado
# ---------------------------------------------------------------------------


@dataclass
class ValidationResult:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        return self


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def normalize_identity_type(value: Any) -> Optional[IdentityDocType]:
    """Aceita nome, apelido ou código oficial. Desconhecido -> None."""
    if value is None:
        return None
    return _IDENTITY_ALIASES.get(str(value).strip().upper())


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValueError(f"Valor monetário inválido: {value!r}") from exc


def _has_identity(number: Optional[str]) -> bool:
    return (number or "").strip() not in NO_DOCUMENT_PLACEHOLDERS


def tax_id_check_digit(first_ten: str) -> int:
    """
    Dígito verificador do RUC: 11 - (soma ponderada % 11), com 10 e 11 -> 0.
    """
    total = sum(int(d) * w for d, w in zip(first_ten, TAX_ID_WEIGHTS))
    digit = 11 - (total % 11)
    if digit in (10, 11):
        return 0
    return digit


# ---------------------------------------------------------------------------
# Identidade
# ---------------------------------------------------------------------------


def validate_tax_id(value: Optional[str], *, verify_check_digit: Optional[bool] = None) -> bool:
    """
    Valida um RUC.

    verify_check_digit=None segue settings.FISCAL_SKIP_TAX_ID_CHECK_DIGIT;
    True força a verificação mesmo com o toggle ligado. Pular a verificação
    sempre gera warning.
    """
    if not value:
        return False

    clean = value.strip()
    if not _ONLY_DIGITS_11.match(clean):
        return False

    if clean[:2] not in TAX_ID_PREFIXES:
        return False

    if verify_check_digit is None:
        verify_check_digit = not getattr(settings, "FISCAL_SKIP_TAX_ID_CHECK_DIGIT", False)

    if not verify_check_digit:
        logger.warning(
            "tax_id_check_digit_skipped",
            extra={
                "event": "tax_id_validation",
                "reason": "FISCAL_SKIP_TAX_ID_CHECK_DIGIT",
                "prefix": clean[:2],
            },
        )
        return True

    return int(clean[10]) == tax_id_check_digit(clean[:10])


def validate_national_id(value: Optional[str]) -> bool:
    if not value:
        return False
    return bool(_ONLY_DIGITS_8.match(value.strip()))


def validate_foreign_resident_id(value: Optional[str]) -> bool:
    if not value:
        return False
    return bool(_ALNUM_1_12.match(value.strip()))


def validate_identity(doc_type_code: Any, number: Optional[str]) -> ValidationResult:
    result = ValidationResult()
    identity_type = normalize_identity_type(doc_type_code)
    clean = (number or "").strip()

    if identity_type in (IdentityDocType.SIN_RUC, IdentityDocType.OTROS):
        # Sem documento / não domiciliado: aceita "-" ou "00000000"
        if clean not in ("-", "00000000"):
            result.warnings.append('Para "sem documento" use "-" ou "00000000".')
        return result

    if not clean:
        result.errors.append("Número do documento de identidade é obrigatório.")
        return result

    if identity_type == IdentityDocType.RUC:
        if not validate_tax_id(clean):
            result.errors.append("RUC inválido: 11 dígitos, prefixo e dígito verificador válidos.")
    elif identity_type == IdentityDocType.DNI:
        if not validate_national_id(clean):
            result.errors.append("DNI inválido: deve ter exatamente 8 dígitos.")
    elif identity_type == IdentityDocType.CE:
        if not validate_foreign_resident_id(clean):
            result.errors.append("Carnê de estrangeiro inválido: até 12 caracteres alfanuméricos.")
    elif identity_type == IdentityDocType.PASAPORTE:
        if len(clean) > PASSPORT_MAX_LENGTH:
            result.errors.append("Passaporte inválido: entre 1 e 20 caracteres.")
    elif identity_type == IdentityDocType.CDI:
        pass
    else:
        result.warnings.append(f'Tipo de documento "{doc_type_code}" sem validação específica.')

    return result


# ---------------------------------------------------------------------------
# Requisitos por tipo de comprovante
# ---------------------------------------------------------------------------


def validate_invoice_requirements(customer_doc_type: Any, customer_doc_number: Optional[str], total: Any) -> ValidationResult:
    result = ValidationResult()

    if normalize_identity_type(customer_doc_type) != IdentityDocType.RUC:
        result.errors.append("FACTURA exige RUC do cliente como documento de identidade.")

    if not validate_tax_id(customer_doc_number):
        result.errors.append("RUC do cliente inválido para FACTURA.")

    if to_decimal(total) < 0:
        result.errors.append("Total não pode ser negativo.")

    return result


def validate_receipt_requirements(customer_doc_type: Any, customer_doc_number: Optional[str], total: Any) -> ValidationResult:
    result = ValidationResult()
    total = to_decimal(total)

    if total > RECEIPT_IDENTITY_THRESHOLD and not _has_identity(customer_doc_number):
        result.errors.append(
            f"Para valores acima de {RECEIPT_IDENTITY_THRESHOLD} o documento de identidade é obrigatório."
        )

    if _has_identity(customer_doc_number):
        result.merge(validate_identity(customer_doc_type, customer_doc_number))

    if total < 0:
        result.errors.append("Total não pode ser negativo.")

    return result


def validate_totals(taxable: Any, tax: Any, total: Any) -> ValidationResult:
    result = ValidationResult()
    taxable, tax, total = to_decimal(taxable), to_decimal(tax), to_decimal(total)

    if taxable < 0:
        result.errors.append("Valor gravável não pode ser negativo.")
    if tax < 0:
        result.errors.append("Imposto não pode ser negativo.")
    if total < 0:
        result.errors.append("Total não pode ser negativo.")

    expected_tax = taxable * TAX_RATE
    if abs(tax - expected_tax) > TOTALS_TOLERANCE:
        result.warnings.append(
            f"Imposto ({tax}) não corresponde a 18% do gravável ({expected_tax:.2f})."
        )

    expected_total = taxable + tax
    if abs(total - expected_total) > TOTALS_TOLERANCE:
        result.errors.append(
            f"Total ({total}) não corresponde a gravável + imposto ({expected_total:.2f})."
        )

    return result


def validate_for_issuance(doc_type: str, customer: Mapping[str, Any], totals: Mapping[str, Any]) -> ValidationResult:
    """
    Validação completa antes de alocar número.

    customer: {"doc_type", "doc_number", "name"}
    totals:   {"taxable", "tax", "total"}
    """
    result = ValidationResult()

    name = (customer.get("name") or "").strip()
    if len(name) < 2:
        result.errors.append("Nome do cliente é obrigatório (mínimo 2 caracteres).")

    customer_doc_type = customer.get("doc_type")
    customer_doc_number = customer.get("doc_number")

    try:
        total = to_decimal(totals.get("total"))
        taxable = to_decimal(totals.get("taxable"))
        tax = to_decimal(totals.get("tax"))
    except ValueError as exc:
        result.errors.append(str(exc))
        return result

    if doc_type in (DocType.INVOICE, DocType.CREDIT_NOTE, DocType.DEBIT_NOTE):
        result.merge(validate_invoice_requirements(customer_doc_type, customer_doc_number, total))
    elif doc_type == DocType.RECEIPT:
        result.merge(validate_receipt_requirements(customer_doc_type, customer_doc_number, total))
    else:
        result.errors.append(f"Tipo de documento {doc_type} não pode ser emitido diretamente.")

    result.merge(validate_totals(taxable, tax, total))
    return result
