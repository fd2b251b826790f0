"""Canonical data models for clinical bill auditing.

These models represent the extracted clinical bill (cuenta clínica), the
findings produced upstream by LLM or rule-based auditors, and the balance
the reconciliation engine computes from them.

All amounts are integer Chilean pesos. Upstream JSON is loosely typed, so
every amount and category goes through a parser that sanitizes instead of
failing.
"""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from enum import Enum
from typing import Iterator, List, Optional, Tuple

from pydantic import BaseModel, Field, ConfigDict
from pydantic.functional_validators import BeforeValidator
from typing_extensions import Annotated


# =============================================================================
# Value Parsers (handle various input formats from LLM extraction)
# =============================================================================

_THOUSANDS_DOTS = re.compile(r"^\d{1,3}(\.\d{3})+$")


def _round_pesos(value: Decimal) -> int:
    if not value.is_finite():
        raise InvalidOperation(f"Not a finite amount: {value}")
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def _parse_amount(value) -> int:
    """Parse a peso amount. Missing, negative or unparseable values become 0.

    Accepts "$1.234.567", "1.234,50", "12839", 12839.6 and Decimal values.
    """
    if value is None or isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value if value > 0 else 0
    if isinstance(value, (float, Decimal)):
        try:
            parsed = _round_pesos(Decimal(str(value)))
        except InvalidOperation:
            return 0
        return parsed if parsed > 0 else 0
    if isinstance(value, str):
        s = value.strip().replace("$", "").replace(" ", "").upper().replace("CLP", "")
        if s == "" or s.startswith("-") or (s.startswith("(") and s.endswith(")")):
            return 0
        if "," in s:
            # Chilean decimal comma: 1.234,50
            s = s.replace(".", "").replace(",", ".")
        elif _THOUSANDS_DOTS.match(s):
            s = s.replace(".", "")
        try:
            parsed = _round_pesos(Decimal(s))
        except InvalidOperation:
            return 0
        return parsed if parsed > 0 else 0
    return 0


def _parse_optional_amount(value) -> Optional[int]:
    """Like _parse_amount, but a missing value stays missing."""
    if value is None or (isinstance(value, str) and value.strip() == ""):
        return None
    return _parse_amount(value)


def _parse_text(value) -> str:
    if value is None:
        return ""
    return str(value)


def _parse_optional_text(value) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip()
    return s or None


def _parse_str_list(value) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(v) for v in value if v is not None]


# Annotated types for automatic parsing
Amount = Annotated[int, BeforeValidator(_parse_amount)]
OptionalAmount = Annotated[Optional[int], BeforeValidator(_parse_optional_amount)]
Text = Annotated[str, BeforeValidator(_parse_text)]
OptionalText = Annotated[Optional[str], BeforeValidator(_parse_optional_text)]
StrList = Annotated[List[str], BeforeValidator(_parse_str_list)]


# =============================================================================
# Base Model
# =============================================================================

class CanonicalBase(BaseModel):
    """Base model for all canonical data structures."""
    model_config = ConfigDict(populate_by_name=True)


# =============================================================================
# Clinical Bill (Cuenta Clínica)
# =============================================================================

class BillingItem(CanonicalBase):
    """One line of the clinical bill. Never mutated once extracted."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    index: OptionalText = None
    description: Text = ""
    quantity: Optional[float] = None
    unit_price: OptionalAmount = Field(None, alias="unitPrice")
    total: Amount = 0
    copago: OptionalAmount = None
    section: OptionalText = None


class BillSection(CanonicalBase):
    """A labelled section of the bill (e.g. "MEDICAMENTOS", "PABELLON")."""
    category: Text = ""
    items: List[BillingItem] = Field(default_factory=list)
    section_total: OptionalAmount = Field(None, alias="sectionTotal")


class ExtractedAccount(CanonicalBase):
    """The full clinical bill as extracted from the clinic's document."""
    clinic_name: OptionalText = Field(None, alias="clinicName")
    patient_name: OptionalText = Field(None, alias="patientName")
    invoice_number: OptionalText = Field(None, alias="invoiceNumber")
    sections: List[BillSection] = Field(default_factory=list)
    clinic_stated_total: OptionalAmount = Field(None, alias="clinicStatedTotal")
    item_count: Optional[int] = Field(None, alias="totalItems")

    def iter_items(self) -> Iterator[Tuple[str, str, BillingItem]]:
        """Yield (item_uid, section_label, item) in document order.

        The uid is the item's own index when it has one, otherwise its
        position, so repeated identical lines stay distinct.
        """
        for s_idx, section in enumerate(self.sections):
            for i_idx, item in enumerate(section.items):
                uid = item.index if item.index is not None else f"s{s_idx}:i{i_idx}"
                yield uid, item.section or section.category, item

    def items_sum(self) -> int:
        return sum(item.total for section in self.sections for item in section.items)

    def actual_item_count(self) -> int:
        return sum(len(section.items) for section in self.sections)


# =============================================================================
# Findings
# =============================================================================

class FindingCategory(str, Enum):
    """Balance bucket a finding belongs to."""
    A = "A"        # Confirmed-Improper
    B = "B"        # Controversial
    Z = "Z"        # Opaque-Indeterminate
    INFO = "INFO"  # Informational, never balanced

    @classmethod
    def parse(cls, value) -> "FindingCategory":
        """Map loosely typed upstream labels to a category. Unknown means opaque."""
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().upper()
        return _CATEGORY_ALIASES.get(key, cls.Z)


_CATEGORY_ALIASES = {
    "A": FindingCategory.A,
    "CONFIRMED": FindingCategory.A,
    "CONFIRMADO": FindingCategory.A,
    "IMPROCEDENTE": FindingCategory.A,
    "B": FindingCategory.B,
    "CONTROVERSIAL": FindingCategory.B,
    "CONTROVERSIA": FindingCategory.B,
    "Z": FindingCategory.Z,
    "K": FindingCategory.Z,
    "OPAQUE": FindingCategory.Z,
    "OPACO": FindingCategory.Z,
    "INDETERMINATE": FindingCategory.Z,
    "INDETERMINADO": FindingCategory.Z,
    "OK": FindingCategory.INFO,
    "INFO": FindingCategory.INFO,
    "INFORMATIONAL": FindingCategory.INFO,
}


class FindingAction(str, Enum):
    IMPUGNAR = "IMPUGNAR"
    SOLICITAR_ACLARACION = "SOLICITAR_ACLARACION"

    @classmethod
    def parse(cls, value) -> "FindingAction":
        if isinstance(value, cls):
            return value
        key = str(value or "").strip().upper()
        return cls.IMPUGNAR if key == cls.IMPUGNAR.value else cls.SOLICITAR_ACLARACION


CategoryValue = Annotated[FindingCategory, BeforeValidator(FindingCategory.parse)]
ActionValue = Annotated[FindingAction, BeforeValidator(FindingAction.parse)]


class Finding(CanonicalBase):
    """An audit finding attributing part of the copayment to a category."""
    id: Text = ""
    category: CategoryValue = FindingCategory.Z
    amount: Amount = 0
    label: Text = ""
    rationale: Text = ""
    action: ActionValue = FindingAction.SOLICITAR_ACLARACION
    hypothesis_parent: OptionalText = Field(None, alias="hypothesisParent")
    evidence_refs: StrList = Field(default_factory=list, alias="evidenceRefs")
    reconstructed: bool = False
    gross_amount: OptionalAmount = Field(None, alias="grossAmount")

    @property
    def is_balanced(self) -> bool:
        """INFO findings never count towards the balance."""
        return self.category != FindingCategory.INFO


# =============================================================================
# Rule Auditor Input (taxonomy collaborator output)
# =============================================================================

class TaxonomyAttributes(CanonicalBase):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    potencial_inherente_dia_cama: bool = False
    potencial_inherente_pabellon: bool = False
    potencial_no_clinico: bool = False


class TaxonomyResult(CanonicalBase):
    """A bill item already classified into a group and sub-family."""
    id: Text = ""
    item_original: Text = ""
    grupo: Text = ""
    sub_familia: Text = ""
    atributos: TaxonomyAttributes = Field(default_factory=TaxonomyAttributes)
    confidence: float = 0.0
    amount: OptionalAmount = None


# =============================================================================
# Health-Plan Contract
# =============================================================================

class CoverageRule(CanonicalBase):
    code: OptionalText = None
    description: Text = ""
    bonus_pct: float = Field(0.0, alias="bonusPct")
    cap_amount: OptionalAmount = Field(None, alias="capAmount")
    cap_unit: OptionalText = Field(None, alias="capUnit")


class Contract(CanonicalBase):
    """Read-only coverage table of the patient's health plan."""
    plan_name: OptionalText = Field(None, alias="planName")
    rules: List[CoverageRule] = Field(default_factory=list)


# =============================================================================
# Engine Outputs
# =============================================================================

class ReconstructionResult(CanonicalBase):
    """Outcome of one subset-sum reconstruction attempt."""
    matched_items: List[BillingItem] = Field(default_factory=list)
    matched_item_ids: List[str] = Field(default_factory=list)
    unmatched_amount: int = 0
    success: bool = False
    strategy: Optional[str] = None
    nodes_visited: int = 0
    exhausted: bool = False
    rationale: str = ""


class Balance(CanonicalBase):
    """Partition of the declared copayment into four buckets."""
    confirmed: int = Field(0, alias="A")
    controversial: int = Field(0, alias="B")
    opaque: int = Field(0, alias="Z")
    legitimate: int = Field(0, alias="OK")
    total: int = Field(0, alias="TOTAL")

    @property
    def attributed(self) -> int:
        return self.confirmed + self.controversial + self.opaque

    def is_closed(self) -> bool:
        return self.attributed + self.legitimate == self.total
