"""Forensic rule set V1.

Each rule pairs a predicate over (classified item, bill context) with the
finding it produces. Rules are plain data so rule sets can be swapped.
"""

from dataclasses import dataclass
from typing import Callable, List

from forensic_rules.models import AuditContext, ForensicFinding, ForensicSeverity
from models.canonical import TaxonomyResult

GRUPO_HOTELERA = "HOTELERA"
GRUPO_PABELLON = "PABELLON"


@dataclass(frozen=True)
class ForensicRule:
    id: str
    description: str
    when: Callable[[TaxonomyResult, AuditContext], bool]
    then: Callable[[TaxonomyResult, AuditContext], ForensicFinding]


# =============================================================================
# R-HOT-01: Inherent to bed-day
# =============================================================================

def _hotelera_when(item: TaxonomyResult, ctx: AuditContext) -> bool:
    # The bed-day charge itself is never flagged
    return (
        ctx.existe_dia_cama
        and item.atributos.potencial_inherente_dia_cama
        and item.grupo != GRUPO_HOTELERA
    )


def _hotelera_then(item: TaxonomyResult, ctx: AuditContext) -> ForensicFinding:
    return ForensicFinding(
        code="DUPLICIDAD_HOTELERA",
        item_id=item.id,
        rule_id="R-HOT-01",
        severity=ForensicSeverity.HIGH,
        message=f'Ítem "{item.item_original}" inherente al Día Cama, ya cobrado en hotelería.',
        grupo=item.grupo,
        sub_familia=item.sub_familia,
        atributos_relevantes=["potencial_inherente_dia_cama"],
    )


# =============================================================================
# R-PAB-01: Inherent to operating-room fee
# =============================================================================

def _pabellon_when(item: TaxonomyResult, ctx: AuditContext) -> bool:
    return (
        ctx.existe_pabellon
        and item.atributos.potencial_inherente_pabellon
        and item.grupo != GRUPO_PABELLON
    )


def _pabellon_then(item: TaxonomyResult, ctx: AuditContext) -> ForensicFinding:
    return ForensicFinding(
        code="DUPLICIDAD_PABELLON",
        item_id=item.id,
        rule_id="R-PAB-01",
        severity=ForensicSeverity.HIGH,
        message=f'Ítem "{item.item_original}" incluido en el Derecho de Pabellón.',
        grupo=item.grupo,
        sub_familia=item.sub_familia,
        atributos_relevantes=["potencial_inherente_pabellon"],
    )


# =============================================================================
# R-ADM-01: Non-clinical charge
# =============================================================================

def _no_clinico_when(item: TaxonomyResult, ctx: AuditContext) -> bool:
    return item.atributos.potencial_no_clinico


def _no_clinico_then(item: TaxonomyResult, ctx: AuditContext) -> ForensicFinding:
    return ForensicFinding(
        code="CARGO_NO_CLINICO",
        item_id=item.id,
        rule_id="R-ADM-01",
        severity=ForensicSeverity.WARN,
        message=f'Ítem "{item.item_original}" clasificado como administrativo o no clínico.',
        grupo=item.grupo,
        sub_familia=item.sub_familia,
        atributos_relevantes=["potencial_no_clinico"],
    )


FORENSIC_RULES_V1: List[ForensicRule] = [
    ForensicRule(
        id="R-HOT-01",
        description="Ítems inherentes al día cama cuando existe cargo de hotelería.",
        when=_hotelera_when,
        then=_hotelera_then,
    ),
    ForensicRule(
        id="R-PAB-01",
        description="Ítems inherentes al derecho de pabellón.",
        when=_pabellon_when,
        then=_pabellon_then,
    ),
    ForensicRule(
        id="R-ADM-01",
        description="Cargos administrativos o no clínicos.",
        when=_no_clinico_when,
        then=_no_clinico_then,
    ),
]
