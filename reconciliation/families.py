"""Charge families and text normalization for bill glosas.

Maps free-text labels (PAM glosas, bill item descriptions, finding labels)
to charge families, decides whether a bill item may be part of a lump sum
labelled with a given glosa, and recognises the irregular billing practices
that turn an opaque charge into a confirmed improper one.
"""

import re
import unicodedata
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional


def normalize_text(value) -> str:
    """Uppercase, strip accents, and collapse punctuation into single spaces."""
    decomposed = unicodedata.normalize("NFD", str(value or ""))
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return re.sub(r"[^A-Z0-9]+", " ", stripped.upper()).strip()


# =============================================================================
# Charge Families
# =============================================================================

class ChargeFamily(str, Enum):
    MEDICAMENTOS = "MEDICAMENTOS"
    MATERIALES = "MATERIALES"
    ESTADA = "ESTADA"
    PABELLON = "PABELLON"
    RESIDUAL = "RESIDUAL"


# Order matters: a glosa naming several families is resolved to the first one.
FAMILY_PATTERNS = {
    ChargeFamily.MEDICAMENTOS: re.compile(r"MEDICAMENT|FARMA|DROGA"),
    ChargeFamily.MATERIALES: re.compile(r"MATERIAL|INSUMO"),
    ChargeFamily.ESTADA: re.compile(r"DIA CAMA|HABITACION|ESTANCIA|ESTADA"),
    ChargeFamily.PABELLON: re.compile(r"QUIRURGIC|PABELLON|CIRUGIA|INTERVENCION|SURGERY"),
    ChargeFamily.RESIDUAL: re.compile(
        r"GASTOS? NO CUBIERTO|PRESTACION(ES)? NO CONTEMPLADA|VARIOS|AJUSTE|DIFERENCIA"
    ),
}

NURSING_PATTERN = re.compile(
    r"NURSING|ENFERMERIA|SIGNOS VITALES|CURACION|INSTALACION.*VIA|FLEBOCLISIS|PUNCION"
    r"|TOMA.DE.MUESTRA|ADMINISTRACION.*MEDICAMENTOS|HIGIENIZACION"
)

HOSPITALITY_PATTERN = re.compile(
    r"SET.*ASEO|PANTUFLA|CEPILLO|JABON|CALZON|TERMOMETRO|CONFORT|TELEVISOR|ESTACIONAMIENTO"
    r"|ALIMENTAC|KITS?.HIGIENE|PASTA.DENTAL|PEINETA|BATA|CAMISOLA|FRAZADA|ALMOHADA"
)

ADMIN_PATTERN = re.compile(
    r"ADMINISTRATIVO|CARGOS.GENERALES|OTROS|EPP|SEGURIDAD|INFRAESTRUCTURA"
    r"|COSTO.OPERACIONAL|INSUMO.INSTITUCIONAL"
)

NURSING_UNBUNDLING_PATTERN = re.compile(r"INSTALACION.*VIA|FLEBOCLISIS|PUNCION|SIGNOS VITALES|CURACION")


def families_in(text: str) -> List[ChargeFamily]:
    """All charge families a label names, in declaration order."""
    normalized = normalize_text(text)
    return [family for family, pattern in FAMILY_PATTERNS.items() if pattern.search(normalized)]


def family_of(text: str) -> Optional[ChargeFamily]:
    found = families_in(text)
    return found[0] if found else None


def item_family(description: str, section: Optional[str] = None) -> Optional[ChargeFamily]:
    """Family of a bill item: its description decides, its section breaks ties."""
    return family_of(description) or family_of(section or "")


def is_compatible(hint: Optional[str], description: str, section: Optional[str] = None) -> bool:
    """Whether a bill item may belong to a lump sum labelled `hint`."""
    glosa = normalize_text(hint)
    if not glosa:
        return True

    desc = normalize_text(description)
    section_text = normalize_text(section)
    hint_family = family_of(glosa)
    family = item_family(desc, section_text)

    if hint_family == ChargeFamily.MEDICAMENTOS:
        return family == ChargeFamily.MEDICAMENTOS
    if hint_family == ChargeFamily.MATERIALES:
        return family == ChargeFamily.MATERIALES
    if hint_family == ChargeFamily.ESTADA:
        return family == ChargeFamily.ESTADA or bool(NURSING_PATTERN.search(desc))
    if hint_family == ChargeFamily.PABELLON:
        return bool(FAMILY_PATTERNS[ChargeFamily.PABELLON].search(f"{section_text} {desc}"))
    if hint_family == ChargeFamily.RESIDUAL:
        return bool(
            HOSPITALITY_PATTERN.search(desc)
            or ADMIN_PATTERN.search(desc)
            or NURSING_UNBUNDLING_PATTERN.search(desc)
        )

    if not section_text:
        return False
    return glosa in section_text or section_text in glosa


# =============================================================================
# Irregular Billing Practices
# =============================================================================

@dataclass(frozen=True)
class IrregularPractice:
    code: str
    title: str
    norm: str
    hard: bool = True


NURSING_UNBUNDLING = IrregularPractice(
    code="PRACTICA_5",
    title="Cobro de enfermería básica ya incluida en el Día Cama",
    norm="Circular IF-319: procedimientos de enfermería forman parte del valor integral del Día Cama",
)
INTRAOP_MEDICATION = IrregularPractice(
    code="PRACTICA_3",
    title="Fármacos de pabellón cobrados aparte",
    norm="Norma Técnica IF: agentes anestésicos son parte del Derecho de Pabellón",
)
SURGICAL_UNBUNDLING = IrregularPractice(
    code="PRACTICA_2",
    title="Desagregación de materiales de pabellón",
    norm="Aranceles Isapre/Fonasa: insumos básicos incluidos en el Derecho de Pabellón",
)
HOSPITALITY = IrregularPractice(
    code="PRACTICA_4",
    title="Cobro de hotelería no clínica como atención médica",
    norm="Criterio Superintendencia de Salud: insumos de confort personal no se bonifican",
)
GENERIC_OPACITY = IrregularPractice(
    code="PRACTICA_6",
    title="Uso de glosas genéricas para cargar costos opacos",
    norm="Ley 20.584: derecho del paciente a conocer el desglose de su cuenta",
    hard=False,
)

_PRACTICE_PATTERNS = [
    (NURSING_UNBUNDLING_PATTERN, NURSING_UNBUNDLING),
    (re.compile(
        r"PROPOFOL|FENTANIL|SEVOFLURANO|LIDOCAINA|BUPIVACAINA|ROCURONIO|VECURONIO|MIDAZOLAM"
        r"|REMIFENTANIL|SUGAMMADEX|ANESTESIA"
    ), INTRAOP_MEDICATION),
    (re.compile(
        r"SUTURA|GASA|DRENAJE|BISTURI|TUBO.ENDOTRAQUEAL|ESTILETE|CANULA.MAYO|CIRCUITO.ANESTESIA"
        r"|DELANTAL.ESTERIL|PAQUETE.CIRUGIA|SABANA.QUIRURGICA|MANGA.LAPAROSCOPICA"
    ), SURGICAL_UNBUNDLING),
    (re.compile(
        r"SET.*ASEO|PANTUFLA|CEPILLO|JABON|CALZON|TERMOMETRO|CONFORT|TELEVISOR|ESTACIONAMIENTO|ALIMENTAC"
    ), HOSPITALITY),
]


def classify_item_norm(description: str) -> IrregularPractice:
    """Irregular practice a bill item evidences. Generic opacity when none applies."""
    desc = normalize_text(description)
    for pattern, practice in _PRACTICE_PATTERNS:
        if pattern.search(desc):
            return practice
    return GENERIC_OPACITY
