"""Reconstruction pass over opaque findings.

Findings whose label is a generic or clinical aggregate glosa ("GASTOS NO
CUBIERTOS", "MATERIALES", code 3201001, ...) are broken down into the bill
items that compose them. A successful breakdown promotes the finding: to
Confirmed-Improper when a matched item evidences an irregular practice,
otherwise to Opaque with the opacity proven arithmetically.
"""

import re
from typing import List, Optional

from core.observability.logging import get_logger, with_correlation
from models.canonical import ExtractedAccount, Finding, FindingAction, FindingCategory
from reconciliation.families import classify_item_norm, normalize_text
from reconciliation.subset_sum import ArithmeticReconstructor

logger = get_logger(__name__)

RECONSTRUCTED_SUFFIX = " (Reconstructed)"

H_UNBUNDLING = "H_UNBUNDLING_IF319"
H_OPACITY = "H_OPACIDAD_ESTRUCTURAL"

# Multi-domain findings are never broken down: reconstruction is per PAM line.
AGGREGATE_PATTERN = re.compile(
    r"MEDICAMENT.*MATERIAL|MATERIAL.*MEDICAMENT|INSUMO.*FARMA|FARMA.*INSUMO|TOTAL"
)

TRIGGER_PATTERN = re.compile(
    r"PRESTACION(ES)? NO CONTEMPLADA|GASTOS? NO CUBIERTO|VARIOS|AJUSTE|DIFERENCIA"
    r"|MEDICAMENT|MATERIAL|INSUMO|PABELLON|DIA CAMA|HABITACION|3201001|3201002"
)

# Statutory closing rule: Ley 20.584 applied to a genuinely indeterminate charge.
CLOSING_RULE_PATTERN = re.compile(r"INDETERMINACION|NO PERMITE CLASIFICAR|LEY 20 ?584")


def is_closing_rule(rationale: str) -> bool:
    return bool(CLOSING_RULE_PATTERN.search(normalize_text(rationale)))


def is_reconstruction_trigger(finding: Finding) -> bool:
    label = normalize_text(finding.label)
    if AGGREGATE_PATTERN.search(label):
        return False
    return finding.amount > 0 and bool(TRIGGER_PATTERN.search(label))


def reconstruct_all_opaque(
    account: Optional[ExtractedAccount],
    findings: List[Finding],
    reconstructor: Optional[ArithmeticReconstructor] = None,
) -> List[Finding]:
    """Break opaque findings down into bill items, in the order given.

    Returns a new list. Findings that are not triggers, or whose amount no
    subset of unused items explains, are passed through unchanged.
    """
    if account is None or not account.sections:
        return list(findings)

    if reconstructor is None:
        reconstructor = ArithmeticReconstructor(account)

    output = []
    for finding in findings:
        if not is_reconstruction_trigger(finding):
            output.append(finding)
            continue

        with with_correlation(finding_id=finding.id or None):
            result = reconstructor.find_matches(finding.amount, finding.label)

            if not result.success or not result.matched_items:
                logger.debug("Finding left opaque", extra_fields={"amount": finding.amount})
                output.append(finding)
                continue

            practices = [classify_item_norm(item.description) for item in result.matched_items]
            hard = [p for p in practices if p.hard]

            if hard and not is_closing_rule(finding.rationale):
                category = FindingCategory.A
                action = FindingAction.IMPUGNAR
                hypothesis = H_UNBUNDLING
            else:
                category = FindingCategory.Z
                action = FindingAction.SOLICITAR_ACLARACION
                hypothesis = H_OPACITY

            lines = [
                f"- {item.description}: ${item_amount(item, result.strategy)} ({practice.title})"
                for item, practice in zip(result.matched_items, practices)
            ]
            note = (
                f"\n\nReconstruction: the amount is explained exactly by bill items. "
                f"{result.rationale}.\n" + "\n".join(lines)
            )

            promoted = finding.model_copy(update={
                "category": category,
                "action": action,
                "label": finding.label + RECONSTRUCTED_SUFFIX,
                "rationale": finding.rationale + note,
                "hypothesis_parent": hypothesis,
                "reconstructed": True,
                "evidence_refs": list(finding.evidence_refs)
                + [f"ITEM INDEX: {uid}" for uid in result.matched_item_ids],
            })
            logger.info(
                "Finding reconstructed",
                extra_fields={
                    "amount": finding.amount,
                    "category": category.value,
                    "items": len(result.matched_items),
                },
            )
            output.append(promoted)

    return output


def item_amount(item, strategy: Optional[str]) -> int:
    if strategy == "copago":
        return item.copago or 0
    return item.total
