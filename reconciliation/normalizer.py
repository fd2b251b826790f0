"""Finding normalizer: overrides, deduplication and macro/micro netting.

Upstream auditors report the same money more than once: a specific finding
("Sutura cobrada aparte $200.000") and an aggregate one ("OPACIDAD GLOBAL
MATERIALES $800.000") that already includes it. Before balancing, the
aggregate is reduced to the remainder it does not share with specific
findings, so no peso is counted twice.
"""

import re
from typing import Iterable, List, Optional

from core.observability.logging import get_logger
from models.canonical import Finding, FindingAction, FindingCategory
from reconciliation.families import families_in, family_of, normalize_text
from reconciliation.reconstruct import RECONSTRUCTED_SUFFIX, is_closing_rule

logger = get_logger(__name__)

NET_SUFFIX = " (Net / Remainder)"

MACRO_PATTERN = re.compile(r"GLOBAL|TOTAL|ESTRUCTURAL|CONSOLIDAD|AGRUPAD")


# =============================================================================
# Predicates
# =============================================================================

def base_label(finding: Finding) -> str:
    """Normalized label without the suffixes this engine appends."""
    label = finding.label
    for suffix in (NET_SUFFIX, RECONSTRUCTED_SUFFIX):
        label = label.replace(suffix, "")
    return normalize_text(label)


def gross_of(finding: Finding) -> int:
    return finding.gross_amount if finding.gross_amount is not None else finding.amount


def is_macro(finding: Finding, peers: Iterable[Finding] = ()) -> bool:
    """Aggregate finding.

    By label: global/total wording, or several charge families named.
    By evidence: another finding in `peers` cites everything this one cites
    plus more, so this one is the coarser claim over the same lines.
    """
    label = base_label(finding)
    if MACRO_PATTERN.search(label) or len(families_in(label)) >= 2:
        return True

    refs = set(finding.evidence_refs)
    return bool(refs) and any(
        peer is not finding and refs < set(peer.evidence_refs)
        for peer in peers
    )


def is_duplicate(first: Finding, second: Finding) -> bool:
    """Same fact reported twice: same positive amount and shared evidence."""
    amount = gross_of(first)
    if amount <= 0 or amount != gross_of(second):
        return False
    if first.evidence_refs or second.evidence_refs:
        return bool(set(first.evidence_refs) & set(second.evidence_refs))
    return base_label(first) == base_label(second)


def subsumes(macro: Finding, micro: Finding) -> bool:
    """Whether `macro` already includes the money of `micro`."""
    if micro.category == FindingCategory.INFO or micro.amount <= 0:
        return False

    if set(macro.evidence_refs) & set(micro.evidence_refs):
        return True

    macro_label = base_label(macro)
    micro_label = base_label(micro)
    if macro_label and micro_label and (macro_label in micro_label or micro_label in macro_label):
        return True

    macro_families = families_in(macro_label)
    if not macro_families:
        # Names no family: the aggregate spans the whole bill
        return True

    micro_family = family_of(micro_label)
    return micro_family is not None and micro_family in macro_families


# =============================================================================
# Passes
# =============================================================================

def _sanitize(finding: Finding) -> Finding:
    if finding.amount < 0:
        return finding.model_copy(update={"amount": 0})
    return finding


def _apply_closing_rule(finding: Finding) -> Finding:
    if not is_closing_rule(finding.rationale):
        return finding
    if finding.category == FindingCategory.Z and finding.action == FindingAction.SOLICITAR_ACLARACION:
        return finding
    logger.info(
        "Closing rule forces opaque category",
        extra_fields={"finding": finding.id, "from": finding.category.value},
    )
    return finding.model_copy(update={
        "category": FindingCategory.Z,
        "action": FindingAction.SOLICITAR_ACLARACION,
    })


def _preferred(current: Finding, candidate: Finding) -> Finding:
    """Reconstructed beats plain, then more evidence wins, then the first seen."""
    if candidate.reconstructed != current.reconstructed:
        return candidate if candidate.reconstructed else current
    if len(candidate.evidence_refs) > len(current.evidence_refs):
        return candidate
    return current


def _dedup_pass(findings: List[Finding]) -> List[Finding]:
    kept: List[Finding] = []
    for finding in findings:
        for pos, existing in enumerate(kept):
            if is_duplicate(existing, finding):
                kept[pos] = _preferred(existing, finding)
                logger.debug(
                    "Duplicate finding dropped",
                    extra_fields={"kept": kept[pos].id, "amount": gross_of(finding)},
                )
                break
        else:
            kept.append(finding)
    return kept


def deduplicate(findings: List[Finding]) -> List[Finding]:
    """Collapse duplicates until none remain. Kept findings hold the first position."""
    result = list(findings)
    while True:
        reduced = _dedup_pass(result)
        if len(reduced) == len(result):
            return reduced
        result = reduced


def _net_macro(macro: Finding, micros: List[Finding]) -> Finding:
    subsumed = [m for m in micros if subsumes(macro, m)]
    if not subsumed:
        return macro

    gross = gross_of(macro)
    netted = max(0, gross - sum(m.amount for m in subsumed))
    label = macro.label if macro.label.endswith(NET_SUFFIX) else macro.label + NET_SUFFIX

    logger.info(
        "Macro finding netted",
        extra_fields={
            "finding": macro.id,
            "gross": gross,
            "net": netted,
            "subsumed": len(subsumed),
        },
    )
    return macro.model_copy(update={"amount": netted, "gross_amount": gross, "label": label})


# =============================================================================
# Entry Point
# =============================================================================

def net_and_reclassify(findings: Optional[List[Finding]]) -> List[Finding]:
    """Sanitize, reclassify, deduplicate and net findings. Returns copies.

    Running it again on its own output returns the same findings.
    """
    if not findings:
        return []

    prepared = [_apply_closing_rule(_sanitize(f.model_copy(deep=True))) for f in findings]
    unique = deduplicate(prepared)

    macro_flags = [is_macro(f, unique) for f in unique]
    micros = [f for f, macro in zip(unique, macro_flags) if not macro]
    result = [_net_macro(f, micros) if macro else f for f, macro in zip(unique, macro_flags)]

    logger.info(
        "Findings normalized",
        extra_fields={
            "input": len(findings),
            "output": len(result),
            "macros": len(result) - len(micros),
        },
    )
    return result
