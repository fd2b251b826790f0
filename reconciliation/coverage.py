"""Contract coverage check.

A benefit the health plan covers at 100% should leave no copayment. When a
finding still attributes copayment to such a benefit and nothing explains
it arithmetically, the charge is opaque.
"""

from typing import List, Optional

from core.observability.logging import get_logger
from models.canonical import Contract, CoverageRule, Finding, FindingAction, FindingCategory
from reconciliation.families import normalize_text

logger = get_logger(__name__)

FULL_COVERAGE_PCT = 100.0


def matching_rule(finding: Finding, contract: Contract) -> Optional[CoverageRule]:
    """First fully covered rule the finding's label or evidence refers to."""
    label = normalize_text(finding.label)
    evidence = normalize_text(" ".join(finding.evidence_refs))

    for rule in contract.rules:
        if rule.bonus_pct < FULL_COVERAGE_PCT:
            continue
        code = normalize_text(rule.code)
        if code and (code in label.split() or code in evidence.split()):
            return rule
        description = normalize_text(rule.description)
        if description and label and (description in label or label in description):
            return rule
    return None


def apply_contract_coverage(findings: List[Finding], contract: Optional[Contract]) -> List[Finding]:
    """Force unexplained copayment on fully covered benefits to Z. Returns copies."""
    if contract is None or not contract.rules:
        return [f.model_copy(deep=True) for f in findings]

    output = []
    for finding in findings:
        eligible = (
            finding.category not in (FindingCategory.A, FindingCategory.Z)
            and not finding.reconstructed
            and finding.amount > 0
        )
        rule = matching_rule(finding, contract) if eligible else None
        if rule is None:
            output.append(finding.model_copy(deep=True))
            continue

        logger.info(
            "Copayment on fully covered benefit",
            extra_fields={"finding": finding.id, "rule": rule.code or rule.description},
        )
        output.append(finding.model_copy(deep=True, update={
            "category": FindingCategory.Z,
            "action": FindingAction.SOLICITAR_ACLARACION,
            "rationale": (
                f"{finding.rationale}\n\nCoverage: plan covers "
                f"'{rule.description or rule.code}' at {rule.bonus_pct:g}%; "
                f"the copayment is unexplained."
            ),
        }))
    return output
