"""Forensic auditor: applies a rule set to every classified item.

Exposes:
- ForensicAuditor(rules).perform_audit(items) -> AuditResult
- to_findings(result, items) -> list[Finding] for the reconciliation pipeline
"""

import time
from typing import Dict, List, Optional

from core.observability.logging import get_logger
from core.observability.metrics import record_processing_time
from forensic_rules.models import AuditContext, AuditResult, AuditStats, ForensicSeverity
from forensic_rules.rules import FORENSIC_RULES_V1, GRUPO_HOTELERA, GRUPO_PABELLON, ForensicRule
from models.canonical import Finding, FindingAction, FindingCategory, TaxonomyResult

logger = get_logger(__name__)


class ForensicAuditor:
    """Runs every rule against every item. All violations are kept."""

    def __init__(self, rules: Optional[List[ForensicRule]] = None):
        self.rules = list(rules) if rules is not None else list(FORENSIC_RULES_V1)

    @staticmethod
    def build_context(items: List[TaxonomyResult]) -> AuditContext:
        return AuditContext(
            existe_dia_cama=any(item.grupo == GRUPO_HOTELERA for item in items),
            existe_pabellon=any(item.grupo == GRUPO_PABELLON for item in items),
        )

    def perform_audit(self, items: List[TaxonomyResult]) -> AuditResult:
        started = time.perf_counter()
        context = self.build_context(items)

        findings = []
        flagged = set()
        for item in items:
            for rule in self.rules:
                if rule.when(item, context):
                    findings.append(rule.then(item, context))
                    flagged.add(item.id)

        result = AuditResult(
            context=context,
            findings=findings,
            stats=AuditStats(
                total_items=len(items),
                total_findings=len(findings),
                items_with_findings=len(flagged),
            ),
        )

        record_processing_time("rules", (time.perf_counter() - started) * 1000)
        logger.info(
            "Rule audit complete",
            extra_fields={
                "items": result.stats.total_items,
                "findings": result.stats.total_findings,
                "existe_dia_cama": context.existe_dia_cama,
                "existe_pabellon": context.existe_pabellon,
            },
        )
        return result


_SEVERITY_CATEGORY = {
    ForensicSeverity.HIGH: (FindingCategory.A, FindingAction.IMPUGNAR, "H_PRACTICA_IRREGULAR"),
    ForensicSeverity.WARN: (FindingCategory.B, FindingAction.SOLICITAR_ACLARACION, "H_CONTROVERSIA"),
    ForensicSeverity.INFO: (FindingCategory.INFO, FindingAction.SOLICITAR_ACLARACION, None),
}


def to_findings(result: AuditResult, items: List[TaxonomyResult]) -> List[Finding]:
    """Map forensic findings to balance findings, taking amounts from the items."""
    by_id: Dict[str, TaxonomyResult] = {item.id: item for item in items}

    findings = []
    for ff in result.findings:
        category, action, hypothesis = _SEVERITY_CATEGORY[ff.severity]
        item = by_id.get(ff.item_id)
        findings.append(Finding(
            id=f"{ff.rule_id}:{ff.item_id}",
            category=category,
            amount=(item.amount or 0) if item is not None else 0,
            label=item.item_original if item is not None else ff.code,
            rationale=f"[{ff.rule_id}] {ff.code}: {ff.message}",
            action=action,
            hypothesis_parent=hypothesis,
            evidence_refs=[f"ITEM:{ff.item_id}"],
        ))
    return findings
