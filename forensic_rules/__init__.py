"""Rule-based forensic auditor over classified bill items.

Usage:
    from forensic_rules import ForensicAuditor, to_findings

    result = ForensicAuditor().perform_audit(classified_items)
    findings = to_findings(result, classified_items)
"""

from forensic_rules.models import (
    AuditContext,
    AuditResult,
    AuditStats,
    ForensicFinding,
    ForensicSeverity,
)
from forensic_rules.rules import FORENSIC_RULES_V1, ForensicRule
from forensic_rules.engine import ForensicAuditor, to_findings

__all__ = [
    "AuditContext",
    "AuditResult",
    "AuditStats",
    "ForensicFinding",
    "ForensicSeverity",
    "FORENSIC_RULES_V1",
    "ForensicRule",
    "ForensicAuditor",
    "to_findings",
]
