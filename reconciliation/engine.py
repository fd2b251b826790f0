"""Reconciliation engine for clinical bill copayment audits.

Exposes high-level function:
- run_reconciliation(account, findings, total_copago, ...) -> ReconciliationReport

Pipeline: rule findings -> dedup -> reconstruction of opaque lump sums ->
contract coverage -> normalization (override, dedup, netting) -> balance.
"""

import time
import uuid
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from core.config import get_settings
from core.observability.logging import get_logger, log_stage, with_correlation
from core.observability.metrics import get_metrics
from forensic_rules import ForensicAuditor, to_findings
from models.canonical import Contract, ExtractedAccount, Finding, FindingCategory, TaxonomyResult
from models.refs import ReconciliationReport
from reconciliation.balance import BalanceResolution, resolve_balance
from reconciliation.coverage import apply_contract_coverage
from reconciliation.normalizer import deduplicate, net_and_reclassify
from reconciliation.reconstruct import reconstruct_all_opaque
from reconciliation.subset_sum import ArithmeticReconstructor
from storage.artifacts import put_json

logger = get_logger(__name__)


# =============================================================================
# Configuration & Data Structures
# =============================================================================

class Severity(str, Enum):
    BLOCK = "BLOCK"
    WARN = "WARN"
    INFO = "INFO"


class ReportStatus(str, Enum):
    PASS = "PASS"
    WARN = "WARN"
    REVIEW = "REVIEW"


class CheckResult:
    """Result of a single reconciliation check."""

    def __init__(
        self,
        check_id: str,
        severity: Severity,
        passed: bool,
        message: str,
        evidence: Optional[Dict] = None,
    ):
        self.check_id = check_id
        self.severity = severity
        self.passed = passed
        self.message = message
        self.evidence = evidence or {}

    def to_dict(self) -> Dict:
        return {
            "check_id": self.check_id,
            "severity": self.severity.value,
            "passed": self.passed,
            "message": self.message,
            "evidence": self.evidence,
        }


# =============================================================================
# Individual Check Functions
# =============================================================================

def check_b1_bill_total(account: ExtractedAccount, tolerance: int) -> CheckResult:
    """B1: Verify bill items add up to the clinic's stated total."""
    items_sum = account.items_sum()

    if account.clinic_stated_total is None:
        return CheckResult(
            check_id="B1_BILL_TOTAL",
            severity=Severity.INFO,
            passed=True,
            message="Bill has no stated total to compare",
            evidence={"items_sum": items_sum},
        )

    difference = abs(items_sum - account.clinic_stated_total)
    evidence = {
        "items_sum": items_sum,
        "clinic_stated_total": account.clinic_stated_total,
        "difference": difference,
    }
    if difference <= tolerance:
        return CheckResult(
            check_id="B1_BILL_TOTAL",
            severity=Severity.INFO,
            passed=True,
            message="Bill items match stated total",
            evidence=evidence,
        )
    return CheckResult(
        check_id="B1_BILL_TOTAL",
        severity=Severity.BLOCK,
        passed=False,
        message=f"Bill items sum {items_sum} vs stated total {account.clinic_stated_total}",
        evidence=evidence,
    )


def check_b2_item_count(account: ExtractedAccount) -> CheckResult:
    """B2: Verify the number of extracted items matches the stated count."""
    actual = account.actual_item_count()

    if account.item_count is None or account.item_count == actual:
        return CheckResult(
            check_id="B2_ITEM_COUNT",
            severity=Severity.INFO,
            passed=True,
            message=f"{actual} items extracted",
            evidence={"extracted_items": actual, "stated_items": account.item_count},
        )
    return CheckResult(
        check_id="B2_ITEM_COUNT",
        severity=Severity.WARN,
        passed=False,
        message=f"Extracted {actual} items but bill states {account.item_count}",
        evidence={"extracted_items": actual, "stated_items": account.item_count},
    )


def check_c1_balance_closure(resolution: BalanceResolution) -> CheckResult:
    """C1: Findings fit the declared copayment without capping."""
    evidence = {"alerts": list(resolution.alerts), **resolution.balance.model_dump(by_alias=True)}
    if not resolution.alerts:
        return CheckResult(
            check_id="C1_BALANCE_CLOSURE",
            severity=Severity.INFO,
            passed=True,
            message="Balance closes without capping",
            evidence=evidence,
        )
    return CheckResult(
        check_id="C1_BALANCE_CLOSURE",
        severity=Severity.WARN,
        passed=False,
        message=f"Balance needed {len(resolution.alerts)} adjustment(s) to close",
        evidence=evidence,
    )


def overall_status(checks: List[CheckResult], resolution: BalanceResolution) -> ReportStatus:
    has_blocks = any(not c.passed and c.severity == Severity.BLOCK for c in checks)
    if resolution.alerts or has_blocks:
        return ReportStatus.REVIEW

    balance = resolution.balance
    has_warns = any(not c.passed and c.severity == Severity.WARN for c in checks)
    if balance.attributed > 0 or has_warns:
        return ReportStatus.WARN
    return ReportStatus.PASS


# =============================================================================
# Main Reconciliation Function
# =============================================================================

def run_reconciliation(
    account: Optional[ExtractedAccount],
    findings: Optional[List[Finding]],
    total_copago: int,
    contract: Optional[Contract] = None,
    classified_items: Optional[List[TaxonomyResult]] = None,
    audit_id: Optional[str] = None,
) -> ReconciliationReport:
    """Run the full audit pipeline and return the report.

    Args:
        account: Extracted clinical bill (may be None when only findings exist)
        findings: Findings from upstream auditors
        total_copago: Copayment declared by the insurer (total_copago_informado)
        contract: Health-plan coverage table, if available
        classified_items: Taxonomy output to run the rule auditor on
        audit_id: Identifier for logs and the report; generated when missing

    Returns:
        ReconciliationReport with balance, findings, alerts, checks and metrics
    """
    settings = get_settings()
    audit_id = audit_id or f"AUD-{uuid.uuid4().hex[:12]}"
    account = account or ExtractedAccount()
    bill_id = account.invoice_number
    metrics = get_metrics()

    with with_correlation(audit_id=audit_id, bill_id=bill_id):
        started = time.perf_counter()
        working = list(findings or [])
        metrics.record_audit_started(len(working))

        # =====================================================================
        # Rule-based findings
        # =====================================================================
        rule_findings: List[Finding] = []
        if classified_items:
            with log_stage("rules", items=len(classified_items)):
                result = ForensicAuditor().perform_audit(classified_items)
                rule_findings = to_findings(result, classified_items)
            working.extend(rule_findings)

        # =====================================================================
        # Reconstruction of opaque lump sums
        # =====================================================================
        # Duplicates must collapse before reconstruction hands each copy different items
        working = deduplicate(working)
        with log_stage("reconstruction", findings=len(working)):
            reconstructor = ArithmeticReconstructor(account)
            working = reconstruct_all_opaque(account, working, reconstructor)

        # =====================================================================
        # Contract coverage and normalization
        # =====================================================================
        with log_stage("normalization"):
            working = apply_contract_coverage(working, contract)
            working = net_and_reclassify(working)

        # =====================================================================
        # Balance
        # =====================================================================
        with log_stage("balance", total=total_copago):
            resolution = resolve_balance(total_copago, working)

        checks = [
            check_b1_bill_total(account, settings.amount_tolerance),
            check_b2_item_count(account),
            check_c1_balance_closure(resolution),
        ]
        status = overall_status(checks, resolution)

        duration_ms = (time.perf_counter() - started) * 1000
        metrics.record_audit_completed(len(working), duration_ms)

        report = ReconciliationReport(
            audit_id=audit_id,
            bill_id=bill_id,
            status=status.value,
            state=resolution.state.value,
            balance=resolution.balance,
            findings=working,
            alerts=resolution.alerts,
            checks=[c.to_dict() for c in checks],
            summary={
                "status": status.value,
                "ledger": resolution.summary,
                "total_checks": len(checks),
                "passed_checks": sum(1 for c in checks if c.passed),
                "blocking_issues": sum(1 for c in checks if not c.passed and c.severity == Severity.BLOCK),
                "warnings": sum(1 for c in checks if not c.passed and c.severity == Severity.WARN),
                "rationale_by_category": resolution.rationale_by_category,
            },
            metrics={
                "findings_in": len(findings or []) + len(rule_findings),
                "findings_out": len(working),
                "reconstructed_findings": sum(1 for f in working if f.reconstructed),
                "netted_findings": sum(1 for f in working if f.gross_amount is not None),
                "info_findings": sum(1 for f in working if f.category == FindingCategory.INFO),
                "opacity_pct": resolution.opacity_pct,
                "duration_ms": round(duration_ms, 2),
            },
        )

        logger.info(
            "Audit complete",
            extra_fields={"status": status.value, "state": resolution.state.value},
        )
        return report


def save_report(report: ReconciliationReport, output_dir: Optional[Path] = None) -> ReconciliationReport:
    """Persist the report as JSON and return it with `report_ref` set."""
    output_dir = output_dir or get_settings().artifacts_dir
    path = output_dir / "reports" / f"{report.audit_id}.json"
    ref = put_json(report, path)
    logger.info("Report saved", extra_fields={"path": ref.storage_uri})
    return report.model_copy(update={"report_ref": ref})
