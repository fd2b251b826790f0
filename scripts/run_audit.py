"""
Run a copayment audit over an extracted clinical bill.

Inputs are JSON files as produced by the extraction collaborators:
- bill:      ExtractedAccount (sections with items, clinicStatedTotal)
- findings:  list of findings (category, amount, label, rationale, evidenceRefs)
- contract:  health-plan coverage rules (optional)
- taxonomy:  classified items for the rule auditor (optional)

Example:
    python scripts/run_audit.py --bill bill.json --findings findings.json --total 5285788 --save
"""

import argparse
import json
import logging
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from core.config import get_settings
from core.observability.logging import configure_logging
from core.observability.metrics import get_metrics
from models.canonical import Contract, ExtractedAccount, Finding, TaxonomyResult
from models.refs import ReconciliationReport
from reconciliation.engine import run_reconciliation, save_report
from storage.artifacts import load_model, load_models


def print_report(report: ReconciliationReport) -> None:
    """Print the audit ledger in a readable format."""
    status_emoji = {"PASS": "✅", "WARN": "⚠️", "REVIEW": "❌"}
    balance = report.balance

    print(f"\nAudit: {report.audit_id}" + (f"  Bill: {report.bill_id}" if report.bill_id else ""))
    print(f"Status: {status_emoji.get(report.status, '')} {report.status}")
    print(f"State: {report.state}")
    print()
    print(f"  A  Confirmed-Improper : ${balance.confirmed:>12,}")
    print(f"  B  Controversial      : ${balance.controversial:>12,}")
    print(f"  Z  Opaque             : ${balance.opaque:>12,}")
    print(f"  OK Legitimate         : ${balance.legitimate:>12,}")
    print(f"     TOTAL              : ${balance.total:>12,}")
    print(f"\n{report.summary.get('ledger', '')}")

    if report.alerts:
        print(f"\n⚠️ ALERTS ({len(report.alerts)}):")
        for alert in report.alerts:
            print(f"  - {alert}")

    failed = [c for c in report.checks if not c["passed"]]
    if failed:
        print(f"\nCHECKS ({len(failed)} failing):")
        for c in failed:
            print(f"  - [{c['check_id']}] {c['severity']}: {c['message']}")

    print(f"\nFINDINGS ({len(report.findings)}):")
    for f in report.findings:
        gross = f" (gross ${f.gross_amount:,})" if f.gross_amount is not None else ""
        print(f"  [{f.category.value:4}] ${f.amount:>12,}{gross}  {f.label}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Audit a clinical bill copayment")
    parser.add_argument("--bill", type=Path, help="ExtractedAccount JSON file")
    parser.add_argument("--findings", type=Path, help="Findings JSON file (list)")
    parser.add_argument("--contract", type=Path, help="Contract coverage JSON file")
    parser.add_argument("--taxonomy", type=Path, help="Classified items JSON file (list)")
    parser.add_argument("--total", type=int, required=True, help="Declared copayment (total_copago_informado)")
    parser.add_argument("--audit-id", help="Audit identifier for logs and report name")
    parser.add_argument("--save", action="store_true", help="Save the report under the artifacts directory")
    parser.add_argument("--output", type=Path, help="Output JSON file for the report")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    settings = get_settings()
    level = logging.DEBUG if args.verbose else settings.log_level_value
    configure_logging(level=level, json_format=args.json_logs or settings.log_json, force=True)

    account = load_model(args.bill, ExtractedAccount) if args.bill else None
    findings = load_models(args.findings, Finding) if args.findings else []
    contract = load_model(args.contract, Contract) if args.contract else None
    taxonomy = load_models(args.taxonomy, TaxonomyResult) if args.taxonomy else None

    report = run_reconciliation(
        account,
        findings,
        args.total,
        contract=contract,
        classified_items=taxonomy,
        audit_id=args.audit_id,
    )

    if args.save:
        report = save_report(report)
        print(f"\nReport saved to {report.report_ref.storage_uri}")

    print("=" * 60)
    print("COPAYMENT AUDIT")
    print("=" * 60)
    print_report(report)

    if args.output:
        args.output.write_text(
            json.dumps(report.model_dump(mode="json", by_alias=True), indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        print(f"\nResults written to {args.output}")

    if args.verbose:
        print("\nMetrics:")
        print(json.dumps(get_metrics().get_summary(), indent=2))


if __name__ == "__main__":
    main()
