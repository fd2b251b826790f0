"""Financial reconciliation and forensic balance engine."""

from reconciliation.subset_sum import ArithmeticReconstructor
from reconciliation.reconstruct import reconstruct_all_opaque
from reconciliation.normalizer import net_and_reclassify
from reconciliation.balance import BalanceClosureError, BalanceResolution, GlobalState, resolve_balance
from reconciliation.coverage import apply_contract_coverage
from reconciliation.engine import run_reconciliation, save_report

__all__ = [
    "ArithmeticReconstructor",
    "reconstruct_all_opaque",
    "net_and_reclassify",
    "BalanceClosureError",
    "BalanceResolution",
    "GlobalState",
    "resolve_balance",
    "apply_contract_coverage",
    "run_reconciliation",
    "save_report",
]
