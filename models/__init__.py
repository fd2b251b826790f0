"""Models Package.

Data models for the clinical bill audit engine including:
- Canonical bill, finding, contract and balance models
- Data reference models for artifact storage
- The reconciliation report
"""

from models.canonical import (
    BillingItem,
    BillSection,
    ExtractedAccount,
    FindingCategory,
    FindingAction,
    Finding,
    TaxonomyAttributes,
    TaxonomyResult,
    CoverageRule,
    Contract,
    ReconstructionResult,
    Balance,
)

from models.refs import (
    DataReference,
    ReconciliationReport,
)

__all__ = [
    # Canonical models
    "BillingItem",
    "BillSection",
    "ExtractedAccount",
    "FindingCategory",
    "FindingAction",
    "Finding",
    "TaxonomyAttributes",
    "TaxonomyResult",
    "CoverageRule",
    "Contract",
    "ReconstructionResult",
    "Balance",

    # Reference models
    "DataReference",
    "ReconciliationReport",
]
