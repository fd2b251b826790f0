"""Data reference and report models for artifact storage and retrieval."""

from __future__ import annotations

from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from models.canonical import Balance, Finding


class DataReference(BaseModel):
    """Where a saved audit artifact lives and the hash it was written with."""
    storage_uri: str = Field(..., description="Absolute path of the JSON file")
    content_hash: str = Field(..., description="SHA256 of the bytes written")
    content_type: str = "application/json"
    size_bytes: int = Field(..., ge=0)
    stored_at: datetime = Field(default_factory=datetime.utcnow)


class ReconciliationReport(BaseModel):
    """Reconciliation results for one audited clinical bill.

    Attributes:
        audit_id: Identifier of the audit run
        bill_id: Invoice number of the audited bill, if known
        status: Overall status ("PASS", "WARN", "REVIEW")
        state: Global copayment state label (e.g. "COPAGO_MIXTO_CONFIRMADO_Y_OPACO")
        balance: Final A/B/Z/OK partition of the declared copayment
        findings: Findings after reconstruction, coverage and netting
        alerts: Balance alerts (capping, confirmed amount over total)
        checks: List of individual check results
        summary: Human-readable summary
        metrics: Key metrics (reconstructed findings, opacity, etc.)
        report_ref: Reference to full report JSON if saved
    """
    audit_id: str = Field(..., description="Audit run identifier")
    bill_id: Optional[str] = Field(None, description="Audited bill identifier")
    status: str = Field(..., description="Overall status: PASS, WARN, or REVIEW")
    state: str = Field(..., description="Global copayment state label")
    balance: Balance = Field(..., description="A/B/Z/OK partition of the copayment")
    findings: list[Finding] = Field(default_factory=list, description="Final findings")
    alerts: list[str] = Field(default_factory=list, description="Balance alerts")
    checks: list[dict] = Field(default_factory=list, description="Individual check results")
    summary: dict = Field(default_factory=dict, description="Summary information")
    metrics: dict = Field(default_factory=dict, description="Key metrics")
    report_ref: Optional[DataReference] = Field(None, description="Report artifact reference")
