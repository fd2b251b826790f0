"""Data structures for the rule-based forensic auditor."""

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, List


class ForensicSeverity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    HIGH = "HIGH"


@dataclass(frozen=True)
class AuditContext:
    """Facts about the whole bill that rules judge items against."""
    existe_dia_cama: bool = False
    existe_pabellon: bool = False


@dataclass
class ForensicFinding:
    code: str
    item_id: str
    rule_id: str
    severity: ForensicSeverity
    message: str
    grupo: str = ""
    sub_familia: str = ""
    atributos_relevantes: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["severity"] = self.severity.value
        return data


@dataclass
class AuditStats:
    total_items: int = 0
    total_findings: int = 0
    items_with_findings: int = 0


@dataclass
class AuditResult:
    context: AuditContext
    findings: List[ForensicFinding] = field(default_factory=list)
    stats: AuditStats = field(default_factory=AuditStats)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "context": asdict(self.context),
            "findings": [f.to_dict() for f in self.findings],
            "stats": asdict(self.stats),
        }
