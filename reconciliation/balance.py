"""Balance resolver: partition the declared copayment into A / B / Z / OK.

The four buckets always add up to the declared total. When findings claim
more than the total, the least certain buckets give way first: Opaque (Z)
is drained, then Controversial (B). Confirmed-Improper (A) is never reduced.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from core.observability.logging import get_logger
from core.observability.metrics import record_balance_resolved, record_processing_time
from models.canonical import Balance, Finding, FindingCategory

logger = get_logger(__name__)

ALERT_PREFIX = "ALERTA_BALANCE"


class BalanceClosureError(RuntimeError):
    """A/B/Z/OK no longer add up to the declared total after capping."""


class GlobalState(str, Enum):
    SIN_COPAGO = "SIN_COPAGO"
    COPAGO_MIXTO_CONFIRMADO_Y_OPACO = "COPAGO_MIXTO_CONFIRMADO_Y_OPACO"
    COPAGO_CON_COBROS_IMPROCEDENTES = "COPAGO_CON_COBROS_IMPROCEDENTES"
    COPAGO_INDETERMINADO_POR_OPACIDAD = "COPAGO_INDETERMINADO_POR_OPACIDAD"
    COPAGO_EN_CONTROVERSIA = "COPAGO_EN_CONTROVERSIA"
    COPAGO_SIN_OBSERVACIONES = "COPAGO_SIN_OBSERVACIONES"


@dataclass
class BalanceResolution:
    """Result of resolving one audit's balance."""
    balance: Balance
    alerts: List[str] = field(default_factory=list)
    state: GlobalState = GlobalState.SIN_COPAGO
    opacity_pct: float = 0.0
    summary: str = ""
    rationale_by_category: Dict[str, List[str]] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "balance": self.balance.model_dump(by_alias=True),
            "alerts": list(self.alerts),
            "state": self.state.value,
            "opacity_pct": self.opacity_pct,
            "summary": self.summary,
            "rationale_by_category": self.rationale_by_category,
        }


def global_state(balance: Balance) -> GlobalState:
    if balance.total == 0:
        return GlobalState.SIN_COPAGO
    if balance.confirmed > 0 and balance.opaque > 0:
        return GlobalState.COPAGO_MIXTO_CONFIRMADO_Y_OPACO
    if balance.confirmed > 0:
        return GlobalState.COPAGO_CON_COBROS_IMPROCEDENTES
    if balance.opaque > 0:
        return GlobalState.COPAGO_INDETERMINADO_POR_OPACIDAD
    if balance.controversial > 0:
        return GlobalState.COPAGO_EN_CONTROVERSIA
    return GlobalState.COPAGO_SIN_OBSERVACIONES


def opacity_percentage(opaque: int, total: int) -> float:
    if total <= 0:
        return 0.0
    return round(opaque / total * 100, 1)


def resolve_balance(total_declared: int, findings: Optional[List[Finding]]) -> BalanceResolution:
    """Compute the A/B/Z/OK partition of `total_declared`.

    Args:
        total_declared: Copayment the insurer reports the patient paid (pesos)
        findings: Normalized findings; INFO findings are ignored

    Returns:
        BalanceResolution with the balance, capping alerts and state label
    """
    started = time.perf_counter()
    total = max(0, int(total_declared or 0))

    sums = {FindingCategory.A: 0, FindingCategory.B: 0, FindingCategory.Z: 0}
    rationale: Dict[str, List[str]] = {}
    for finding in findings or []:
        if finding.category not in sums:
            continue
        sums[finding.category] += max(0, finding.amount)
        rationale.setdefault(finding.category.value, []).append(
            f"{finding.id}: {finding.label} (${max(0, finding.amount)})"
        )

    confirmed = sums[FindingCategory.A]
    controversial = sums[FindingCategory.B]
    opaque = sums[FindingCategory.Z]

    alerts: List[str] = []
    capped: List[str] = []

    if confirmed + controversial + opaque > total:
        allowed_z = max(0, total - confirmed - controversial)
        if opaque > allowed_z:
            alerts.append(
                f"{ALERT_PREFIX}: Z capped from {opaque} to {allowed_z} "
                f"(-{opaque - allowed_z}) to close against declared total {total}"
            )
            capped.append("Z")
            opaque = allowed_z

        if confirmed + controversial + opaque > total:
            allowed_b = max(0, total - confirmed)
            if controversial > allowed_b:
                alerts.append(
                    f"{ALERT_PREFIX}: B capped from {controversial} to {allowed_b} "
                    f"(-{controversial - allowed_b}) to close against declared total {total}"
                )
                capped.append("B")
                controversial = allowed_b

        if confirmed > total:
            alerts.append(
                f"{ALERT_PREFIX}: confirmed amount A={confirmed} exceeds declared total {total}; "
                f"findings must be reviewed"
            )
            capped.append("A")

    legitimate = max(0, total - confirmed - controversial - opaque)
    balance = Balance(
        confirmed=confirmed,
        controversial=controversial,
        opaque=opaque,
        legitimate=legitimate,
        total=total,
    )
    if confirmed <= total and not balance.is_closed():
        raise BalanceClosureError(f"Balance does not close: {balance.model_dump(by_alias=True)}")

    state = global_state(balance)
    pct = opacity_percentage(opaque, total)
    summary = (
        f"A={confirmed} B={controversial} Z={opaque} OK={legitimate} TOTAL={total} | "
        f"Opacidad={pct:.1f}% | Estado={state.value}"
    )

    for alert in alerts:
        logger.warning(alert)
    record_balance_resolved(capped)
    record_processing_time("balance", (time.perf_counter() - started) * 1000)
    logger.info("Balance resolved", extra_fields={"state": state.value, "opacity_pct": pct})

    return BalanceResolution(
        balance=balance,
        alerts=alerts,
        state=state,
        opacity_pct=pct,
        summary=summary,
        rationale_by_category=rationale,
    )
