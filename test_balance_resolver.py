"""
Balance Resolver Tests

The A/B/Z/OK buckets must always add up to the declared copayment, with
Opaque drained before Controversial and Confirmed never reduced.
"""

import random

import pytest

from models.canonical import Balance, Finding
from reconciliation.balance import ALERT_PREFIX, BalanceClosureError, GlobalState, resolve_balance


def _f(category, amount):
    return Finding(category=category, amount=amount, label=f"{category} finding")


class TestBalanceResolver:

    def test_findings_fit_total(self):
        """A 20000, Z 50000, B 10000 over 100000 -> OK 20000."""
        res = resolve_balance(100000, [_f("A", 20000), _f("Z", 50000), _f("B", 10000)])

        b = res.balance
        assert (b.confirmed, b.controversial, b.opaque, b.legitimate) == (20000, 10000, 50000, 20000)
        assert b.confirmed + b.controversial + b.opaque + b.legitimate == 100000
        assert res.alerts == []
        assert res.opacity_pct == 50.0
        assert "Opacidad=50.0%" in res.summary
        assert res.state == GlobalState.COPAGO_MIXTO_CONFIRMADO_Y_OPACO

    def test_opaque_capped_on_overflow(self):
        """A 20000, Z 150000 over 100000 -> Z capped to 80000, one alert."""
        res = resolve_balance(100000, [_f("A", 20000), _f("Z", 150000)])

        b = res.balance
        assert b.confirmed == 20000
        assert b.opaque == 80000
        assert b.legitimate == 0
        assert len(res.alerts) == 1
        assert res.alerts[0].startswith(ALERT_PREFIX)
        assert res.opacity_pct == 80.0
        assert "Opacidad=80.0%" in res.summary

    def test_z_drained_before_b(self):
        res = resolve_balance(100000, [_f("A", 30000), _f("B", 90000), _f("Z", 40000)])

        b = res.balance
        assert b.confirmed == 30000
        assert b.opaque == 0
        assert b.controversial == 70000
        assert b.legitimate == 0
        assert len(res.alerts) == 2
        assert b.is_closed()

    def test_confirmed_exceeding_total_is_never_reduced(self):
        res = resolve_balance(50000, [_f("A", 80000), _f("B", 10000), _f("Z", 5000)])

        b = res.balance
        assert b.confirmed == 80000
        assert b.controversial == 0
        assert b.opaque == 0
        assert b.legitimate == 0
        assert any("exceeds declared total" in a for a in res.alerts)

    def test_closure_failure_raises(self, monkeypatch):
        monkeypatch.setattr(Balance, "is_closed", lambda self: False)
        with pytest.raises(BalanceClosureError):
            resolve_balance(100000, [_f("A", 20000)])

    def test_info_findings_ignored(self):
        res = resolve_balance(1000, [_f("INFO", 900), _f("B", 100)])
        assert res.balance.controversial == 100
        assert res.balance.legitimate == 900
        assert res.state == GlobalState.COPAGO_EN_CONTROVERSIA
        assert "INFO" not in res.rationale_by_category

    def test_empty_findings(self):
        res = resolve_balance(100000, [])
        assert res.balance.legitimate == 100000
        assert res.state == GlobalState.COPAGO_SIN_OBSERVACIONES
        assert res.opacity_pct == 0.0

    def test_zero_total(self):
        res = resolve_balance(0, None)
        assert res.balance.total == 0
        assert res.state == GlobalState.SIN_COPAGO
        assert "Opacidad=0.0%" in res.summary

    @pytest.mark.parametrize("expected_state, findings", [
        (GlobalState.COPAGO_CON_COBROS_IMPROCEDENTES, [("A", 10)]),
        (GlobalState.COPAGO_INDETERMINADO_POR_OPACIDAD, [("Z", 10), ("B", 5)]),
        (GlobalState.COPAGO_EN_CONTROVERSIA, [("B", 10)]),
    ])
    def test_state_labels(self, expected_state, findings):
        res = resolve_balance(100, [_f(c, a) for c, a in findings])
        assert res.state == expected_state

    def test_rationale_grouped_by_category(self):
        res = resolve_balance(100, [Finding(id="1", category="A", amount=10, label="Cobro")])
        assert res.rationale_by_category["A"] == ["1: Cobro ($10)"]

    @pytest.mark.parametrize("seed", range(5))
    def test_invariant_holds_for_random_findings(self, seed):
        rng = random.Random(seed)
        total = rng.randint(0, 500000)
        findings = [
            _f(rng.choice(["A", "B", "Z", "INFO"]), rng.randint(0, 200000))
            for _ in range(rng.randint(0, 8))
        ]
        confirmed_in = sum(f.amount for f in findings if f.category.value == "A")

        b = resolve_balance(total, findings).balance

        assert b.confirmed == confirmed_in
        assert min(b.confirmed, b.controversial, b.opaque, b.legitimate) >= 0
        if confirmed_in <= total:
            assert b.confirmed + b.controversial + b.opaque + b.legitimate == total
