"""
Canonical Model Tests

Upstream JSON is loosely typed: amounts come as Chilean-formatted strings,
categories as free text. These tests pin down how the boundary sanitizes it.
"""

from decimal import Decimal

import pytest

from models.canonical import (
    Balance,
    BillingItem,
    ExtractedAccount,
    Finding,
    FindingAction,
    FindingCategory,
    TaxonomyResult,
)


class TestAmountParsing:

    @pytest.mark.parametrize("raw, expected", [
        (12839, 12839),
        ("12839", 12839),
        ("$1.234.567", 1234567),
        ("1.234,50", 1235),
        ("$ 51.356", 51356),
        (12839.5, 12840),
        (Decimal("99.49"), 99),
        (None, 0),
        ("", 0),
        (-500, 0),
        ("-500", 0),
        ("(1.000)", 0),
        ("n/a", 0),
        (float("nan"), 0),
    ])
    def test_amount_sanitized(self, raw, expected):
        assert Finding(amount=raw).amount == expected

    def test_missing_copago_stays_missing(self):
        item = BillingItem(description="GASA", total="1.500")
        assert item.copago is None
        assert item.total == 1500

    def test_billing_item_is_frozen(self):
        item = BillingItem(description="GASA", total=1500)
        with pytest.raises(Exception):
            item.total = 10


class TestFindingBoundary:

    @pytest.mark.parametrize("raw, expected", [
        ("A", FindingCategory.A),
        ("a", FindingCategory.A),
        ("B", FindingCategory.B),
        ("Z", FindingCategory.Z),
        ("K", FindingCategory.Z),
        ("OK", FindingCategory.INFO),
        ("INFO", FindingCategory.INFO),
        ("whatever", FindingCategory.Z),
        (None, FindingCategory.Z),
    ])
    def test_category_parse_or_default(self, raw, expected):
        assert Finding(category=raw).category == expected

    def test_camel_case_aliases(self):
        finding = Finding.model_validate({
            "id": 7,
            "category": "A",
            "amount": "200.000",
            "label": "Sutura",
            "action": "IMPUGNAR",
            "hypothesisParent": "H_UNBUNDLING_IF319",
            "evidenceRefs": ["PAM:3201001", None],
        })
        assert finding.id == "7"
        assert finding.amount == 200000
        assert finding.action == FindingAction.IMPUGNAR
        assert finding.hypothesis_parent == "H_UNBUNDLING_IF319"
        assert finding.evidence_refs == ["PAM:3201001"]
        assert finding.reconstructed is False
        assert finding.gross_amount is None

    def test_unknown_action_requests_clarification(self):
        assert Finding(action="REVISAR").action == FindingAction.SOLICITAR_ACLARACION

    def test_info_is_not_balanced(self):
        assert not Finding(category="INFO").is_balanced
        assert Finding(category="B").is_balanced


class TestExtractedAccount:

    def test_iter_items_positional_uids(self):
        account = ExtractedAccount.model_validate({
            "clinicStatedTotal": "$56.356",
            "sections": [
                {"category": "MATERIALES", "items": [
                    {"description": "GASA", "total": 12839},
                    {"description": "GASA", "total": 12839},
                ]},
                {"category": "FARMACIA", "items": [
                    {"index": 4, "description": "PARACETAMOL", "total": 5000},
                ]},
            ],
        })

        entries = list(account.iter_items())
        assert [uid for uid, _, _ in entries] == ["s0:i0", "s0:i1", "4"]
        assert entries[2][1] == "FARMACIA"
        assert account.clinic_stated_total == 56356
        assert account.items_sum() == 30678
        assert account.actual_item_count() == 3

    def test_item_section_overrides_section_category(self):
        account = ExtractedAccount(sections=[{
            "category": "VARIOS",
            "items": [{"description": "PROPOFOL", "total": 100, "section": "PABELLON"}],
        }])
        _, section, _ = next(account.iter_items())
        assert section == "PABELLON"


class TestTaxonomyAndBalance:

    def test_taxonomy_attributes_default_false(self):
        item = TaxonomyResult(id="1", item_original="PANTUFLAS", grupo="INSUMOS",
                              atributos={"potencial_no_clinico": True, "otro": True})
        assert item.atributos.potencial_no_clinico is True
        assert item.atributos.potencial_inherente_dia_cama is False

    def test_balance_aliases(self):
        balance = Balance(A=20000, B=10000, Z=50000, OK=20000, TOTAL=100000)
        assert balance.confirmed == 20000
        assert balance.is_closed()
        assert balance.model_dump(by_alias=True) == {
            "A": 20000, "B": 10000, "Z": 50000, "OK": 20000, "TOTAL": 100000,
        }
