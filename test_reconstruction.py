"""
Opaque Finding Reconstruction Tests

Generic glosas are broken down into bill items; the items found decide
whether the charge is confirmed improper or proven opaque.
"""

from models.canonical import (
    BillingItem,
    BillSection,
    ExtractedAccount,
    Finding,
    FindingAction,
    FindingCategory,
)
from reconciliation.families import (
    GENERIC_OPACITY,
    HOSPITALITY,
    INTRAOP_MEDICATION,
    ChargeFamily,
    classify_item_norm,
    families_in,
    is_compatible,
    normalize_text,
)
from reconciliation.reconstruct import RECONSTRUCTED_SUFFIX, reconstruct_all_opaque


def _account():
    return ExtractedAccount(sections=[
        BillSection(category="HOTELERIA", items=[
            BillingItem(index=10, description="SET DE ASEO PERSONAL", total=2000),
            BillingItem(index=11, description="PANTUFLAS", total=1500),
            BillingItem(index=12, description="TELEVISOR", total=3000),
        ]),
        BillSection(category="OTROS", items=[
            BillingItem(index=20, description="CARGOS GENERALES ADMINISTRATIVOS", total=4200),
        ]),
    ])


class TestFamilies:

    def test_normalize_text(self):
        assert normalize_text("Día  Cama / Habitación") == "DIA CAMA HABITACION"
        assert normalize_text(None) == ""

    def test_families_in(self):
        assert families_in("Medicamentos y Materiales") == [ChargeFamily.MEDICAMENTOS, ChargeFamily.MATERIALES]
        assert families_in("OPACIDAD ESTRUCTURAL GLOBAL") == []

    def test_compatibility(self):
        assert is_compatible(None, "anything")
        assert is_compatible("DIA CAMA", "CONTROL SIGNOS VITALES", "ENFERMERIA")
        assert not is_compatible("DIA CAMA", "GASA", "MATERIALES")
        assert is_compatible("DERECHO PABELLON", "SUTURA", "PABELLON")
        assert is_compatible("GASTOS NO CUBIERTOS", "PANTUFLAS", "HOTELERIA")
        assert not is_compatible("GASTOS NO CUBIERTOS", "PARACETAMOL", "FARMACIA")
        assert is_compatible("LABORATORIO", "HEMOGRAMA", "LABORATORIO CLINICO")
        assert not is_compatible("LABORATORIO", "HEMOGRAMA", "")

    def test_classify_item_norm(self):
        assert classify_item_norm("Propofol 1% 20 ml") == INTRAOP_MEDICATION
        assert classify_item_norm("Set de aseo") == HOSPITALITY
        assert classify_item_norm("Hemograma") == GENERIC_OPACITY
        assert GENERIC_OPACITY.hard is False


class TestReconstructAllOpaque:

    def test_hospitality_breakdown_confirmed(self):
        finding = Finding(id="F1", category="Z", amount=3500, label="GASTOS NO CUBIERTOS",
                          evidence_refs=["PAM:3201002"])

        [result] = reconstruct_all_opaque(_account(), [finding])

        assert result.category == FindingCategory.A
        assert result.action == FindingAction.IMPUGNAR
        assert result.reconstructed is True
        assert result.label == "GASTOS NO CUBIERTOS" + RECONSTRUCTED_SUFFIX
        assert result.hypothesis_parent == "H_UNBUNDLING_IF319"
        assert result.evidence_refs == ["PAM:3201002", "ITEM INDEX: 10", "ITEM INDEX: 11"]
        assert finding.reconstructed is False

    def test_generic_items_proven_opaque(self):
        finding = Finding(id="F2", category="B", amount=4200, label="VARIOS")

        [result] = reconstruct_all_opaque(_account(), [finding])

        assert result.category == FindingCategory.Z
        assert result.action == FindingAction.SOLICITAR_ACLARACION
        assert result.hypothesis_parent == "H_OPACIDAD_ESTRUCTURAL"
        assert result.reconstructed is True

    def test_closing_rule_keeps_opaque(self):
        finding = Finding(category="Z", amount=3000, label="AJUSTE",
                          rationale="Se aplica Ley 20.584 como norma de cierre")
        [result] = reconstruct_all_opaque(_account(), [finding])
        assert result.reconstructed is True
        assert result.category == FindingCategory.Z

    def test_unmatched_finding_passes_through(self):
        finding = Finding(category="Z", amount=999, label="GASTOS NO CUBIERTOS")
        [result] = reconstruct_all_opaque(_account(), [finding])
        assert result is finding

    def test_aggregates_and_non_triggers_untouched(self):
        findings = [
            Finding(category="Z", amount=3500, label="MEDICAMENTOS Y MATERIALES"),
            Finding(category="Z", amount=3500, label="TOTAL GASTOS NO CUBIERTOS"),
            Finding(category="B", amount=3000, label="Cobro dudoso"),
        ]
        result = reconstruct_all_opaque(_account(), findings)
        assert [f.reconstructed for f in result] == [False, False, False]

    def test_items_claimed_in_input_order(self):
        findings = [
            Finding(id="first", category="Z", amount=3000, label="VARIOS"),
            Finding(id="second", category="Z", amount=3000, label="GASTOS NO CUBIERTOS"),
        ]

        first, second = reconstruct_all_opaque(_account(), findings)

        assert first.reconstructed is True
        assert first.evidence_refs == ["ITEM INDEX: 12"]
        # Remaining hospitality items (2000, 1500) cannot make 3000
        assert second.reconstructed is False

    def test_no_bill(self):
        findings = [Finding(category="Z", amount=10, label="VARIOS")]
        assert reconstruct_all_opaque(None, findings) == findings
