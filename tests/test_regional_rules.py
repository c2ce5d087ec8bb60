"""Tests for the federal-state rule overlay and legal citations.

Usage: uv run pytest tests/test_regional_rules.py -v
"""

from datetime import date

import pytest

from buildpass.core.enums import Category, Severity
from buildpass.core.exceptions import ReferenceDataError
from buildpass.models.legality import Violation
from buildpass.services import regional_rules
from buildpass.services.citations import attach_legal_references
from buildpass.services.reference_data import ReferenceData

TODAY = date(2026, 10, 18)

# =============================================================================
# Rule selection
# =============================================================================


class TestApplicableRules:
    def test_bavaria_exhaust(self, reference_data):
        rules = regional_rules.applicable_rules(reference_data, "BY", Category.EXHAUST, TODAY)
        assert [r.id for r in rules] == ["by_exhaust_noise"]

    def test_state_is_case_insensitive(self, reference_data):
        rules = regional_rules.applicable_rules(reference_data, " by ", Category.EXHAUST, TODAY)
        assert [r.id for r in rules] == ["by_exhaust_noise"]

    def test_missing_state_or_category(self, reference_data):
        assert regional_rules.applicable_rules(reference_data, None, Category.EXHAUST) == []
        assert regional_rules.applicable_rules(reference_data, "  ", Category.EXHAUST) == []
        assert regional_rules.applicable_rules(reference_data, "BY", None) == []

    def test_expired_rule_is_skipped(self, reference_data):
        assert regional_rules.applicable_rules(reference_data, "HH", Category.SUSPENSION, TODAY) == []

    def test_rule_within_validity(self, reference_data):
        rules = regional_rules.applicable_rules(
            reference_data, "HH", Category.SUSPENSION, date(2020, 6, 1)
        )
        assert [r.id for r in rules] == ["hh_suspension_pilot"]


class TestRulesForState:
    def test_all_categories(self, reference_data):
        rules = regional_rules.rules_for_state(reference_data, "BY", today=TODAY)
        assert [r.id for r in rules] == ["by_exhaust_noise", "by_wheels_inspection"]

    def test_any_listed_category_matches(self, reference_data):
        rules = regional_rules.rules_for_state(reference_data, "BW", ["ecu"], TODAY)
        assert [r.id for r in rules] == ["bw_exhaust_sound"]

    def test_unknown_state(self, reference_data):
        assert regional_rules.rules_for_state(reference_data, "XX", today=TODAY) == []


# =============================================================================
# Violations and warnings
# =============================================================================


class TestRuleOutput:
    def test_only_critical_rules_become_violations(self, reference_data):
        rules = regional_rules.rules_for_state(reference_data, "BY", today=TODAY)
        violations = regional_rules.to_violations(rules)
        assert len(violations) == 1
        v = violations[0]
        assert v.rule_id == "regional_by_exhaust_noise"
        assert v.severity == Severity.CRITICAL
        assert v.message_de.startswith("[BY] Auspufflaerm-Kontrollen: ")
        assert v.message_en.startswith("[BY] Exhaust noise enforcement: ")

    def test_every_rule_becomes_a_warning(self, reference_data):
        rules = regional_rules.rules_for_state(reference_data, "BY", today=TODAY)
        warnings = regional_rules.to_warnings(rules)
        assert len(warnings) == 2
        assert warnings[1] == (
            "[BY] Radkontrollen: Raeder/Spurverbreiterungen werden bei Kontrollen "
            "auf Freigaengigkeit geprueft."
        )

    def test_english_falls_back_to_german(self, reference_data):
        rules = regional_rules.rules_for_state(reference_data, "NW", today=TODAY)
        assert rules[0].warning_text_en == rules[0].warning_text


# =============================================================================
# Reference data and citations
# =============================================================================


class TestReferenceData:
    def test_bundled_documents(self, reference_data):
        assert len(reference_data.entries) == 14
        assert len(reference_data.regional_rules) == 5
        assert reference_data.catalog_version == "2026.09.1"
        assert [c["id"] for c in reference_data.categories][:3] == [
            "wheels",
            "suspension",
            "exhaust",
        ]

    def test_static_entries_have_no_database_id(self, reference_data):
        assert all(e.id is None for e in reference_data.entries)

    def test_malformed_records_are_skipped(self):
        catalog = {
            "version": "t",
            "categories": [
                {
                    "id": "wheels",
                    "subcategories": [
                        {
                            "id": "alloy_wheels",
                            "items": [
                                {"brand": "BBS", "model": "CH-R", "approvalType": "ABE"},
                                {"model": "no brand"},
                                "not a record",
                            ],
                        }
                    ],
                }
            ],
        }
        rules = {"rules": [{"id": "x", "stateId": "BY"}]}
        data = ReferenceData.from_documents(catalog, rules, {})
        assert [e.value for e in data.entries] == ["BBS CH-R"]
        assert data.regional_rules == ()

    def test_missing_directory(self, tmp_path):
        with pytest.raises(ReferenceDataError):
            ReferenceData.load(tmp_path / "missing")

    def test_citations_by_rule_id(self, reference_data):
        refs = reference_data.legal_references_for("min_clearance")
        assert [(r.law_id, r.section) for r in refs] == [
            ("stvzo_30", "§30 Abs. 1"),
            ("stvzo_19", "§19 Abs. 2"),
        ]
        assert refs[0].law_url.startswith("https://www.gesetze-im-internet.de/")

    def test_regional_rules_share_citations(self, reference_data):
        refs = reference_data.legal_references_for("regional_by_exhaust_noise")
        assert [r.law_id for r in refs] == ["stvo_30"]

    def test_unknown_rule(self, reference_data):
        assert reference_data.legal_references_for("nope") == []
        assert reference_data.legal_references_for("") == []

    def test_attach_legal_references(self, reference_data):
        violations = [
            Violation(rule_id="noise", severity=Severity.CRITICAL, message_de="a", message_en="a"),
            Violation(rule_id="custom", severity=Severity.INFO, message_de="b", message_en="b"),
        ]
        out = attach_legal_references(violations, reference_data)
        assert [r.law_id for r in out[0].legal_references] == ["stvzo_49", "stvo_30"]
        assert out[1].legal_references is None
        assert violations[0].legal_references is None
