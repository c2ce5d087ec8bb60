"""Tests for snapshot recompute and the listing fan-out.

Runs against the in-memory Supabase stand-in from conftest.

Usage: uv run pytest tests/test_snapshot_writer.py -v
"""

import pytest

from buildpass.core.enums import EvidenceType, LegalityStatus
from buildpass.core.exceptions import ModificationNotFoundError, SnapshotPersistenceError
from buildpass.models.modification import ApprovalDocument, Document, ModificationRecord
from buildpass.services.snapshot_writer import (
    approval_number_hints,
    build_notes,
    recompute_and_persist,
    recompute_legality_quietly,
)
from tests.conftest import FIXED_NOW, seed_modification


def _clock():
    return FIXED_NOW


def _mod_row(fake_db, mod_id):
    return next(r for r in fake_db.rows("modifications") if r["id"] == mod_id)


def _listing_row(fake_db, listing_id):
    return next(r for r in fake_db.rows("part_listings") if r["id"] == listing_id)


# =============================================================================
# Approval number hints
# =============================================================================


class TestApprovalNumberHints:
    def test_approvals_before_documents_deduplicated(self):
        record = ModificationRecord(
            id="m1",
            part_name="Sportfedern",
            documents=[
                Document(type="ABE", document_number="KBA 43234"),
                Document(type="TEILEGUTACHTEN", document_number="TG 15230021"),
            ],
            approval_documents=[ApprovalDocument(approval_type="ABE", approval_number="43234")],
        )
        assert approval_number_hints(record) == ["KBA 43234", "TG 15230021"]

    def test_blank_numbers_ignored(self):
        record = ModificationRecord(
            id="m1", part_name="x", documents=[Document(type="ABE", document_number="  ")]
        )
        assert approval_number_hints(record) == []


# =============================================================================
# Recompute
# =============================================================================


class TestRecompute:
    def test_green_with_eintragung_but_too_loud(self, fake_db, repo, reference_data):
        seed_modification(
            fake_db,
            "m1",
            "Slip-On Line",
            brand="Akrapovic",
            category="EXHAUST",
            tuv_status="GREEN_REGISTERED",
            user_parameters={"noiseLevelDb": 100},
            approvals=[{"approval_type": "EINTRAGUNG"}],
        )
        result = recompute_and_persist("m1", repo, reference_data, clock=_clock)

        assert result.snapshot.legality_status == LegalityStatus.ILLEGAL
        assert [v.rule_id for v in result.violations] == ["noise"]
        assert _mod_row(fake_db, "m1")["legality_status"] == "ILLEGAL"

    def test_approval_number_from_evidence(self, fake_db, repo, reference_data):
        seed_modification(
            fake_db,
            "m1",
            "Federn",
            brand="H&R",
            category="SUSPENSION",
            approvals=[{"approval_type": "ABE", "approval_number": "43234"}],
        )
        snapshot = recompute_and_persist("m1", repo, reference_data, clock=_clock).snapshot

        assert snapshot.legality_status == LegalityStatus.FULLY_LEGAL
        assert snapshot.legality_approval_type == "ABE"
        assert snapshot.legality_approval_number == "KBA 43234"
        assert snapshot.legality_source_id == "kba"
        assert snapshot.legality_reference_id is None
        assert snapshot.legality_notes == "Ref: ABE"

    def test_abe_without_document_stays_unknown(self, fake_db, repo, reference_data):
        seed_modification(
            fake_db, "m1", "Sportfedern", brand="H&R", category="SUSPENSION"
        )
        snapshot = recompute_and_persist("m1", repo, reference_data, clock=_clock).snapshot
        assert snapshot.legality_status == LegalityStatus.UNKNOWN
        assert snapshot.legality_approval_number == "KBA 43234"

    def test_overlay_match_links_reference_id(self, fake_db, repo, reference_data):
        fake_db.rows("legality_references").append(
            {
                "id": "ref-77",
                "brand": "Eibach",
                "part_name": "Pro-Kit",
                "category": "suspension",
                "approval_type": "ABE",
                "approval_number": "KBA 99999",
                "source_id": "kba",
                "is_synthetic": False,
                "restrictions_json": {"criticalParameters": {"minClearanceLoaded": 100}},
            }
        )
        seed_modification(
            fake_db,
            "m1",
            "Pro-Kit",
            brand="Eibach",
            category="SUSPENSION",
            user_parameters={"clearanceLoaded": 120},
            documents=[{"type": "ABE", "document_number": "99999"}],
        )
        snapshot = recompute_and_persist("m1", repo, reference_data, clock=_clock).snapshot

        assert snapshot.legality_reference_id == "ref-77"
        assert snapshot.legality_status == LegalityStatus.FULLY_LEGAL

    def test_overlay_thresholds_checked_when_catalog_entry_ranks_first(
        self, fake_db, repo, reference_data
    ):
        fake_db.rows("legality_references").append(
            {
                "id": "ref-remus",
                "brand": "Remus",
                "part_name": "Cat-Back System EG",
                "category": "exhaust",
                "approval_type": "TEILEGUTACHTEN",
                "approval_number": "TG 2019-0547-EG",
                "source_id": "manufacturer",
                "is_synthetic": False,
                "restrictions_json": {"criticalParameters": {"maxNoiseLevel": 90}},
            }
        )
        seed_modification(
            fake_db,
            "m1",
            "Cat-Back System",
            brand="Remus",
            category="EXHAUST",
            user_parameters={"noiseLevelDb": 95},
        )
        result = recompute_and_persist("m1", repo, reference_data, clock=_clock)

        assert result.snapshot.legality_reference_id == "ref-remus"
        assert result.snapshot.legality_approval_number == "TG 2019-0547"
        assert [v.rule_id for v in result.violations] == ["noise"]
        assert result.violations[0].message_de == "Geraeusch 95 dB > 90 dB (Referenz)"
        assert result.snapshot.legality_status == LegalityStatus.ILLEGAL
        assert _mod_row(fake_db, "m1")["legality_reference_id"] == "ref-remus"

    def test_overlay_approval_number_beats_catalog_brand_match(
        self, fake_db, repo, reference_data
    ):
        fake_db.rows("legality_references").append(
            {
                "id": "ref-club",
                "brand": "KW",
                "part_name": "V3 Coilovers Clubsport",
                "category": "suspension",
                "approval_type": "TEILEGUTACHTEN",
                "approval_number": "TG 15230099",
                "source_id": "manufacturer",
                "is_synthetic": False,
            }
        )
        seed_modification(
            fake_db,
            "m1",
            "V3 Coilovers",
            brand="KW",
            category="SUSPENSION",
            documents=[{"type": "TEILEGUTACHTEN", "document_number": "TG 15230099"}],
        )
        snapshot = recompute_and_persist("m1", repo, reference_data, clock=_clock).snapshot

        assert snapshot.legality_approval_number == "TG 15230099"
        assert snapshot.legality_reference_id == "ref-club"

    def test_regional_rule_from_car_state(self, fake_db, repo, reference_data):
        seed_modification(
            fake_db,
            "m1",
            "Cat-Back System",
            brand="Remus",
            category="EXHAUST",
            state_id="BY",
        )
        result = recompute_and_persist("m1", repo, reference_data, clock=_clock)

        assert result.snapshot.legality_status == LegalityStatus.ILLEGAL
        notes = result.snapshot.legality_notes
        assert notes.startswith(
            "Ref: TEILEGUTACHTEN Teilegutachten usually requires inspection and registration."
        )
        assert "[regional_by_exhaust_noise] [BY] Auspufflaerm-Kontrollen" in notes
        assert result.violations[0].legal_references[0].law_id == "stvo_30"

    def test_no_match_records_evidence(self, fake_db, repo, reference_data):
        seed_modification(
            fake_db,
            "m1",
            "Spoiler X",
            brand="NoName",
            category="AERO",
            documents=[{"type": "TEILEGUTACHTEN"}],
        )
        snapshot = recompute_and_persist("m1", repo, reference_data, clock=_clock).snapshot
        assert snapshot.legality_status == LegalityStatus.UNKNOWN
        assert snapshot.legality_approval_type is None
        assert snapshot.legality_notes == "Evidence: TEILEGUTACHTEN"

    def test_idempotent_with_same_clock(self, fake_db, repo, reference_data):
        seed_modification(
            fake_db,
            "m1",
            "V3 Coilovers",
            brand="KW",
            category="SUSPENSION",
            user_parameters={"clearanceLoaded": 90, "trackWidthChange": 30},
            listing_ids=["l1"],
        )
        recompute_and_persist("m1", repo, reference_data, clock=_clock)
        first = dict(_mod_row(fake_db, "m1"))
        first_listing = dict(_listing_row(fake_db, "l1"))

        recompute_and_persist("m1", repo, reference_data, clock=_clock)
        assert _mod_row(fake_db, "m1") == first
        assert _listing_row(fake_db, "l1") == first_listing

    def test_not_found(self, repo, reference_data):
        with pytest.raises(ModificationNotFoundError):
            recompute_and_persist("missing", repo, reference_data, clock=_clock)

    def test_overlay_outage_does_not_fail_recompute(self, fake_db, repo, reference_data):
        seed_modification(fake_db, "m1", "V3 Coilovers", brand="KW", category="SUSPENSION")
        fake_db.fail("legality_references", "select")
        fake_db.fail("cars", "select")

        snapshot = recompute_and_persist("m1", repo, reference_data, clock=_clock).snapshot
        assert snapshot.legality_status == LegalityStatus.REGISTRATION_REQUIRED


class TestPersistence:
    def test_listings_mirror_snapshot(self, fake_db, repo, reference_data):
        seed_modification(
            fake_db,
            "m1",
            "Federn",
            brand="H&R",
            category="SUSPENSION",
            approvals=[{"approval_type": "ABE", "approval_number": "KBA 43234"}],
            listing_ids=["l1", "l2"],
        )
        result = recompute_and_persist("m1", repo, reference_data, clock=_clock)

        assert result.listings_updated == 2
        listing = _listing_row(fake_db, "l1")
        assert listing["legality_status"] == "FULLY_LEGAL"
        assert listing["is_fully_legal"] is True
        assert listing["requires_registration"] is False
        assert listing["requires_inspection"] is False
        assert listing["legality_last_checked_at"] == result.snapshot.to_row()["legality_last_checked_at"]

    def test_failed_listing_is_reported_not_raised(self, fake_db, repo, reference_data):
        seed_modification(
            fake_db, "m1", "V3 Coilovers", brand="KW", category="SUSPENSION", listing_ids=["l1", "l2"]
        )
        fake_db.fail_row_update("part_listings", "l1")

        result = recompute_and_persist("m1", repo, reference_data, clock=_clock)
        assert result.listings_updated == 1
        assert result.failed_listing_ids == ["l1"]
        assert _listing_row(fake_db, "l2")["requires_registration"] is True
        assert "legality_status" not in _listing_row(fake_db, "l1")

    def test_snapshot_write_failure(self, fake_db, repo, reference_data):
        seed_modification(fake_db, "m1", "V3 Coilovers", brand="KW")
        fake_db.fail("modifications", "update")
        with pytest.raises(SnapshotPersistenceError) as exc_info:
            recompute_and_persist("m1", repo, reference_data, clock=_clock)
        assert exc_info.value.modification_id == "m1"

    def test_listing_enumeration_failure(self, fake_db, repo, reference_data):
        seed_modification(fake_db, "m1", "V3 Coilovers", brand="KW")
        fake_db.fail("part_listings", "select")
        with pytest.raises(SnapshotPersistenceError):
            recompute_and_persist("m1", repo, reference_data, clock=_clock)
        assert "legality_status" in _mod_row(fake_db, "m1")

    def test_quiet_variant_swallows_failures(self, fake_db, repo, reference_data):
        seed_modification(fake_db, "m1", "V3 Coilovers", brand="KW")
        fake_db.fail("modifications", "update")
        assert recompute_legality_quietly("m1", repo, reference_data, clock=_clock) is None

    def test_quiet_variant_returns_result(self, fake_db, repo, reference_data):
        seed_modification(fake_db, "m1", "V3 Coilovers", brand="KW")
        result = recompute_legality_quietly("m1", repo, reference_data, clock=_clock)
        assert result is not None
        assert result.snapshot.legality_last_checked_at == FIXED_NOW


# =============================================================================
# Notes
# =============================================================================


class TestBuildNotes:
    def test_empty(self):
        assert build_notes(None, [], []) is None

    def test_evidence_only_without_match(self):
        notes = build_notes(None, [EvidenceType.ABE, EvidenceType.ECE], [])
        assert notes == "Evidence: ABE, ECE"
