"""Database access for modifications, listings and the legality reference overlay.

Uses the shared Supabase client. All methods are synchronous; async route
handlers move them off the event loop with ``asyncio.to_thread``.
"""

import time
from typing import Any, Iterable, Optional

from supabase import Client

from buildpass.core.enums import Category
from buildpass.core.logging import log_db_query
from buildpass.models.legality import CommunityProof
from buildpass.models.modification import (
    ApprovalDocument,
    Document,
    ModificationRecord,
    UserParameters,
)
from buildpass.models.reference import ReferenceEntry
from buildpass.utils.converters import optional_str, parse_json_object

REFERENCE_COLUMNS = (
    "id, fingerprint, brand, part_name, category, subcategory, "
    "vehicle_compatibility, approval_type, approval_number, source_id, "
    "source_url, restrictions_json, valid_from, valid_until, is_synthetic, "
    "updated_at, notes_de, notes_en"
)

MODIFICATION_COLUMNS = (
    "id, part_name, brand, category, tuv_status, user_parameters_json, log_entry_id"
)


def _rows(result: Any) -> list[dict[str, Any]]:
    if result.data and isinstance(result.data, list):
        return [row for row in result.data if isinstance(row, dict)]
    return []


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so user text matches literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def row_to_reference(row: dict[str, Any]) -> ReferenceEntry:
    """Map a legality_references row to a ReferenceEntry.

    ``restrictions_json`` carries both the restriction list and the
    structured ``criticalParameters`` thresholds.
    """
    extra = parse_json_object(row.get("restrictions_json")) or {}
    critical = extra.get("criticalParameters")
    return ReferenceEntry(
        id=optional_str(row.get("id")),
        fingerprint=optional_str(row.get("fingerprint")),
        brand=str(row.get("brand") or ""),
        part_name=str(row.get("part_name") or ""),
        category=row.get("category"),
        subcategory=row.get("subcategory"),
        vehicle_compatibility=row.get("vehicle_compatibility"),
        approval_type=row.get("approval_type"),
        approval_number=row.get("approval_number"),
        source_id=str(row.get("source_id") or "manufacturer"),
        source_url=row.get("source_url"),
        restrictions=extra.get("restrictions"),
        critical_parameters=critical if isinstance(critical, dict) else None,
        valid_from=row.get("valid_from"),
        valid_until=row.get("valid_until"),
        is_synthetic=bool(row.get("is_synthetic", False)),
        updated_at=row.get("updated_at"),
        notes_de=row.get("notes_de"),
        notes_en=row.get("notes_en"),
    )


def reference_to_row(entry: ReferenceEntry) -> dict[str, Any]:
    """Map a ReferenceEntry to an upsert row keyed by fingerprint."""
    extra: dict[str, Any] = {}
    if entry.restrictions:
        extra["restrictions"] = entry.restrictions
    if entry.critical_parameters and not entry.critical_parameters.is_empty():
        extra["criticalParameters"] = entry.critical_parameters.model_dump(
            by_alias=True, exclude_none=True
        )
    return {
        "fingerprint": entry.identity,
        "brand": entry.brand,
        "part_name": entry.part_name,
        "category": entry.category.value if entry.category else None,
        "subcategory": entry.subcategory,
        "vehicle_compatibility": entry.vehicle_compatibility,
        "approval_type": entry.approval_type.value,
        "approval_number": entry.approval_number,
        "source_id": entry.source_id,
        "source_url": entry.source_url,
        "restrictions_json": extra or None,
        "valid_from": entry.valid_from.isoformat() if entry.valid_from else None,
        "valid_until": entry.valid_until.isoformat() if entry.valid_until else None,
        "is_synthetic": entry.is_synthetic,
        "notes_de": entry.notes_de,
        "notes_en": entry.notes_en,
    }


class LegalityRepository:
    """Thin query layer over the Supabase tables the legality engine touches."""

    def __init__(self, client: Client):
        self.client = client

    # -------------------------------------------------------------------------
    # Reference overlay
    # -------------------------------------------------------------------------

    def find_references_by_approval_number(
        self,
        approval_number: str,
        category: Optional[Category] = None,
        limit: int = 10,
    ) -> list[ReferenceEntry]:
        """Overlay entries whose approval number contains the given text.

        A category narrows the result but entries without a category (or
        filed under ``other``) are kept, since approval numbers are the
        stronger signal. The narrowing runs in the query, before the limit.
        """
        start = time.time()
        query = (
            self.client.table("legality_references")
            .select(REFERENCE_COLUMNS)
            .ilike("approval_number", f"%{_escape_like(approval_number.strip())}%")
        )
        if category is not None:
            query = query.or_(
                f"category.eq.{category.value},category.is.null,"
                f"category.eq.{Category.OTHER.value}"
            )
        result = (
            query.order("is_synthetic").order("updated_at", desc=True).limit(limit).execute()
        )
        log_db_query("by_approval_number", "legality_references", (time.time() - start) * 1000)
        return [row_to_reference(row) for row in _rows(result)]

    def find_references_by_brand(
        self,
        brand: str,
        category: Optional[Category] = None,
        limit: int = 10,
    ) -> list[ReferenceEntry]:
        """Overlay entries for a brand (case-insensitive equality) and optional category."""
        start = time.time()
        query = (
            self.client.table("legality_references")
            .select(REFERENCE_COLUMNS)
            .ilike("brand", _escape_like(brand.strip()))
        )
        if category is not None:
            query = query.eq("category", category.value)
        result = (
            query.order("is_synthetic").order("updated_at", desc=True).limit(limit).execute()
        )
        log_db_query("by_brand", "legality_references", (time.time() - start) * 1000)
        return [row_to_reference(row) for row in _rows(result)]

    def upsert_reference_entries(
        self, entries: Iterable[ReferenceEntry], batch_size: int = 500
    ) -> int:
        """Upsert entries keyed on fingerprint. Returns the number of rows sent."""
        rows = [reference_to_row(e) for e in entries]
        for i in range(0, len(rows), batch_size):
            batch = rows[i : i + batch_size]
            start = time.time()
            (
                self.client.table("legality_references")
                .upsert(batch, on_conflict="fingerprint")
                .execute()
            )
            log_db_query("upsert", "legality_references", (time.time() - start) * 1000)
        return len(rows)

    # -------------------------------------------------------------------------
    # Modifications
    # -------------------------------------------------------------------------

    def _fetch_evidence(
        self, modification_ids: list[str]
    ) -> tuple[dict[str, list[Document]], dict[str, list[ApprovalDocument]]]:
        docs: dict[str, list[Document]] = {mid: [] for mid in modification_ids}
        approvals: dict[str, list[ApprovalDocument]] = {mid: [] for mid in modification_ids}
        if not modification_ids:
            return docs, approvals

        start = time.time()
        doc_result = (
            self.client.table("modification_documents")
            .select("modification_id, type, document_number")
            .in_("modification_id", modification_ids)
            .execute()
        )
        for row in _rows(doc_result):
            mid = str(row.get("modification_id"))
            if mid in docs:
                docs[mid].append(
                    Document(
                        type=optional_str(row.get("type")),
                        document_number=optional_str(row.get("document_number")),
                    )
                )

        approval_result = (
            self.client.table("approval_documents")
            .select(
                "modification_id, approval_type, approval_number, "
                "issuing_authority, issue_date, valid_until"
            )
            .in_("modification_id", modification_ids)
            .execute()
        )
        for row in _rows(approval_result):
            mid = str(row.get("modification_id"))
            if mid in approvals:
                approvals[mid].append(
                    ApprovalDocument(
                        approval_type=optional_str(row.get("approval_type")),
                        approval_number=optional_str(row.get("approval_number")),
                        issuing_authority=optional_str(row.get("issuing_authority")),
                        issue_date=optional_str(row.get("issue_date")),
                        valid_until=optional_str(row.get("valid_until")),
                    )
                )
        log_db_query("evidence", "modification_documents", (time.time() - start) * 1000)
        return docs, approvals

    @staticmethod
    def _row_to_modification(
        row: dict[str, Any],
        documents: list[Document],
        approvals: list[ApprovalDocument],
    ) -> ModificationRecord:
        return ModificationRecord(
            id=str(row["id"]),
            part_name=str(row.get("part_name") or ""),
            brand=row.get("brand"),
            category=row.get("category"),
            tuv_status=row.get("tuv_status"),
            user_parameters=UserParameters.from_mapping(row.get("user_parameters_json")),
            documents=documents,
            approval_documents=approvals,
            log_entry_id=row.get("log_entry_id"),
        )

    def fetch_modification(self, modification_id: str) -> ModificationRecord | None:
        """Load a modification with its documents and approvals (region not resolved)."""
        start = time.time()
        result = (
            self.client.table("modifications")
            .select(MODIFICATION_COLUMNS)
            .eq("id", modification_id)
            .limit(1)
            .execute()
        )
        log_db_query("fetch", "modifications", (time.time() - start) * 1000)

        rows = _rows(result)
        if not rows:
            return None
        row = rows[0]
        mid = str(row["id"])
        docs, approvals = self._fetch_evidence([mid])
        return self._row_to_modification(row, docs[mid], approvals[mid])

    def fetch_state_id(self, log_entry_id: str | None) -> str | None:
        """Registered federal state of the car a log entry belongs to."""
        if not log_entry_id:
            return None
        start = time.time()
        entry = (
            self.client.table("log_entries")
            .select("id, car_id")
            .eq("id", log_entry_id)
            .limit(1)
            .execute()
        )
        entry_rows = _rows(entry)
        car_id = entry_rows[0].get("car_id") if entry_rows else None
        if not car_id:
            return None
        car = self.client.table("cars").select("id, state_id").eq("id", car_id).limit(1).execute()
        log_db_query("state_id", "cars", (time.time() - start) * 1000)
        car_rows = _rows(car)
        return optional_str(car_rows[0].get("state_id")) if car_rows else None

    def list_car_modifications(self, car_id: str) -> list[ModificationRecord]:
        """All modifications logged on a car, with their evidence."""
        start = time.time()
        entries = (
            self.client.table("log_entries").select("id").eq("car_id", car_id).execute()
        )
        entry_ids = [str(r["id"]) for r in _rows(entries) if r.get("id") is not None]
        if not entry_ids:
            return []

        mods = (
            self.client.table("modifications")
            .select(MODIFICATION_COLUMNS)
            .in_("log_entry_id", entry_ids)
            .execute()
        )
        log_db_query("list_by_car", "modifications", (time.time() - start) * 1000)

        mod_rows = _rows(mods)
        ids = [str(r["id"]) for r in mod_rows]
        docs, approvals = self._fetch_evidence(ids)
        return [
            self._row_to_modification(row, docs[str(row["id"])], approvals[str(row["id"])])
            for row in mod_rows
        ]

    def update_modification_snapshot(
        self, modification_id: str, snapshot_row: dict[str, Any]
    ) -> None:
        start = time.time()
        self.client.table("modifications").update(snapshot_row).eq(
            "id", modification_id
        ).execute()
        log_db_query("update_snapshot", "modifications", (time.time() - start) * 1000)

    # -------------------------------------------------------------------------
    # Listings
    # -------------------------------------------------------------------------

    def list_listing_ids(self, modification_id: str) -> list[str]:
        start = time.time()
        result = (
            self.client.table("part_listings")
            .select("id")
            .eq("modification_id", modification_id)
            .order("id")
            .execute()
        )
        log_db_query("list_by_modification", "part_listings", (time.time() - start) * 1000)
        return [str(r["id"]) for r in _rows(result) if r.get("id") is not None]

    def update_listing_legality(self, listing_id: str, mirror_row: dict[str, Any]) -> None:
        start = time.time()
        self.client.table("part_listings").update(mirror_row).eq("id", listing_id).execute()
        log_db_query("update_mirror", "part_listings", (time.time() - start) * 1000)

    # -------------------------------------------------------------------------
    # Community contributions
    # -------------------------------------------------------------------------

    def find_community_proofs(
        self, brand: str, part_name: str, limit: int = 3
    ) -> list[CommunityProof]:
        """Approved contributions on modifications of the same brand and part.

        Brand must match exactly; the modification's part name must contain
        the queried part name (case-insensitive).
        """
        start = time.time()
        mods = (
            self.client.table("modifications")
            .select("id, part_name")
            .eq("brand", brand.strip())
            .execute()
        )
        needle = part_name.strip().lower()
        mod_ids = [
            str(r["id"])
            for r in _rows(mods)
            if needle in str(r.get("part_name") or "").lower()
        ]
        if not mod_ids:
            log_db_query("community_proofs", "legality_contributions", (time.time() - start) * 1000)
            return []

        result = (
            self.client.table("legality_contributions")
            .select(
                "id, approval_type, approval_number, inspection_org, "
                "inspection_date, notes, has_documents, created_at"
            )
            .eq("status", "APPROVED")
            .in_("modification_id", mod_ids)
            .order("inspection_date", desc=True)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        log_db_query("community_proofs", "legality_contributions", (time.time() - start) * 1000)

        return [
            CommunityProof(
                id=str(row["id"]),
                approval_type=optional_str(row.get("approval_type")),
                approval_number=optional_str(row.get("approval_number")),
                inspection_org=optional_str(row.get("inspection_org")),
                inspection_date=optional_str(row.get("inspection_date")),
                notes=optional_str(row.get("notes")),
                has_documents=bool(row.get("has_documents", False)),
                created_at=optional_str(row.get("created_at")),
            )
            for row in _rows(result)
        ]

    def ping(self) -> None:
        """Cheapest possible round trip, for health checks."""
        self.client.table("legality_references").select("id").limit(1).execute()
