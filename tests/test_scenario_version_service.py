"""
Tests for aedera/services/scenario_version_service.py

Coverage:
  1. version_no allocation (max+1, per scenario, retry after a stale read)
  2. active pointer bootstrap and set_active_version
  3. clone copies lines with fresh ids and a flat hierarchy
  4. freeze guards (empty version, idempotent re-freeze)
  5. archive / restore guards
  6. project scoping of every lookup
"""

import pytest

from aedera.core.exceptions import (
    ConflictError,
    NotFoundError,
    ValidationError,
)
from aedera.models import db
from aedera.models.project import Project
from aedera.models.scenario import BoqLine
from aedera.services import boq_line_service
from aedera.services import scenario_version_service as svc


def _add_lines(project_id, version_id, items=None):
    items = items or [
        {"id": "new_g", "row_type": "GROUP", "description": "Opere edili"},
        {"id": "new_1", "parent_line_id": "new_g", "tariff_code": "A.01",
         "qty": 2, "unit_price": 10, "client_key": "row-1"},
    ]
    return boq_line_service.bulk_upsert_lines(project_id, version_id, items)


# ── 1. Numbering ─────────────────────────────────────────────────────────────


class TestVersionNumbering:

    def test_versions_are_numbered_sequentially(self, project):
        numbers = [svc.create_version(project.id, "TENDER")["version_no"] for _ in range(3)]
        assert numbers == [1, 2, 3]

    def test_numbering_is_per_scenario(self, project):
        svc.create_version(project.id, "TENDER")
        svc.create_version(project.id, "TENDER")
        cost = svc.create_version(project.id, "COST")
        assert cost["version_no"] == 1

    def test_legacy_alias_and_case_are_normalised(self, project):
        version = svc.create_version(project.id, "gara")
        assert version["scenario"] == "TENDER"

    def test_unknown_scenario_raises_validation(self, project):
        with pytest.raises(ValidationError, match="Invalid scenario type"):
            svc.create_version(project.id, "BUDGET")

    def test_default_name_uses_scenario_and_number(self, project):
        svc.create_version(project.id, "COST")
        version = svc.create_version(project.id, "COST", name="   ")
        assert version["name"] == "COST v2"

    def test_unknown_project_raises_not_found(self):
        with pytest.raises(NotFoundError):
            svc.create_version(999_999, "TENDER")

    def test_stale_max_read_is_retried_with_next_free_number(self, project, monkeypatch):
        """A concurrent writer took the number we read; the retry picks the next one."""
        svc.create_version(project.id, "TENDER")

        real_next = svc._next_version_no
        calls = []

        def stale_then_real(project_id, scenario):
            calls.append(scenario)
            if len(calls) == 1:
                return 1
            return real_next(project_id, scenario)

        monkeypatch.setattr(svc, "_next_version_no", stale_then_real)
        version = svc.create_version(project.id, "TENDER")

        assert version["version_no"] == 2
        assert len(calls) == 2

    def test_exhausted_retries_raise_conflict(self, project, monkeypatch):
        svc.create_version(project.id, "TENDER")
        monkeypatch.setattr(svc, "_next_version_no", lambda project_id, scenario: 1)

        with pytest.raises(ConflictError):
            svc.create_version(project.id, "TENDER")

        listing = svc.list_versions(project.id, "TENDER")
        assert [v["version_no"] for v in listing["versions"]] == [1]


# ── 2. Active pointer ────────────────────────────────────────────────────────


class TestActiveVersion:

    def test_first_version_becomes_active(self, project):
        v1 = svc.create_version(project.id, "TENDER")
        assert v1["is_active"] is True
        assert svc.list_versions(project.id, "TENDER")["active_version_id"] == v1["id"]

    def test_later_versions_do_not_move_the_pointer(self, project):
        v1 = svc.create_version(project.id, "TENDER")
        v2 = svc.create_version(project.id, "TENDER")

        assert v2["is_active"] is False
        assert svc.list_versions(project.id, "TENDER")["active_version_id"] == v1["id"]

    def test_set_active_version_moves_the_pointer(self, project):
        svc.create_version(project.id, "TENDER")
        v2 = svc.create_version(project.id, "TENDER")

        pointer = svc.set_active_version(project.id, v2["id"])

        assert pointer["version_id"] == v2["id"]
        assert pointer["scenario"] == "TENDER"
        assert svc.get_version(project.id, v2["id"])["is_active"] is True

    def test_archived_version_cannot_be_activated(self, project):
        svc.create_version(project.id, "TENDER")
        v2 = svc.create_version(project.id, "TENDER")
        svc.set_archived(project.id, v2["id"], True)

        with pytest.raises(NotFoundError):
            svc.set_active_version(project.id, v2["id"])

    def test_scenarios_keep_independent_pointers(self, project):
        tender = svc.create_version(project.id, "TENDER")
        cost = svc.create_version(project.id, "COST")

        assert svc.list_versions(project.id, "TENDER")["active_version_id"] == tender["id"]
        assert svc.list_versions(project.id, "COST")["active_version_id"] == cost["id"]


# ── 3. Clone ─────────────────────────────────────────────────────────────────


class TestCloneVersion:

    def test_clone_copies_lines_with_fresh_ids_and_no_parents(self, project, draft_version):
        _add_lines(project.id, draft_version["id"])

        clone = svc.clone_version(project.id, draft_version["id"], name="Offerta rivista")

        assert clone["version_no"] == 2
        assert clone["status"] == "DRAFT"
        assert clone["name"] == "Offerta rivista"
        assert clone["derived_from_version_id"] == draft_version["id"]
        assert clone["is_active"] is False

        source = boq_line_service.list_lines(project.id, draft_version["id"])
        copied = boq_line_service.list_lines(project.id, clone["id"])
        assert len(copied) == len(source) == 2
        assert not {line["id"] for line in source} & {line["id"] for line in copied}
        assert all(line["parent_line_id"] is None for line in copied)
        assert all(line["client_key"] is None for line in copied)
        assert sorted(line["amount"] for line in copied) == [0.0, 20.0]

    def test_clone_leaves_base_untouched(self, project, draft_version):
        _add_lines(project.id, draft_version["id"])
        before = boq_line_service.list_lines(project.id, draft_version["id"])

        svc.clone_version(project.id, draft_version["id"])

        assert boq_line_service.list_lines(project.id, draft_version["id"]) == before

    def test_clone_of_locked_version_is_a_draft(self, project, draft_version):
        _add_lines(project.id, draft_version["id"])
        svc.freeze_version(project.id, draft_version["id"])

        clone = svc.clone_version(project.id, draft_version["id"])

        assert clone["status"] == "DRAFT"

    def test_clone_of_archived_version_raises_not_found(self, project, draft_version):
        v2 = svc.create_version(project.id, "TENDER")
        svc.set_archived(project.id, v2["id"], True)

        with pytest.raises(NotFoundError):
            svc.clone_version(project.id, v2["id"])


# ── 4. Freeze ────────────────────────────────────────────────────────────────


class TestFreezeVersion:

    def test_freeze_locks_and_stamps(self, project, draft_version):
        _add_lines(project.id, draft_version["id"])

        frozen = svc.freeze_version(project.id, draft_version["id"], user_id="alice")

        assert frozen["status"] == "LOCKED"
        assert frozen["locked_at"] is not None
        assert frozen["locked_by_user_id"] == "alice"

    def test_freezing_an_empty_version_is_rejected(self, project, draft_version):
        with pytest.raises(ValidationError, match="cannot freeze an empty version"):
            svc.freeze_version(project.id, draft_version["id"])

    def test_refreeze_is_a_no_op(self, project, draft_version):
        _add_lines(project.id, draft_version["id"])
        first = svc.freeze_version(project.id, draft_version["id"], user_id="alice")

        second = svc.freeze_version(project.id, draft_version["id"], user_id="bob")

        assert second["locked_by_user_id"] == "alice"
        assert second["locked_at"] == first["locked_at"]


# ── 5. Archive / restore ─────────────────────────────────────────────────────


class TestArchiveVersion:

    def test_active_version_cannot_be_archived(self, project, draft_version):
        with pytest.raises(ValidationError, match="cannot archive the active version"):
            svc.set_archived(project.id, draft_version["id"], True)

    def test_former_active_version_can_be_archived_after_repointing(self, project, draft_version):
        v2 = svc.create_version(project.id, "TENDER")
        with pytest.raises(ValidationError):
            svc.set_archived(project.id, draft_version["id"], True)

        svc.set_active_version(project.id, v2["id"])
        archived = svc.set_archived(project.id, draft_version["id"], True)

        assert archived["archived_at"] is not None
        listing = svc.list_versions(project.id, "TENDER")
        assert listing["active_version_id"] == v2["id"]
        assert [v["id"] for v in listing["versions"]] == [v2["id"]]

    def test_archive_hides_from_default_listing(self, project, draft_version):
        v2 = svc.create_version(project.id, "TENDER")

        archived = svc.set_archived(project.id, v2["id"], True, user_id="alice")

        assert archived["archived_at"] is not None
        assert archived["archived_by_user_id"] == "alice"
        ids = [v["id"] for v in svc.list_versions(project.id, "TENDER")["versions"]]
        assert ids == [draft_version["id"]]
        ids = [
            v["id"]
            for v in svc.list_versions(project.id, "TENDER", include_archived=True)["versions"]
        ]
        assert ids == [draft_version["id"], v2["id"]]

    def test_restore_clears_both_archive_fields(self, project, draft_version):
        v2 = svc.create_version(project.id, "TENDER")
        svc.set_archived(project.id, v2["id"], True, user_id="alice")

        restored = svc.set_archived(project.id, v2["id"], False)

        assert restored["archived_at"] is None
        assert restored["archived_by_user_id"] is None

    def test_restoring_a_live_version_is_a_no_op(self, project, draft_version):
        v2 = svc.create_version(project.id, "TENDER")
        assert svc.set_archived(project.id, v2["id"], False)["archived_at"] is None


# ── 6. Scoping ───────────────────────────────────────────────────────────────


class TestProjectScoping:

    def test_version_of_another_project_is_not_found(self, project, draft_version):
        other = Project(code="PRJ-002", name="Scuola Sud")
        db.session.add(other)
        db.session.commit()

        with pytest.raises(NotFoundError):
            svc.get_version(other.id, draft_version["id"])
        with pytest.raises(NotFoundError):
            svc.freeze_version(other.id, draft_version["id"])

    def test_get_version_reports_line_count(self, project, draft_version):
        _add_lines(project.id, draft_version["id"])

        version = svc.get_version(project.id, draft_version["id"])

        assert version["line_count"] == 2
        assert db.session.query(BoqLine).count() == 2
