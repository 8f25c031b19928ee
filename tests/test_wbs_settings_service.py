"""
Tests for aedera/services/wbs_settings_service.py

Covers the per-project WBS level settings read by the BOQ reconciler.
"""

import pytest

from aedera.core.exceptions import NotFoundError, ValidationError
from aedera.services import wbs_settings_service as svc


class TestListRequiredLevels:

    def test_returns_enabled_required_levels_in_sort_order(self, project):
        svc.bulk_upsert_levels(project.id, [
            {"level_key": "OPERA", "required": True, "sort_index": 2},
            {"level_key": "LOTTO", "required": True, "sort_index": 1},
            {"level_key": "CAPITOLO", "required": False, "sort_index": 0},
            {"level_key": "ZONA", "required": True, "enabled": False, "sort_index": 0},
        ])

        assert svc.list_required_levels(project.id) == ["LOTTO", "OPERA"]

    def test_project_without_settings_has_no_required_levels(self, project):
        assert svc.list_required_levels(project.id) == []


class TestBulkUpsertLevels:

    def test_first_occurrence_of_a_key_wins(self, project):
        result = svc.bulk_upsert_levels(project.id, [
            {"level_key": "LOTTO", "required": True},
            {"level_key": " LOTTO ", "required": False},
            {"level_key": ""},
        ])

        assert result == {"upserted": 1}
        levels = svc.list_levels(project.id)
        assert len(levels) == 1
        assert levels[0]["level_key"] == "LOTTO"
        assert levels[0]["required"] is True

    def test_update_only_touches_supplied_attributes(self, project):
        svc.bulk_upsert_levels(project.id, [
            {"level_key": "LOTTO", "required": True, "sort_index": 5, "ifc_param_key": "Pset.Lotto"},
        ])
        svc.bulk_upsert_levels(project.id, [{"level_key": "LOTTO", "enabled": False}])

        (level,) = svc.list_levels(project.id)
        assert level["enabled"] is False
        assert level["required"] is True
        assert level["sort_index"] == 5
        assert level["ifc_param_key"] == "Pset.Lotto"

    def test_empty_items_write_nothing(self, project):
        assert svc.bulk_upsert_levels(project.id, []) == {"upserted": 0}

    def test_unknown_project_raises_not_found(self):
        with pytest.raises(NotFoundError):
            svc.bulk_upsert_levels(999_999, [{"level_key": "LOTTO"}])


class TestSortIndexParsing:

    def test_numeric_strings_and_fractions_are_accepted(self, project):
        svc.bulk_upsert_levels(project.id, [
            {"level_key": "LOTTO", "sort_index": "2.5"},
            {"level_key": "OPERA", "sort_index": 7.9},
        ])

        levels = {lvl["level_key"]: lvl["sort_index"] for lvl in svc.list_levels(project.id)}
        assert levels == {"LOTTO": 2, "OPERA": 7}

    def test_blank_sort_index_keeps_existing_value(self, project):
        svc.bulk_upsert_levels(project.id, [{"level_key": "LOTTO", "sort_index": 4}])
        svc.bulk_upsert_levels(project.id, [{"level_key": "LOTTO", "sort_index": ""}])

        assert svc.list_levels(project.id)[0]["sort_index"] == 4

    @pytest.mark.parametrize("bad", [float("inf"), float("nan"), "abc", True])
    def test_non_finite_or_unparseable_sort_index_writes_nothing(self, project, bad):
        with pytest.raises(ValidationError, match="Invalid number") as exc_info:
            svc.bulk_upsert_levels(project.id, [
                {"level_key": "LOTTO", "sort_index": 1},
                {"level_key": "OPERA", "sort_index": bad},
            ])

        assert exc_info.value.details == {"index": 1, "field": "sort_index"}
        assert svc.list_levels(project.id) == []
