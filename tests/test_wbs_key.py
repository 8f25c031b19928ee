"""
Tests for aedera/services/wbs_key.py

Pure functions, no database rows are needed.
"""

import pytest

from aedera.core.exceptions import ValidationError
from aedera.services.wbs_key import build_wbs_key, clean_wbs_map


class TestCleanWbsMap:

    def test_none_is_empty_map(self):
        assert clean_wbs_map(None) == {}

    def test_values_and_keys_are_trimmed(self):
        assert clean_wbs_map({" LOTTO ": " A ", "OPERA": None}) == {"LOTTO": "A", "OPERA": ""}

    def test_blank_level_keys_are_dropped(self):
        assert clean_wbs_map({"  ": "x", "LOTTO": "A"}) == {"LOTTO": "A"}

    def test_non_object_raises(self):
        with pytest.raises(ValidationError, match="wbs must be an object"):
            clean_wbs_map(["LOTTO", "A"])


class TestBuildWbsKey:

    def test_key_follows_required_level_order(self):
        key = build_wbs_key(["LOTTO", "OPERA"], {"OPERA": " 02 ", "LOTTO": "A"}, "LINE")
        assert key == "LOTTO=A|OPERA=02"

    def test_optional_levels_are_ignored(self):
        key = build_wbs_key(["LOTTO"], {"LOTTO": "A", "CAPITOLO": "C1"}, "LINE")
        assert key == "LOTTO=A"

    def test_no_required_levels_gives_empty_key(self):
        assert build_wbs_key([], {"LOTTO": "A"}, "LINE") == ""

    def test_line_missing_required_level_raises_with_level_detail(self):
        with pytest.raises(ValidationError, match="missing required WBS level: OPERA") as exc_info:
            build_wbs_key(["LOTTO", "OPERA"], {"LOTTO": "A", "OPERA": "   "}, "LINE")
        assert exc_info.value.details == {"level": "OPERA"}

    def test_group_rows_render_empty_segments(self):
        key = build_wbs_key(["LOTTO", "OPERA"], {"LOTTO": "A"}, "GROUP")
        assert key == "LOTTO=A|OPERA="

    def test_key_is_deterministic_and_value_sensitive(self):
        levels = ["L1", "L2"]
        first = build_wbs_key(levels, {"L1": "a", "L2": "b"}, "LINE")

        assert build_wbs_key(levels, {"L2": "b", "L1": "a"}, "LINE") == first
        assert build_wbs_key(levels, {"L1": "a", "L2": "c"}, "LINE") != first

    def test_level_order_changes_the_key(self):
        wbs = {"L1": "a", "L2": "b"}
        assert build_wbs_key(["L1", "L2"], wbs, "LINE") != build_wbs_key(["L2", "L1"], wbs, "LINE")
