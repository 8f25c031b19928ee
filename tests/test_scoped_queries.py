"""
Tests for aedera/services/helpers/scoped_queries.py

Every version and line lookup in the services is scoped by project; a
row of another project must be indistinguishable from a missing one.
"""

import pytest

from aedera.core.exceptions import NotFoundError
from aedera.models import db
from aedera.models.project import Project
from aedera.models.scenario import ScenarioVersion
from aedera.models.wbs import WbsLevelSetting
from aedera.services.helpers.scoped_queries import get_scoped


class TestGetScoped:

    def test_missing_project_scope_raises_value_error(self, draft_version):
        with pytest.raises(ValueError, match="requires a project_id scope"):
            get_scoped(ScenarioVersion, draft_version["id"])

    def test_model_without_project_column_raises_value_error(self):
        with pytest.raises(ValueError, match="no project_id column"):
            get_scoped(Project, 1, project_id=1)

    def test_matching_project_returns_entity(self, project, draft_version):
        version = get_scoped(ScenarioVersion, draft_version["id"], project_id=project.id)
        assert version.version_no == 1

    def test_other_project_raises_not_found(self, project, draft_version):
        other = Project(code="PRJ-002", name="Scuola Sud")
        db.session.add(other)
        db.session.commit()

        with pytest.raises(NotFoundError) as exc_info:
            get_scoped(ScenarioVersion, draft_version["id"], project_id=other.id)
        assert exc_info.value.resource == "ScenarioVersion"

    def test_for_update_returns_the_same_row(self, project, wbs_levels):
        level = db.session.query(WbsLevelSetting).filter_by(level_key="LOTTO").one()

        locked = get_scoped(WbsLevelSetting, level.id, project_id=project.id, for_update=True)

        assert locked is level
