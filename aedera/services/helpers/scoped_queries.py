"""
Project-scoped query helpers.

Every get-by-id in the scenario services goes through these helpers
instead of db.session.get(Model, pk). A bare .get() would happily return
a version or line that belongs to another project.

Usage:
    version = get_scoped(ScenarioVersion, version_id, project_id=project_id)
    line = get_scoped(BoqLine, line_id, project_id=project_id)

    # Row-lock the version for the rest of the transaction
    version = get_scoped(ScenarioVersion, version_id, project_id=project_id, for_update=True)

A missing project_id, or a model without a project_id column, raises
ValueError at call time so the bug surfaces during development/testing
rather than silently allowing an unscoped lookup.
"""

import logging

from sqlalchemy import select

from aedera.core.exceptions import NotFoundError
from aedera.models import db

logger = logging.getLogger(__name__)


def get_scoped(model, pk, *, project_id: int | None = None, for_update: bool = False):
    """Fetch a single entity by PK within one project.

    Args:
        model: SQLAlchemy model class with `id` and `project_id` columns.
        pk: Primary key value to look up.
        project_id: Owning project; mandatory.
        for_update: Issue SELECT ... FOR UPDATE (ignored by SQLite).

    Returns:
        The model instance if found within the project.

    Raises:
        ValueError: If project_id is missing or the model has no project_id column.
        NotFoundError: If the entity does not exist OR belongs to another project.
    """
    if project_id is None:
        raise ValueError(
            f"{model.__name__} id={pk} requires a project_id scope. "
            "Unscoped lookups are forbidden."
        )
    if not hasattr(model, "project_id"):
        raise ValueError(
            f"{model.__name__} has no project_id column; refusing an unscoped lookup."
        )

    stmt = select(model).where(model.id == pk, model.project_id == project_id)
    if for_update:
        stmt = stmt.with_for_update()

    result = db.session.execute(stmt).scalar_one_or_none()
    if result is None:
        logger.debug("get_scoped: %s id=%s not found in project_id=%s", model.__name__, pk, project_id)
        raise NotFoundError(resource=model.__name__, resource_id=pk)
    return result

