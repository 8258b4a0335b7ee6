"""
Shared pytest fixtures for the Hubo test suite.

    app                        testing app with tables created once per session
    clean_db (autouse)         app context per test; rows emptied afterwards
    client                     Flask test client
    make_project / make_task   ORM factories for arbitrary starting states
    install_generator          swap the app's task generator for one test
"""

import pytest

from hubo import create_app
from hubo.models import db as _db
from hubo.models.project import Project
from hubo.models.task import Task


@pytest.fixture(scope="session")
def app():
    application = create_app("testing")
    with application.app_context():
        _db.create_all()
    yield application
    with application.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def clean_db(app):
    """Run each test inside an app context and empty every table after it."""
    with app.app_context():
        yield
        _db.session.rollback()
        for table in reversed(_db.metadata.sorted_tables):
            _db.session.execute(table.delete())
        _db.session.commit()


@pytest.fixture()
def client(app):
    return app.test_client()


# ── ORM factories (bypass the API to set arbitrary starting states) ──────


@pytest.fixture()
def make_project():
    def _make(**overrides):
        data = {"title": "Customer churn predictor", "description": "Predict churn"}
        data.update(overrides)
        project = Project(**data)
        _db.session.add(project)
        _db.session.commit()
        return project
    return _make


@pytest.fixture()
def make_task():
    def _make(project, **overrides):
        data = {
            "project_id": project.id,
            "title": "Validate business case",
            "backlog": project.backlog,
            "status": "unassigned",
        }
        data.update(overrides)
        task = Task(**data)
        _db.session.add(task)
        _db.session.commit()
        return task
    return _make


# ── Task generator override ──────────────────────────────────────────────


@pytest.fixture()
def install_generator(app):
    """Install a generator on the app for one test; restore the lazy default after."""
    def _install(generator):
        app._task_generator = generator
        return generator
    yield _install
    if hasattr(app, "_task_generator"):
        del app._task_generator
