"""Pytest fixtures."""

import tempfile
from collections.abc import Callable, Generator
from datetime import date
from pathlib import Path
from typing import Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.db.schema import Base, Project, RoutineTask, Task, TaskPriority, TaskStatus
from app.db.session import get_db
from app.main import app

ORG_ID = "org-4d"


@pytest.fixture
def test_engine() -> Generator[Engine, None, None]:
    """Isolated SQLite engine on a fresh temp file, tables created."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        test_db_path = Path(f.name)
    engine = create_engine(
        f"sqlite:///{test_db_path}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        engine.dispose()
        try:
            test_db_path.unlink(missing_ok=True)
        except OSError:
            pass


@pytest.fixture
def session_factory(test_engine: Engine) -> sessionmaker:
    return sessionmaker(test_engine, expire_on_commit=False)


@pytest.fixture
def client_with_test_db(test_engine: Engine) -> Generator[TestClient, None, None]:
    """
    FastAPI test client with get_db overridden to use the isolated SQLite DB.

    Not entered as a context manager, so the lifespan (table creation,
    scheduler) does not run.
    """

    def override_get_db() -> Generator[Session, None, None]:
        with Session(test_engine) as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def seed_activity(session_factory: sessionmaker) -> Callable[..., None]:
    """Insert one project with tasks and routines for an organization."""

    def _seed(
        *,
        organization_id: str = ORG_ID,
        project_name: str = "Website Renewal",
        project_progress: int = 65,
        tasks: Optional[list[dict]] = None,
        routines: Optional[list[dict]] = None,
    ) -> None:
        with session_factory() as session:
            project = Project(
                organization_id=organization_id,
                name=project_name,
                progress=project_progress,
            )
            session.add(project)
            session.flush()
            for index, fields in enumerate(tasks or []):
                session.add(
                    Task(
                        project_id=project.id,
                        name=fields["name"],
                        assignee=fields.get("assignee"),
                        status=fields.get("status", TaskStatus.ACTIVE),
                        priority=fields.get("priority", TaskPriority.MEDIUM),
                        progress=fields.get("progress", 0),
                        due_date=fields.get("due_date"),
                        completed_date=fields.get("completed_date"),
                        sort_order=index,
                    )
                )
            for fields in routines or []:
                session.add(
                    RoutineTask(
                        organization_id=organization_id,
                        scheduled_date=fields.get("scheduled_date", date.today()),
                        name=fields["name"],
                        assignee=fields.get("assignee"),
                        time=fields.get("time"),
                        completed=fields.get("completed", False),
                        skip_reason=fields.get("skip_reason"),
                    )
                )
            session.commit()

    return _seed
