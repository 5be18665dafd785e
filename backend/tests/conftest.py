from __future__ import annotations

from datetime import date
import os
import sys
from pathlib import Path
from typing import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

# Ensure the project root (which exposes the ``backend`` package) is on ``sys.path``
PROJECT_ROOT = Path(__file__).resolve().parents[2]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("AUTO_CREATE_SCHEMA", "0")

from backend.app.database import Base, get_db
from backend.app.main import app
from backend.app import models
from backend.app.services.pricing import PricingConfig, SemesterTerm, get_pricing_config

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture(scope="session", autouse=True)
def setup_database() -> Generator[None, None, None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db_session() -> Generator[Session, None, None]:
    connection = engine.connect()
    transaction = connection.begin()
    session = TestingSessionLocal(bind=connection)
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture
def pricing() -> PricingConfig:
    return PricingConfig(
        single_student_fee=25000,
        additional_sibling_fee=20000,
        monthly_fee=5000,
        max_family_size=6,
        semester=SemesterTerm(start=date(2026, 1, 1), end=date(2026, 7, 1)),
    )


@pytest.fixture
def client(db_session: Session, pricing: PricingConfig) -> Generator[TestClient, None, None]:
    def override_get_db() -> Generator[Session, None, None]:
        try:
            yield db_session
        finally:
            db_session.expire_all()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_pricing_config] = lambda: pricing
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.pop(get_db, None)
    app.dependency_overrides.pop(get_pricing_config, None)


@pytest.fixture
def seed_students(db_session: Session) -> dict[str, models.Student]:
    students = {
        "ali": models.Student(full_name="Ali Hassan"),
        "sara": models.Student(full_name="Sara Hassan"),
        "omar": models.Student(full_name="Omar Hassan"),
        "zainab": models.Student(
            full_name="Zainab Kareem", billing_preference=models.BillingMode.MONTHLY
        ),
    }
    db_session.add_all(students.values())
    db_session.commit()
    return students
