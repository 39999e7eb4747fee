"""Fixture condivise: database SQLite in memoria ricreato per ogni test."""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["TELEGRAM_BOT_TOKEN"] = ""
os.environ["TELEGRAM_CHAT_ID"] = ""

from datetime import date, time  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

import database  # noqa: E402
import models  # noqa: E402
from catalog import end_time_for, normalize_date  # noqa: E402
from main import app, get_today  # noqa: E402
from security import hash_password  # noqa: E402

TODAY = date(2024, 3, 15)
ADMIN = ("admin", "admin123")


@pytest.fixture
def db():
    database.Base.metadata.drop_all(bind=database.engine)
    database.Base.metadata.create_all(bind=database.engine)
    session = database.SessionLocal()
    database.seed_superadmin(session)
    yield session
    session.close()


@pytest.fixture
def employee(db):
    emp = models.Employee(
        full_name="Luca Persicu",
        email="luca@example.com",
        fiscal_code="PRSLCU80A01H501X",
        birth_year=1980,
        monthly_salary=1500,
        color="#aabbcc",
    )
    db.add(emp)
    db.commit()
    db.refresh(emp)
    return emp


@pytest.fixture
def employee_user(db, employee):
    user = models.User(
        username="luca",
        password_hash=hash_password("segreta"),
        role=models.ROLE_EMPLOYEE,
        employee_id=employee.id,
    )
    db.add(user)
    db.commit()
    return ("luca", "segreta")


@pytest.fixture
def client(db):
    app.dependency_overrides[get_today] = lambda: TODAY
    with TestClient(app) as c:
        c.auth = ADMIN
        yield c
    app.dependency_overrides.clear()


def make_appointment(db, employee_id, giorno, **kwargs):
    start = kwargs.pop("start_time", time(10, 0))
    service = kwargs.pop("service_type", "Taglio")
    apt = models.Appointment(
        employee_id=employee_id,
        date=normalize_date(giorno),
        start_time=start,
        end_time=kwargs.pop("end_time", end_time_for(start, service)),
        client_name=kwargs.pop("client_name", "Mario Rossi"),
        service_type=service,
        payment_method=kwargs.pop("payment_method", "da-pagare"),
        **kwargs,
    )
    db.add(apt)
    db.commit()
    db.refresh(apt)
    return apt
