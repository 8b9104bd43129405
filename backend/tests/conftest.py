"""
Pytest configuration & fixtures for Dosewise backend tests.

Key design decisions:
  - Uses sqlite:///:memory: for speed and isolation.
  - Rate limiting is disabled through APP_ENV=testing.
  - Every test starts from empty tables; fixtures seed a user and
    prescriptions on demand.
"""

import os
import sys
from datetime import date

import pytest

# ── 1. Ensure backend package is importable ──
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# ── 2. Set test environment BEFORE anything else ──
os.environ["DATABASE_URL"] = "sqlite:///:memory:"
os.environ["FLASK_SECRET_KEY"] = "test-secret-key"
os.environ["APP_ENV"] = "testing"

# ── 3. NOW safe to import application modules ──
from dosewise.main import create_app
from dosewise.database import db as _db
from dosewise.models.models import Medicine, Prescription, User


# ═══════════════════════════════════════════
# FIXTURES
# ═══════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """Create application for testing."""
    application = create_app()
    application.config["TESTING"] = True
    return application


@pytest.fixture
def db_session(app):
    """Fresh tables for every test."""
    with app.app_context():
        _db.session.remove()
        _db.drop_all()
        _db.create_all()
        yield _db.session
        _db.session.remove()


@pytest.fixture
def client(app, db_session):
    """Flask test client with database ready."""
    with app.test_client() as c:
        yield c


@pytest.fixture
def user(db_session):
    patient = User(username="patient", name="Test Patient")
    db_session.add(patient)
    db_session.commit()
    return patient


@pytest.fixture
def user_headers(user):
    return {"X-User-Id": user.id, "Content-Type": "application/json"}


@pytest.fixture
def make_prescription(db_session):
    """Factory: persist a prescription with the given medicine field dicts."""

    def _make(owner, medicines, consultation_date=date(2024, 1, 1), **fields):
        prescription = Prescription(
            user_id=owner.id,
            doctor_name=fields.pop("doctor_name", "Dr. Rao"),
            consultation_date=consultation_date,
            **fields,
        )
        for item in medicines:
            params = {"priority_level": "medium", "administration_route": "oral"}
            params.update(item)
            prescription.medicines.append(Medicine(**params))
        db_session.add(prescription)
        db_session.commit()
        return prescription

    return _make


# ═══════════════════════════════════════════
# TRANSIENT BUILDERS  (no database needed)
# ═══════════════════════════════════════════

def build_medicine(med_id, name="Amoxicillin", prescription_id="rx-1", **fields):
    params = {
        "frequency": "once daily",
        "duration": "1 day",
        "priority_level": "medium",
        "administration_route": "oral",
    }
    params.update(fields)
    return Medicine(id=med_id, prescription_id=prescription_id, name=name, **params)


def build_prescription(rx_id="rx-1", user_id="user-1", **fields):
    params = {"consultation_date": date(2024, 1, 1), "priority_level": "medium"}
    params.update(fields)
    return Prescription(id=rx_id, user_id=user_id, file_name="manual-entry", **params)
