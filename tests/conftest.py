import json
import os
from datetime import UTC, datetime, timedelta

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# In-memory DB and no startup seeding for tests
os.environ["DATABASE_PATH"] = ":memory:"
os.environ["DATABASE_URL"] = ""
os.environ["SEED_SYSTEM_ALERTS"] = "false"

from cds.database import close_db, init_db
from cds.main import app
from cds.models.alert import AlertCreate
from cds.services.alert_catalog import create_alert


@pytest_asyncio.fixture
async def db():
    """Provide a fresh in-memory database for each test."""
    import cds.database as db_mod

    # Close any existing connection
    if db_mod._db is not None:
        try:
            await db_mod._db.close()
        except Exception:
            pass
    db_mod._db = None

    # Override module-level config directly (avoids fragile importlib.reload)
    db_mod.DATABASE_PATH = ":memory:"
    db_mod.DATABASE_URL = ""

    await init_db()
    database = await db_mod.get_db()
    yield database
    await close_db()


@pytest_asyncio.fixture
async def async_client(db):
    """Provide an async httpx client for HTTP tests."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


class ClinicalRecords:
    """Inserts patient clinical data straight into the test database."""

    def __init__(self, database):
        self.db = database

    async def add_patient(
        self,
        patient_id: str = "patient-1",
        date_of_birth: str | None = "1970-06-15",
        gender: str | None = "male",
        active_medications: list[str] | None = None,
        demographics: dict | None = None,
    ) -> str:
        await self.db.execute(
            "INSERT INTO patients (id, date_of_birth, gender, demographics, active_medications, created_at) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (
                patient_id,
                date_of_birth,
                gender,
                json.dumps(demographics or {}),
                json.dumps(active_medications or []),
                datetime.now(UTC).isoformat(),
            ),
        )
        await self.db.commit()
        return patient_id

    async def add_diagnosis(self, patient_id: str, code: str, is_active: bool = True) -> None:
        await self.db.execute(
            "INSERT INTO diagnoses (patient_id, code, status, is_active) VALUES (?, ?, ?, ?)",
            (patient_id, code, "active" if is_active else "resolved", int(is_active)),
        )
        await self.db.commit()

    async def add_medication(
        self,
        medication_id: str,
        name: str | None = None,
        generic_name: str | None = None,
        classification: str | None = None,
        interactions: list[tuple[str, str, str]] | None = None,
    ) -> str:
        declared = [
            {"interacts_with_id": target, "severity": severity, "description": description}
            for target, severity, description in (interactions or [])
        ]
        await self.db.execute(
            "INSERT INTO medications (id, name, generic_name, classification, interactions) VALUES (?, ?, ?, ?, ?)",
            (
                medication_id,
                name or medication_id.title(),
                generic_name or medication_id,
                classification,
                json.dumps(declared),
            ),
        )
        await self.db.commit()
        return medication_id

    async def add_lab(self, patient_id: str, test_code: str, value: str, days_ago: float = 1) -> None:
        result_date = datetime.now(UTC) - timedelta(days=days_ago)
        await self.db.execute(
            "INSERT INTO lab_results (patient_id, test_code, value, result_date) VALUES (?, ?, ?, ?)",
            (patient_id, test_code, value, result_date.isoformat()),
        )
        await self.db.commit()

    async def add_allergy(
        self,
        allergy_id: str,
        patient_id: str,
        medication_id: str | None = None,
        allergen_class: str | None = None,
        reaction: str = "hives",
        allergen_type: str = "medication",
        is_active: bool = True,
    ) -> str:
        await self.db.execute(
            "INSERT INTO allergies (id, patient_id, allergen, allergen_type, medication_id, allergen_class, "
            "reaction, is_active) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                allergy_id,
                patient_id,
                medication_id or allergen_class or "",
                allergen_type,
                medication_id,
                allergen_class,
                reaction,
                int(is_active),
            ),
        )
        await self.db.commit()
        return allergy_id


@pytest.fixture
def records(db):
    return ClinicalRecords(db)


@pytest.fixture
def make_alert(db):
    """Create an alert definition through the catalog with sensible defaults."""

    async def _make(**overrides):
        data = {
            "title": "Diabetes follow-up",
            "description": "Patient has diabetes.",
            "category": "diagnosis-alert",
            "severity": "warning",
            "trigger_conditions": [{"type": "diagnosis", "codes": ["E11"]}],
            "source": {"name": "Test guideline"},
            "recommended_action": {"text": "Review glycaemic control", "action_type": "follow-up"},
        }
        data.update(overrides)
        return await create_alert(AlertCreate.model_validate(data))

    return _make
