"""Tests for the combined prescribing-time interaction check."""

import asyncio

import pytest

from cds.errors import InteractionCheckError, NotFoundError
from cds.models.severity import InteractionSeverity
from cds.services import interaction_checker
from cds.services.interaction_checker import check_all_interactions


async def _setup(records):
    await records.add_medication(
        "warfarin",
        classification="anticoagulant",
        interactions=[("aspirin", "severe", "Increased bleeding risk")],
    )
    await records.add_medication("aspirin", classification="nsaid")
    await records.add_medication("amoxicillin", classification="penicillin")
    await records.add_patient("p-1")


async def test_drug_interaction_found(records):
    await _setup(records)
    result = await check_all_interactions("p-1", ["warfarin", "aspirin"])
    assert len(result.drug_interactions) == 1
    finding = result.drug_interactions[0]
    assert finding.medication_ids == ["warfarin", "aspirin"]
    assert finding.severity == InteractionSeverity.SEVERE
    assert result.allergy_interactions == []
    assert result.clinical_alerts == []


async def test_allergy_direct_and_class(records):
    await _setup(records)
    await records.add_allergy("al-1", "p-1", medication_id="aspirin", reaction="angioedema")
    await records.add_allergy("al-2", "p-1", allergen_class="penicillin")
    result = await check_all_interactions("p-1", ["aspirin", "amoxicillin"])
    by_med = {f.medication_id: f for f in result.allergy_interactions}
    assert by_med["aspirin"].severity == InteractionSeverity.CONTRAINDICATED
    assert "angioedema" in by_med["aspirin"].description
    assert by_med["amoxicillin"].severity == InteractionSeverity.SEVERE


async def test_inactive_allergy_ignored(records):
    await _setup(records)
    await records.add_allergy("al-1", "p-1", medication_id="aspirin", is_active=False)
    result = await check_all_interactions("p-1", ["aspirin"])
    assert result.allergy_interactions == []


async def test_duplicate_ids_collapsed(records):
    await _setup(records)
    result = await check_all_interactions("p-1", ["warfarin", "aspirin", "warfarin"])
    assert len(result.drug_interactions) == 1


async def test_unknown_medication(records):
    await _setup(records)
    with pytest.raises(NotFoundError) as exc_info:
        await check_all_interactions("p-1", ["warfarin", "mystery"])
    assert exc_info.value.code == "MEDICATION_NOT_FOUND"
    assert exc_info.value.detail == {"medication_ids": ["mystery"]}


async def test_clinical_alerts_only_with_user(records, make_alert):
    await _setup(records)
    alert = await make_alert(
        title="Anticoagulant on board",
        category="drug-interaction",
        severity="critical",
        trigger_conditions=[{"type": "medication", "codes": ["anticoagulant"]}],
    )
    without_user = await check_all_interactions("p-1", ["warfarin"])
    assert without_user.clinical_alerts == []

    with_user = await check_all_interactions("p-1", ["warfarin"], user_id="dr-1")
    assert [a.id for a in with_user.clinical_alerts] == [alert.id]


async def test_candidate_list_replaces_active_medications(records, make_alert):
    await records.add_medication("warfarin")
    await records.add_medication("metformin")
    await records.add_patient("p-2", active_medications=["warfarin"])
    await make_alert(trigger_conditions=[{"type": "medication", "codes": ["warfarin"]}])
    result = await check_all_interactions("p-2", ["metformin"], user_id="dr-1")
    assert result.clinical_alerts == []


async def test_phase_failure_aborts_whole_check(records, monkeypatch):
    await _setup(records)

    async def broken(patient_id):
        raise RuntimeError("allergy store down")

    monkeypatch.setattr(interaction_checker, "get_active_medication_allergies", broken)
    with pytest.raises(InteractionCheckError) as exc_info:
        await check_all_interactions("p-1", ["warfarin", "aspirin"])
    assert exc_info.value.detail == {"phase": "allergy interactions"}
    assert "allergy store down" in exc_info.value.message


async def test_unknown_patient_with_user(records):
    await _setup(records)
    with pytest.raises(NotFoundError) as exc_info:
        await check_all_interactions("ghost", ["warfarin"], user_id="dr-1")
    assert exc_info.value.code == "PATIENT_NOT_FOUND"


async def test_failed_phase_cancels_the_other(records, monkeypatch):
    await _setup(records)
    cancelled = asyncio.Event()

    async def slow_drug_phase(medications):
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return []

    async def broken(patient_id):
        raise RuntimeError("allergy store down")

    monkeypatch.setattr(interaction_checker, "_drug_phase", slow_drug_phase)
    monkeypatch.setattr(interaction_checker, "get_active_medication_allergies", broken)
    with pytest.raises(InteractionCheckError) as exc_info:
        await check_all_interactions("p-1", ["warfarin", "aspirin"])
    assert exc_info.value.detail == {"phase": "allergy interactions"}
    assert cancelled.is_set()
