"""Tests for drug-drug and drug-allergy interaction resolution."""

from cds.models.clinical import Allergy, Interaction, Medication
from cds.models.severity import InteractionSeverity
from cds.services.interaction_resolver import (
    resolve_allergy_interactions,
    resolve_drug_interactions,
)


def _med(med_id: str, classification: str | None = None, interacts: list[tuple[str, str, str]] | None = None):
    return Medication(
        id=med_id,
        name=med_id.title(),
        generic_name=med_id,
        classification=classification,
        interactions=[
            Interaction(interacts_with_id=target, severity=severity, description=desc)
            for target, severity, desc in (interacts or [])
        ],
    )


class TestDrugInteractions:
    def test_no_declarations_no_findings(self):
        assert resolve_drug_interactions([_med("a"), _med("b"), _med("c")]) == []

    def test_empty_and_single(self):
        assert resolve_drug_interactions([]) == []
        assert resolve_drug_interactions([_med("a", interacts=[("a", "severe", "self")])]) == []

    def test_declared_on_first_side_only(self):
        warfarin = _med("warfarin", interacts=[("aspirin", "severe", "Bleeding risk")])
        aspirin = _med("aspirin")
        findings = resolve_drug_interactions([warfarin, aspirin])
        assert len(findings) == 1
        assert findings[0].medication_ids == ["warfarin", "aspirin"]
        assert findings[0].severity == InteractionSeverity.SEVERE
        assert findings[0].description == "Bleeding risk"

    def test_declared_on_second_side_only(self):
        a = _med("a")
        b = _med("b", interacts=[("a", "mild", "Minor effect")])
        findings = resolve_drug_interactions([a, b])
        assert len(findings) == 1
        assert findings[0].medication_ids == ["a", "b"]
        assert findings[0].severity == InteractionSeverity.MILD

    def test_both_sides_takes_higher_severity(self):
        a = _med("a", interacts=[("b", "moderate", "From A")])
        b = _med("b", interacts=[("a", "contraindicated", "From B")])
        findings = resolve_drug_interactions([a, b])
        assert len(findings) == 1
        assert findings[0].severity == InteractionSeverity.CONTRAINDICATED
        assert findings[0].description == "From B"

    def test_both_sides_first_higher(self):
        a = _med("a", interacts=[("b", "severe", "From A")])
        b = _med("b", interacts=[("a", "mild", "From B")])
        findings = resolve_drug_interactions([a, b])
        assert findings[0].severity == InteractionSeverity.SEVERE
        assert findings[0].description == "From A"

    def test_tie_prefers_earlier_medication(self):
        a = _med("a", interacts=[("b", "moderate", "From A")])
        b = _med("b", interacts=[("a", "moderate", "From B")])
        assert resolve_drug_interactions([a, b])[0].description == "From A"
        assert resolve_drug_interactions([b, a])[0].description == "From B"

    def test_every_pair_scanned(self):
        a = _med("a", interacts=[("b", "mild", "ab"), ("c", "severe", "ac")])
        b = _med("b", interacts=[("c", "moderate", "bc")])
        c = _med("c")
        findings = resolve_drug_interactions([a, b, c])
        pairs = {tuple(f.medication_ids): f.severity for f in findings}
        assert pairs == {
            ("a", "b"): InteractionSeverity.MILD,
            ("a", "c"): InteractionSeverity.SEVERE,
            ("b", "c"): InteractionSeverity.MODERATE,
        }

    def test_interaction_with_medication_not_in_list_ignored(self):
        a = _med("a", interacts=[("z", "contraindicated", "Not prescribed")])
        assert resolve_drug_interactions([a, _med("b")]) == []


class TestAllergyInteractions:
    def _allergy(self, allergy_id="al-1", **kwargs):
        return Allergy(id=allergy_id, patient_id="p1", reaction="anaphylaxis", **kwargs)

    def test_direct_match_is_contraindicated(self):
        amoxicillin = _med("amoxicillin", classification="penicillin")
        findings = resolve_allergy_interactions([self._allergy(medication_id="amoxicillin")], [amoxicillin])
        assert len(findings) == 1
        assert findings[0].severity == InteractionSeverity.CONTRAINDICATED
        assert findings[0].medication_id == "amoxicillin"
        assert findings[0].allergy_id == "al-1"
        assert "Amoxicillin" in findings[0].description
        assert "anaphylaxis" in findings[0].description

    def test_class_match_is_severe(self):
        amoxicillin = _med("amoxicillin", classification="penicillin")
        findings = resolve_allergy_interactions([self._allergy(allergen_class="penicillin")], [amoxicillin])
        assert len(findings) == 1
        assert findings[0].severity == InteractionSeverity.SEVERE
        assert "drug class penicillin" in findings[0].description

    def test_direct_and_class_on_same_allergy_yield_one_finding(self):
        amoxicillin = _med("amoxicillin", classification="penicillin")
        allergy = self._allergy(medication_id="amoxicillin", allergen_class="penicillin")
        findings = resolve_allergy_interactions([allergy], [amoxicillin])
        assert len(findings) == 1
        assert findings[0].severity == InteractionSeverity.CONTRAINDICATED

    def test_separate_allergies_each_produce_a_finding(self):
        amoxicillin = _med("amoxicillin", classification="penicillin")
        allergies = [
            self._allergy("al-1", medication_id="amoxicillin"),
            self._allergy("al-2", allergen_class="penicillin"),
        ]
        findings = resolve_allergy_interactions(allergies, [amoxicillin])
        assert [(f.allergy_id, f.severity) for f in findings] == [
            ("al-1", InteractionSeverity.CONTRAINDICATED),
            ("al-2", InteractionSeverity.SEVERE),
        ]

    def test_no_match(self):
        findings = resolve_allergy_interactions(
            [self._allergy(medication_id="other", allergen_class="sulfonamide")],
            [_med("amoxicillin", classification="penicillin")],
        )
        assert findings == []

    def test_inactive_and_non_medication_allergies_ignored(self):
        med = _med("amoxicillin", classification="penicillin")
        allergies = [
            self._allergy("al-1", medication_id="amoxicillin", is_active=False),
            self._allergy("al-2", allergen_class="penicillin", allergen_type="food"),
        ]
        assert resolve_allergy_interactions(allergies, [med]) == []

    def test_medication_without_classification_never_class_matches(self):
        med = _med("mystery")
        assert resolve_allergy_interactions([self._allergy(allergen_class="penicillin")], [med]) == []
