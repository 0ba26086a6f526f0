"""Drug-drug and drug-allergy interaction detection.

Both resolvers are pure functions over already-loaded reference data; the
database lookups live in ``interaction_checker``.
"""

from cds.models.clinical import Allergy, Interaction, Medication
from cds.models.interaction import AllergyFinding, DrugInteractionFinding
from cds.models.severity import InteractionSeverity


def _declared_interaction(medication: Medication, other_id: str) -> Interaction | None:
    for interaction in medication.interactions:
        if interaction.interacts_with_id == other_id:
            return interaction
    return None


def _pick_interaction(first: Interaction | None, second: Interaction | None) -> Interaction | None:
    """Return the more severe of two declarations; ties go to ``first``."""
    if first and second:
        return first if first.severity.rank >= second.severity.rank else second
    return first or second


def resolve_drug_interactions(medications: list[Medication]) -> list[DrugInteractionFinding]:
    """Scan every unordered pair of medications for a declared interaction.

    Interactions are declared on one medication and point at another, so a
    pair may be covered from either side or both. When both sides declare
    one, the higher severity wins; on equal severity the entry declared by the
    medication that comes first in ``medications`` is reported.
    """
    findings: list[DrugInteractionFinding] = []
    for i, med1 in enumerate(medications):
        for med2 in medications[i + 1:]:
            chosen = _pick_interaction(
                _declared_interaction(med1, med2.id),
                _declared_interaction(med2, med1.id),
            )
            if chosen is None:
                continue
            findings.append(DrugInteractionFinding(
                medication_ids=[med1.id, med2.id],
                severity=chosen.severity,
                description=chosen.description,
            ))
    return findings


def resolve_allergy_interactions(allergies: list[Allergy], medications: list[Medication]) -> list[AllergyFinding]:
    """Match medications against a patient's allergies.

    A direct medication allergy is contraindicated; a drug-class allergy is
    severe. Each (medication, allergy) pair yields at most one finding, the
    direct match taking precedence.
    """
    relevant = [a for a in allergies if a.is_active and a.allergen_type == "medication"]
    findings: list[AllergyFinding] = []
    for medication in medications:
        for allergy in relevant:
            if allergy.medication_id and allergy.medication_id == medication.id:
                findings.append(AllergyFinding(
                    allergy_id=allergy.id,
                    medication_id=medication.id,
                    severity=InteractionSeverity.CONTRAINDICATED,
                    description=f"Patient is allergic to {medication.name} with reaction: {allergy.reaction}",
                ))
            elif allergy.allergen_class and medication.classification == allergy.allergen_class:
                findings.append(AllergyFinding(
                    allergy_id=allergy.id,
                    medication_id=medication.id,
                    severity=InteractionSeverity.SEVERE,
                    description=(
                        f"Patient has an allergy to drug class {allergy.allergen_class} "
                        f"which includes {medication.name}"
                    ),
                ))
    return findings
