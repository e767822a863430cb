"""
MedCheck Backend - Gemini Prompt Builders
=========================================

What:  The text sent to Gemini for each task, and the patient/medication
       context blocks shared between them.
Who:   GeminiService only.

Every structured task asks for "ONLY valid JSON"; the answer is then run
through core.assistant.extract_json_object because the model still wraps
it in prose or code fences from time to time.
"""

from typing import Any, Iterable, List, Optional, Sequence

from medcheck.core.assistant import DETAIL_OFFER
from medcheck.schemas.profile import PatientContext

LABEL_PROMPT = """Analyze this medication label image and extract information. Return ONLY valid JSON with these fields:
{
  "name": "Brand name",
  "generic_name": "Generic name or null",
  "dosage": "Dosage strength (e.g., '500mg') or null",
  "frequency": "Frequency (e.g., 'twice daily') or null",
  "description": "Brief one-sentence description or null",
  "is_prescription": true/false,
  "category": "otc" or "prescription" or "supplement"
}

If information is not visible, use null. Determine category: "prescription" if Rx symbol present, "supplement" for vitamins/minerals, otherwise "otc"."""


def lookup_prompt(name: str) -> str:
    return f"""You are a medical information assistant. Provide detailed information about the medication: "{name}".

Return ONLY valid JSON with these fields:
{{
  "generic_name": "Generic drug name (e.g., 'Acetaminophen' for Tylenol) or null if not available",
  "dosage": "Common dosage strength (e.g., '500mg', '10mg', '1 tablet') or null",
  "frequency": "Common frequency of use (e.g., 'twice daily', 'once daily', 'as needed') or null",
  "description": "Brief 1-2 sentence description of what this medication is used for",
  "category": "otc" or "prescription" or "supplement",
  "is_prescription": true/false
}}

Determine category based on medication type:
- "prescription": Requires prescription (Rx drugs)
- "supplement": Vitamins, minerals, herbal supplements
- "otc": Over-the-counter medications

If information is not available or uncertain, use null for that field."""


def _join(items: Optional[Iterable[str]], empty: str) -> str:
    values = [item.strip() for item in (items or []) if item and item.strip()]
    return ", ".join(values) if values else empty


def _weight(patient: PatientContext) -> str:
    return f"{patient.weight:g}kg" if patient.weight else "not provided"


def dosage_prompt(medication: Any, patient: PatientContext) -> str:
    """`medication` needs name, generic_name, dosage and is_prescription."""
    name = medication.name
    if medication.generic_name:
        name += f" ({medication.generic_name})"
    kind = (
        "prescription medication"
        if medication.is_prescription
        else "over-the-counter medication or supplement"
    )
    if medication.is_prescription:
        guidance = (
            "For prescription: Provide typical dosage ranges. "
            "Remind patient to follow doctor's prescription."
        )
    else:
        guidance = (
            "For OTC/supplements: Provide standard recommended adult dosage based on "
            "medical guidelines, adjusted for age/weight if relevant."
        )

    bmi = patient.bmi
    profile = "\n".join([
        f"Age: {patient.age or 'adult (age not specified)'}",
        f"Weight: {_weight(patient)}",
        f"Height: {f'{patient.height:g}cm' if patient.height else 'not provided'}",
        f"BMI: {bmi if bmi is not None else 'not available'}",
        f"Allergies: {_join(patient.allergies, 'none reported')}",
        f"Medical Conditions: {_join(patient.medical_conditions, 'none reported')}",
    ])

    return f"""You are a medical dosage assistant. Provide personalized dosage recommendations.

Medication: {name}
Label Dosage: {medication.dosage or 'not specified'}
Type: {kind}

Patient Profile:
{profile}

{guidance}

Return ONLY valid JSON:
{{
  "recommended_dosage": "e.g., '500mg' or '1-2 tablets'",
  "recommended_frequency": "e.g., 'Once daily' or 'Twice daily with meals'",
  "dosage_notes": "Important notes about timing, food interactions, max daily dose, or special considerations. For prescriptions, remind to follow doctor's orders."
}}"""


def medication_list(medications: Sequence[Any]) -> str:
    """"Ibuprofen 200mg, Lisinopril 10mg" from objects with name and dosage."""
    return ", ".join(
        f"{m.name} {m.dosage}" if m.dosage else m.name for m in medications
    )


def interaction_prompt(medications: Sequence[Any], patient: PatientContext) -> str:
    profile = "\n".join([
        f"Age: {patient.age or 'not provided'}",
        f"Weight: {_weight(patient)}",
        f"Allergies: {_join(patient.allergies, 'none reported')}",
        f"Medical Conditions: {_join(patient.medical_conditions, 'none reported')}",
    ])
    return f"""You are a medical safety assistant. Analyze medication interactions and provide safety information. Always err on the side of caution.

Medications: {medication_list(medications)}

Patient Profile:
{profile}

Check for: drug-drug interactions, drug-allergy concerns, age/weight warnings, condition-related concerns.

Return ONLY valid JSON:
{{
  "interactions": [{{"drug1": "...", "drug2": "...", "severity": "low|moderate|high|critical", "description": "..."}}],
  "warnings": ["..."],
  "safe": true/false
}}

If no interactions found, return empty interactions array and safe: true."""


# ══════════════════════════════════════════════════════════════════════════
# Chat assistant
# ══════════════════════════════════════════════════════════════════════════

def profile_context(patient: PatientContext) -> str:
    """The "Patient Profile:" block; optional sections appear only when known."""
    lines = [
        "Patient Profile:",
        f"- Name: {patient.full_name or 'there'}",
        f"- Age: {f'{patient.age} years old' if patient.age else 'unknown'}",
        f"- Gender: {patient.gender or 'not specified'}",
    ]

    physical: List[str] = []
    if patient.height:
        physical.append(f"Height: {patient.height:g}cm")
    if patient.weight:
        physical.append(f"Weight: {patient.weight:g}kg")
    if physical:
        line = "- Physical: " + ", ".join(physical)
        if patient.bmi is not None:
            line += f" (BMI: {patient.bmi:.1f})"
        lines.append(line)

    lines.append(f"- Allergies: {_join(patient.allergies, 'none')}")
    lines.append(f"- Medical Conditions: {_join(patient.medical_conditions, 'none')}")

    if patient.lifestyle:
        habits = []
        if patient.lifestyle.smoking is not None:
            habits.append(f"Smoking: {'Yes' if patient.lifestyle.smoking else 'No'}")
        if patient.lifestyle.alcoholUse:
            habits.append(f"Alcohol: {patient.lifestyle.alcoholUse}")
        if habits:
            lines.append("- Lifestyle: " + ", ".join(habits))

    if patient.biometric_data:
        bio = []
        if patient.biometric_data.bloodType:
            bio.append(f"Blood Type: {patient.biometric_data.bloodType}")
        if patient.biometric_data.rhFactor:
            bio.append(f"RH Factor: {patient.biometric_data.rhFactor}")
        if bio:
            lines.append("- Biometric: " + ", ".join(bio))

    past = _join(patient.medication_history, "")
    if past:
        lines.append(f"- Past Medications: {past}")
    family = _join(patient.family_medical_history, "")
    if family:
        lines.append(f"- Family Medical History: {family}")
    return "\n".join(lines)


def medication_context(medications: Sequence[Any]) -> str:
    if not medications:
        return "No medications currently listed"
    return f"Current medications: {medication_list(medications)}"


def history_context(history: Sequence[Any], window: int) -> str:
    """Last `window` messages as "User:" / "You:" lines; empty without history."""
    recent = list(history)[-window:] if window > 0 else []
    if not recent:
        return ""
    lines = [
        f"{'User' if m.role == 'user' else 'You'}: {m.content}" for m in recent
    ]
    return "\n\nRecent Conversation:\n" + "\n".join(lines)


_PROFILE_USE = (
    "age, weight, height, BMI, allergies, medical conditions, lifestyle factors "
    "(smoking, alcohol), biometric data, medication history, and family history"
)


def chat_system_prompt(
    patient: PatientContext,
    medications: Sequence[Any],
    history: Sequence[Any],
    detailed: bool,
    window: int,
) -> str:
    name = patient.full_name or "there"
    context = (
        f"{profile_context(patient)}\n"
        f"{medication_context(medications)}{history_context(history, window)}"
    )

    if detailed:
        return f"""You are {name}'s personal AI health assistant. Provide detailed information about the previous topic.

{context}

IMPORTANT: Use the patient's complete profile information to provide personalized, context-aware advice. Consider their {_PROFILE_USE} when making recommendations.

Provide a comprehensive answer with context, examples, warnings, tips, and when to consult healthcare professionals."""

    return f"""You are {name}'s personal AI health assistant. Answer questions about medications, side effects, interactions, and health advice tailored to their specific profile.

{context}

PERSONALIZATION REQUIREMENTS:
- ALWAYS consider the patient's complete profile when providing advice
- Take into account their {_PROFILE_USE}
- Warn about potential interactions with their allergies and existing medical conditions
- Consider age-appropriate dosing and contraindications
- Factor in lifestyle choices (smoking, alcohol) when discussing medication effects
- Reference family medical history when relevant to medication recommendations
- Use their name naturally in responses for a personalized experience
- Calculate and consider BMI when relevant to medication dosing or recommendations

CAPABILITIES:
- Answer medication and health questions with full context of their profile
- Detect when user wants to ADD a medication to their list
- Provide personalized dosage recommendations based on age, weight, height, and medical conditions
- Warn about drug-allergy interactions based on their allergy list
- Consider drug-disease interactions based on their medical conditions

ADDING MEDICATIONS:
When the user wants to add a medication (e.g., "add ibuprofen", "I want to add aspirin", "add medication X"), you MUST:
1. Respond with a friendly message like: "I'll help you add [medication name] to your list. Let me prepare the details for you to review."
2. Include a JSON action at the end of your response: {{"action": "add_medication", "medication": {{"name": "Medication Name", "dosage": "...", "frequency": "...", "description": "...", "category": "otc|prescription|supplement"}}}}
3. Extract the medication name from the user's message
4. If dosage/frequency/description are mentioned, include them; otherwise use null
5. Determine category: "prescription" for Rx drugs, "supplement" for vitamins/herbs, "otc" for over-the-counter
6. Consider their profile when suggesting dosage (e.g., adjust for age, weight, kidney function if relevant)

RESPONSE FORMAT:
- Keep initial responses SHORT (2-3 sentences)
- End with: "{DETAIL_OFFER}" (unless adding medication)
- Only include medication JSON when user wants to add a medication
- Never show JSON or technical details to the user - keep responses conversational
- Always personalize advice based on their complete profile

Be warm, personalized, and use their name naturally. Always remind users to consult healthcare professionals for serious concerns."""
