"""OpenAI-backed summaries of patient questionnaires and intake answers.

Both entry points fall back to a deterministic template when the provider is
unconfigured, fails, or returns an unexpected shape; summarization never
blocks the booking flow.
"""

import json
import logging

from openai import OpenAI

from herhealth.core import config

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "medium", "high", "urgent")

QUESTIONNAIRE_FIELDS = (
    ("age", "Age"),
    ("primary_symptoms", "Primary Symptoms"),
    ("symptom_onset", "Symptom Onset"),
    ("symptom_severity", "Severity"),
    ("current_medications", "Current Medications"),
    ("allergies", "Allergies"),
    ("previous_treatments", "Previous Treatments"),
    ("additional_concerns", "Additional Concerns"),
)


def _client() -> OpenAI:
    if not config.OPENAI_API_KEY:
        raise RuntimeError("OPENAI_API_KEY is not set")
    return OpenAI(api_key=config.OPENAI_API_KEY, timeout=config.EXTERNAL_TIMEOUT_SECONDS)


def _complete_json(system_prompt: str, user_prompt: str, max_tokens: int) -> dict:
    response = _client().chat.completions.create(
        model=config.OPENAI_MODEL,
        messages=[
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        response_format={"type": "json_object"},
        max_tokens=max_tokens,
        temperature=0.1,
    )
    return json.loads(response.choices[0].message.content or "{}")


def fallback_symptom_summary(questionnaire: dict) -> str:
    concerns = questionnaire.get("additional_concerns") or "general women's health"
    return "\n".join([
        f"1. Patient reports {questionnaire.get('primary_symptoms') or 'unspecified symptoms'} "
        f"with {questionnaire.get('symptom_severity') or 'unspecified'} severity",
        f"2. Symptoms began {questionnaire.get('symptom_onset') or 'at an unspecified time'}, "
        f"currently taking {questionnaire.get('current_medications') or 'no medications'}",
        f"3. Patient has concerns about {concerns} - requires clinical assessment",
    ])


def generate_symptom_summary(questionnaire: dict) -> str:
    """Three numbered bullet points for the doctor to read before the consultation."""
    details = "\n".join(f"- {label}: {questionnaire.get(key) or ''}" for key, label in QUESTIONNAIRE_FIELDS)
    prompt = (
        "You are a clinical assistant summarizing patient symptoms for a women's health specialist.\n\n"
        f"Patient Information:\n{details}\n\n"
        "Create a concise clinical summary in exactly 3 bullet points covering: primary symptoms and "
        "duration; relevant history and current medications; key concerns requiring attention.\n"
        'Format as JSON with a "summary" field containing an array of 3 strings.'
    )
    try:
        result = _complete_json(
            "You are a medical professional summarizing patient symptoms for healthcare providers.",
            prompt,
            max_tokens=300,
        )
        points = result.get("summary")
        if not isinstance(points, list) or len(points) != 3:
            raise ValueError("Invalid AI response format")
        return "\n".join(f"{index}. {point}" for index, point in enumerate(points, start=1))
    except Exception:
        logger.exception("Error generating symptom summary, using fallback")
        return fallback_symptom_summary(questionnaire)


def fallback_intake_summary(answers: dict) -> dict:
    answered = [f"{key}: {value}" for key, value in answers.items() if value not in (None, "", [])]
    summary = "Patient intake answers: " + ("; ".join(answered) if answered else "no answers provided") + "."
    return {
        "summary": summary,
        "recommendation": "General Practice",
        "priority": "medium",
    }


def generate_intake_summary(answers: dict) -> dict:
    """Summary, recommended specialty and triage priority for an intake assessment."""
    prompt = (
        "Summarize this women's health intake assessment for the consulting clinician.\n\n"
        f"Answers (JSON): {json.dumps(answers, default=str)}\n\n"
        'Respond as JSON with "summary" (2-3 sentences), "recommendation" (the most suitable '
        f'specialty) and "priority" (one of {", ".join(PRIORITIES)}).'
    )
    try:
        result = _complete_json(
            "You are a triage nurse for a women's health telemedicine service.",
            prompt,
            max_tokens=400,
        )
        summary = result.get("summary")
        if not isinstance(summary, str) or not summary.strip():
            raise ValueError("Invalid AI response format")
        priority = str(result.get("priority") or "medium").lower()
        return {
            "summary": summary.strip(),
            "recommendation": result.get("recommendation") or None,
            "priority": priority if priority in PRIORITIES else "medium",
        }
    except Exception:
        logger.exception("Error generating intake summary, using fallback")
        return fallback_intake_summary(answers)
