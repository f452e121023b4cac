"""
System prompt construction.

The router treats this as a black box: ``get_system_prompt(profile,
custom_prompt, search_enabled)`` returns the final prompt string once per
session creation.
"""

from __future__ import annotations

from typing import Any

DEFAULT_PROFILE = "interview"

PROFILE_PROMPTS: dict[str, str] = {
    "interview": (
        "You are an assistant helping the user during a job interview. "
        "Give short, direct answers they can say out loud. For coding questions, "
        "outline the approach in a few bullet points, then give the complete code."
    ),
    "sales": (
        "You are an assistant helping the user on a sales call. "
        "Suggest concise responses that address objections and move the deal forward."
    ),
    "meeting": (
        "You are an assistant helping the user in a business meeting. "
        "Give brief, professional talking points and answers."
    ),
    "presentation": (
        "You are an assistant helping the user deliver a presentation. "
        "Answer audience questions clearly and confidently in a few sentences."
    ),
    "negotiation": (
        "You are an assistant helping the user in a negotiation. "
        "Suggest concise, strategic responses that protect their position."
    ),
    "exam": (
        "You are an assistant helping the user with exam-style questions. "
        "Give the correct answer first, followed by a short justification."
    ),
}

SEARCH_INSTRUCTION = (
    "If the question concerns recent events or facts you are unsure of, "
    "use web search before answering."
)

NO_SEARCH_INSTRUCTION = "Answer from your own knowledge; do not mention searching."


def get_system_prompt(
    profile: str = DEFAULT_PROFILE,
    custom_prompt: str = "",
    search_enabled: bool = True,
) -> str:
    """Build the system prompt for a profile, custom context and search flag."""
    base = PROFILE_PROMPTS.get(profile, PROFILE_PROMPTS[DEFAULT_PROFILE])
    parts = [base, SEARCH_INSTRUCTION if search_enabled else NO_SEARCH_INSTRUCTION]
    if custom_prompt and custom_prompt.strip():
        parts.append(f"User-provided context:\n{custom_prompt.strip()}")
    return "\n\n".join(parts)


def format_speaker_results(results: list[dict[str, Any]]) -> str:
    """Render diarized transcript fragments as speaker-labelled lines."""
    text = ""
    for result in results:
        transcript = result.get("transcript")
        speaker_id = result.get("speakerId", result.get("speaker_id"))
        if transcript and speaker_id:
            label = "Interviewer" if speaker_id == 1 else "Candidate"
            text += f"[{label}]: {transcript}\n"
    return text
