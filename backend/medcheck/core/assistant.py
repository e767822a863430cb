"""
MedCheck Backend - Assistant Reply Parsing
==========================================

What:  Text rules around the chat assistant and the AI's JSON answers.
Who:   ChatService (detail mode, add-medication action, reply cleanup,
       conversation titles) and GeminiService (JSON extraction, error text).

Add-medication action:
    When the user asks to add a medication, the assistant is instructed to
    append an action object to its reply:

        Sure! {"action": "add_medication",
               "medication": {"name": "Ibuprofen", "dosage": "200mg", ...}}

    The object is lifted out for the client's review form and the visible
    reply is replaced by a short confirmation.
"""

import json
import re
from typing import Any, Dict, Optional

DEFAULT_TITLE = "New Conversation"
TITLE_LENGTH = 50
FALLBACK_REPLY = "Is there anything else you'd like to know?"
DETAIL_OFFER = "Would you like more detailed information about this?"

_AFFIRMATIVE = re.compile(
    r"\b(yes|sure|please|tell me more|more|details|detailed|expand|elaborate|"
    r"explain more|go on|continue)\b",
    re.IGNORECASE,
)
_OFFERED_DETAIL = re.compile(r"would you like more detailed information", re.IGNORECASE)

_CODE_BLOCK = re.compile(r"```[\s\S]*?```")
# Objects with at most one level of nesting, which covers the action payload
_JSON_OBJECT = re.compile(r"\{[^{}]*(?:\{[^{}]*\}[^{}]*)*\}")
_BLANK_RUNS = re.compile(r"\n\s*\n\s*\n+")
_GREEDY_OBJECT = re.compile(r"\{[\s\S]*\}")

_decoder = json.JSONDecoder()


def wants_detail(last_user_message: str, previous_assistant_message: Optional[str]) -> bool:
    """
    Detail mode: the user said something affirmative right after the
    assistant offered more detailed information.
    """
    if not previous_assistant_message:
        return False
    return bool(
        _AFFIRMATIVE.search(last_user_message or "")
        and _OFFERED_DETAIL.search(previous_assistant_message)
    )


def extract_add_medication_action(text: str) -> Optional[Dict[str, Any]]:
    """
    Return the `medication` object of the first add-medication action in
    the reply, or None.

    Every "{" is tried as the start of a JSON value; the first decoded
    object with `action == "add_medication"` and a named medication wins.
    """
    for match in re.finditer(r"\{", text):
        try:
            value, _ = _decoder.raw_decode(text, match.start())
        except ValueError:
            continue
        if not isinstance(value, dict) or value.get("action") != "add_medication":
            continue
        medication = value.get("medication")
        if isinstance(medication, dict) and medication.get("name"):
            return medication
    return None


def clean_reply(text: str, medication: Optional[Dict[str, Any]] = None) -> str:
    """Strip code blocks and JSON from a reply before showing it."""
    if medication is not None:
        name = medication.get("name") or "this medication"
        return f"I'll help you add {name} to your list. Opening the review form in a moment..."

    cleaned = _CODE_BLOCK.sub("", text)
    cleaned = _JSON_OBJECT.sub("", cleaned)
    cleaned = _BLANK_RUNS.sub("\n\n", cleaned)
    cleaned = "\n".join(line.strip() for line in cleaned.split("\n")).strip()
    if len(cleaned) < 3:
        return FALLBACK_REPLY
    return cleaned


def conversation_title(first_message: str) -> str:
    text = (first_message or "").strip()
    if not text:
        return DEFAULT_TITLE
    if len(text) > TITLE_LENGTH:
        return text[:TITLE_LENGTH] + "..."
    return text


# ══════════════════════════════════════════════════════════════════════════
# AI response decoding
# ══════════════════════════════════════════════════════════════════════════

def extract_json_object(text: str) -> Dict[str, Any]:
    """
    Pull the JSON object out of a model answer.

    Models wrap JSON in prose or code fences; everything from the first "{"
    to the last "}" is decoded. Raises ValueError when nothing decodes to an
    object.
    """
    match = _GREEDY_OBJECT.search(text or "")
    if not match:
        raise ValueError("No JSON object found in model response")
    value = json.loads(match.group(0))
    if not isinstance(value, dict):
        raise ValueError("Model response JSON is not an object")
    return value


def gemini_error_message(payload: Any, status: Optional[int] = None) -> str:
    """
    A readable message from a Gemini error body.

    Handles the shapes the API is known to return, including an `error`
    field that is itself a JSON-encoded string:

        {"error": {"message": "..."}}
        {"error": "{\\"error\\": {\\"message\\": \\"...\\"}}"}
        {"message": "..."}
    """
    data = payload
    if isinstance(data, (bytes, str)):
        raw = data.decode("utf-8", "replace") if isinstance(data, bytes) else data
        try:
            data = json.loads(raw)
        except ValueError:
            prefix = f"Gemini API error ({status})" if status else "Gemini API error"
            return _friendly(f"{prefix}: {raw[:200]}", status)

    if not isinstance(data, dict):
        return _friendly(str(data), status)

    if isinstance(data.get("error"), str):
        try:
            data = json.loads(data["error"])
        except ValueError:
            return _friendly(data["error"], status)

    error = data.get("error") if isinstance(data, dict) else None
    message: Optional[str] = None
    if isinstance(error, dict):
        message = error.get("message")
        if not message and isinstance(error.get("error"), dict):
            message = error["error"].get("message")
    if not message and isinstance(data, dict):
        message = data.get("message")
    if not message and error is not None:
        message = error if isinstance(error, str) else json.dumps(error)
    return _friendly(message or "Failed to get AI response", status)


def _friendly(message: str, status: Optional[int]) -> str:
    if "API key not valid" in message or "API_KEY_INVALID" in message:
        return "API key not valid. Please check the GEMINI_API_KEY configuration."
    if "API key" in message and status in (400, 401, 403):
        return "Invalid or missing API key. Please verify the Gemini API key configuration."
    return message
