"""
Gemini (Vertex AI) calls for the Dottie assistant.
Uses google-genai client with Vertex AI. Inputs are passed through ai_privacy before sending.
"""
import json
import logging
from pathlib import Path
from typing import Any

from app.config import get_settings
from app.services.ai_privacy import redact_dict, redact_text

logger = logging.getLogger(__name__)

# Lazy client to avoid import/credentials errors at import time
_gemini_client = None


def is_ai_configured() -> bool:
    """True when Vertex settings are present and google-genai is importable."""
    if not get_settings().vertex_project_id:
        return False
    try:
        from google import genai  # noqa: F401
    except ImportError:
        return False
    return True


def _get_client():
    global _gemini_client
    if _gemini_client is not None:
        return _gemini_client
    try:
        from google import genai
        from google.oauth2 import service_account
    except ImportError as e:
        raise RuntimeError(
            "Google GenAI not installed. pip install google-genai google-auth"
        ) from e

    settings = get_settings()
    if not settings.vertex_project_id:
        raise RuntimeError("vertex_project_id is not configured")

    credentials = None
    if settings.vertex_credentials_path:
        path = Path(settings.vertex_credentials_path)
        if path.is_file():
            credentials = service_account.Credentials.from_service_account_file(
                str(path),
                scopes=["https://www.googleapis.com/auth/cloud-platform"],
            )

    _gemini_client = genai.Client(
        vertexai=True,
        project=settings.vertex_project_id,
        location=settings.vertex_location,
        credentials=credentials,
    )
    return _gemini_client


ASSISTANT_SYSTEM_PROMPT = """You are Dottie, a friendly menstrual health assistant.
You help people understand their menstrual cycle assessment results and general period health.

Rules:
- Be supportive, clear and age-appropriate; many users are teenagers.
- Explain what the assessment pattern means in plain language.
- You do not diagnose. Recommend seeing a healthcare provider for severe pain, very heavy bleeding,
  missed periods, or anything that worries the user.
- Keep answers concise (a few short paragraphs or a short list).
- Answer in the same language as the user when possible; otherwise use English."""

INITIAL_INSTRUCTION = """The user just completed a cycle assessment and opened this chat.
Assessment results (JSON):
{snapshot}

Greet them, summarize what their "{pattern}" pattern means, and answer their first message."""

FOLLOWUP_INSTRUCTION = """This conversation continues an earlier discussion.
The user's assessment pattern is "{pattern}". Build on the previous turns."""


def _system_instruction(extra: str) -> str:
    return f"{ASSISTANT_SYSTEM_PROMPT}\n\n{extra}"


def build_initial_instruction(snapshot: dict[str, Any]) -> str:
    """System instruction for the first reply. Snapshot is filtered for identifiers."""
    safe = redact_dict(snapshot)
    return _system_instruction(
        INITIAL_INSTRUCTION.format(
            snapshot=json.dumps(safe, indent=2, default=str),
            pattern=safe.get("pattern") or "unclassified",
        )
    )


def build_followup_instruction(pattern: str | None) -> str:
    return _system_instruction(FOLLOWUP_INSTRUCTION.format(pattern=pattern or "unclassified"))


def _history_contents(messages: list[dict], new_message: str) -> list:
    from google.genai import types

    def turn(role: str, text: str):
        return types.Content(role=role, parts=[types.Part.from_text(text=text)])

    # Gemini names the assistant side "model"
    turns = [
        (("user" if m.get("role") == "user" else "model"), redact_text((m.get("content") or "").strip()))
        for m in messages
    ]
    contents = [turn(role, text) for role, text in turns if text]
    contents.append(turn("user", redact_text(new_message)))
    return contents


def _generate(contents: list, system_instruction: str) -> tuple[str, int, int]:
    client = _get_client()
    settings = get_settings()
    from google.genai.types import GenerateContentConfig

    response = client.models.generate_content(
        model=settings.gemini_model,
        contents=contents,
        config=GenerateContentConfig(
            system_instruction=system_instruction,
            temperature=settings.gemini_temperature,
            max_output_tokens=settings.gemini_max_output_tokens,
        ),
    )
    if not response or not response.candidates:
        raise ValueError("Empty response from model")
    candidate = response.candidates[0]
    if not candidate.content or not candidate.content.parts:
        raise ValueError("No text in model response")
    text = getattr(response, "text", None) or candidate.content.parts[0].text
    if not text or not text.strip():
        raise ValueError("Blank text in model response")
    usage = getattr(response, "usage_metadata", None)
    input_tokens = _token_count(usage, "prompt_token_count")
    output_tokens = _token_count(usage, "candidates_token_count")
    return text, input_tokens, output_tokens


def generate_initial(snapshot: dict[str, Any], new_message: str) -> tuple[str, int, int]:
    """
    First reply of a conversation, grounded on the assessment snapshot.
    Returns (assistant_text, input_tokens, output_tokens). Raises on API or model errors.
    """
    return _generate(_history_contents([], new_message), build_initial_instruction(snapshot))


def generate_followup(messages: list[dict], new_message: str, pattern: str | None) -> tuple[str, int, int]:
    """
    messages: list of {"role": "user"|"assistant", "content": "..."}, oldest first.
    new_message: latest user message.
    Returns (assistant_text, input_tokens, output_tokens). Token counts may be 0 if unavailable.
    """
    return _generate(_history_contents(messages, new_message), build_followup_instruction(pattern))


def _token_count(usage: Any, key: str) -> int:
    """Get token count from usage_metadata (dict or Pydantic model)."""
    if usage is None:
        return 0
    if isinstance(usage, dict):
        return int(usage.get(key) or 0)
    return int(getattr(usage, key, 0) or 0)
