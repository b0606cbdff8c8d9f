"""
Response strategies. Both implement generate(text, context) -> GeneratedResponse.

context keys:
- "state": "initial" | "followup"
- "snapshot": assessment snapshot (initial)
- "history": [{"role", "content"}, ...] oldest first (followup)
- "pattern": cached conversation pattern or None

The strategy for a request is picked once by select_responders() from settings.
"""
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from app.config import Settings, get_settings
from app.core.exceptions import GenerationError
from app.services import ai_service

logger = logging.getLogger(__name__)

STATE_INITIAL = "initial"
STATE_FOLLOWUP = "followup"

SERVICE_AI = "ai"
SERVICE_MOCK = "mock"
SERVICE_AUTO = "auto"


@dataclass(frozen=True)
class GeneratedResponse:
    content: str
    metadata: dict[str, Any] = field(default_factory=dict)


class Responder(ABC):
    """Strategy contract."""

    name = "base"

    @abstractmethod
    def generate(self, text: str, context: dict[str, Any]) -> GeneratedResponse:
        """Reply for `text`; raises GenerationError when no reply can be produced."""


# ---- AI (Gemini) ----


class AIResponder(Responder):
    name = SERVICE_AI

    def __init__(self, settings: Settings | None = None):
        self._settings = settings or get_settings()

    def generate(self, text: str, context: dict[str, Any]) -> GeneratedResponse:
        state = context.get("state")
        pattern = context.get("pattern")
        try:
            if state == STATE_INITIAL:
                reply, input_tokens, output_tokens = ai_service.generate_initial(
                    context.get("snapshot") or {}, text
                )
            else:
                history = context.get("history") or []
                window = history[-self._settings.chat_history_max_messages:]
                reply, input_tokens, output_tokens = ai_service.generate_followup(window, text, pattern)
        except Exception as e:
            logger.warning("Gemini generation failed (%s): %s", state, e)
            raise GenerationError("AI service failed to generate a response") from e

        return GeneratedResponse(
            content=reply.strip(),
            metadata={
                "service": SERVICE_AI,
                "model": self._settings.gemini_model,
                "responseCategory": SERVICE_AI,
                "state": state,
                "pattern": pattern,
                "inputTokens": input_tokens,
                "outputTokens": output_tokens,
            },
        )


# ---- Mock (deterministic) ----

INITIAL_BY_PATTERN = {
    "regular": (
        "Hi! I've looked at your assessment and your cycle looks regular: its length, duration "
        "and flow are all in the typical range. That's a good sign your hormones are working in "
        "balance. What would you like to know more about?"
    ),
    "irregular": (
        "Hi! Your assessment suggests your cycle is irregular, meaning its length changes a lot "
        "from month to month. This is common, especially in the first few years, but tracking it "
        "helps spot changes worth discussing with a doctor. What would you like to explore?"
    ),
    "heavy": (
        "Hi! Your assessment points to a heavy or prolonged flow. Heavy periods can be tiring and "
        "sometimes lead to low iron, so it's worth keeping an eye on. Would you like tips on "
        "managing heavy days or signs that mean you should see a doctor?"
    ),
    "pain": (
        "Hi! Your assessment shows pain is a big part of your period. Cramps are common, but pain "
        "that stops you doing everyday things deserves attention. Shall we go through relief "
        "options and when to get checked?"
    ),
    "developing": (
        "Hi! Your assessment suggests your cycle is still developing. It can take a few years "
        "after your first period for things to settle into a pattern, so some variation is "
        "expected. What questions do you have?"
    ),
}

INITIAL_DEFAULT = (
    "Hi! Thanks for completing your assessment. I'm here to help you understand your results "
    "and your cycle. What would you like to talk about first?"
)

# Checked in order; first match wins. Multi-word keywords match as phrases.
FOLLOWUP_RULES = [
    ("acknowledgment", ("thank", "thanks", "thx"),
     "You're very welcome! Is there anything else about your cycle you'd like to go over?"),
    ("pain", ("cramp", "cramps", "pain", "painful", "hurts", "ache", "aches"),
     "Cramps happen when the uterus contracts to shed its lining. Heat on your lower belly, gentle "
     "movement and over-the-counter pain relief often help. If pain keeps you from school, work or "
     "sleep, please talk to a doctor."),
    ("flow", ("heavy", "bleeding", "flow", "clots", "pad", "pads", "tampon", "tampons"),
     "Flow varies from person to person. Soaking through a pad or tampon every hour or two, or "
     "bleeding longer than seven days, is worth mentioning to a healthcare provider."),
    ("cycle", ("cycle", "late", "early", "irregular", "regular", "skip", "skipped", "missed", "length"),
     "A typical cycle is 21 to 45 days in teens and 21 to 35 days in adults. Tracking the first day "
     "of each period for a few months is the best way to see your own pattern."),
    ("mood", ("mood", "moody", "emotional", "anxious", "sad", "irritable", "pms"),
     "Mood changes before or during your period are very common and linked to hormone shifts. "
     "Sleep, regular meals and movement can help; if low mood feels overwhelming, reach out to "
     "someone you trust or a doctor."),
    ("doctor", ("doctor", "gp", "gynecologist", "nurse", "clinic", "when should i"),
     "It's a good idea to see a doctor if your periods stop for three months, your pain is severe, "
     "you bleed very heavily, or anything about your cycle worries you."),
    ("explanation", ("explain", "tell me more", "elaborate", "mean", "means"),
     "Happy to explain more! Which part would you like me to go into: cycle length, flow, pain or "
     "symptoms?"),
    ("affirmation", ("yes", "yeah", "sure", "ok", "okay"),
     "Great! What would you like to look at next?"),
]

QUESTION_WORDS = ("what", "how", "why", "when", "is", "can", "should", "does")


def _words(text: str) -> list[str]:
    return re.findall(r"[a-z']+", text.lower())


def match_keywords(text: str, keywords: tuple[str, ...]) -> list[str]:
    words = _words(text)
    joined = " ".join(words)
    matched = []
    for kw in keywords:
        if " " in kw:
            if kw in joined:
                matched.append(kw)
        elif kw in words:
            matched.append(kw)
    return matched


class MockResponder(Responder):
    """Keyword-based replies. Same input always gives the same output."""

    name = SERVICE_MOCK

    def generate(self, text: str, context: dict[str, Any]) -> GeneratedResponse:
        state = context.get("state")
        pattern = context.get("pattern")
        if state == STATE_INITIAL:
            snapshot_pattern = pattern or (context.get("snapshot") or {}).get("pattern")
            key = (snapshot_pattern or "").lower()
            content = INITIAL_BY_PATTERN.get(key, INITIAL_DEFAULT)
            category = "assessment" if key in INITIAL_BY_PATTERN else "general"
            return GeneratedResponse(
                content=content,
                metadata={
                    "service": SERVICE_MOCK,
                    "responseCategory": category,
                    "state": STATE_INITIAL,
                    "pattern": snapshot_pattern,
                    "keywordsMatched": [],
                },
            )

        history = context.get("history") or []
        content, category, matched = self._followup(text, len(history))
        if pattern and category in ("cycle", "contextual", "question"):
            content += f" Keep in mind your assessment showed a {pattern} pattern."
        return GeneratedResponse(
            content=content,
            metadata={
                "service": SERVICE_MOCK,
                "responseCategory": category,
                "state": STATE_FOLLOWUP,
                "pattern": pattern,
                "keywordsMatched": matched,
                "conversationLength": len(history),
            },
        )

    @staticmethod
    def _followup(text: str, message_count: int) -> tuple[str, str, list[str]]:
        for category, keywords, reply in FOLLOWUP_RULES:
            matched = match_keywords(text, keywords)
            if matched:
                return reply, category, matched
        words = _words(text)
        if "?" in text or (words and words[0] in QUESTION_WORDS):
            return (
                "That's a good question. Every body is a little different, so tracking your "
                "periods and symptoms will help you and your doctor see what's normal for you.",
                "question",
                [],
            )
        if message_count < 3:
            reply = "Thanks for sharing that. Tell me a bit more so I can help."
        elif message_count < 10:
            reply = "That's helpful context. Is there a part of your cycle you'd like to focus on?"
        else:
            reply = "We've covered a lot together. Is there anything else on your mind about your period?"
        return reply, "contextual", []


# ---- Selection ----


def resolve_service_mode(settings: Settings | None = None) -> str:
    """'ai' or 'mock'. Forced modes win; 'auto' picks ai when Vertex is configured."""
    settings = settings or get_settings()
    mode = (settings.chat_service_mode or SERVICE_AUTO).strip().lower()
    if mode in (SERVICE_AI, SERVICE_MOCK):
        return mode
    if mode != SERVICE_AUTO:
        logger.warning("Unknown chat_service_mode %r, using auto-detection", mode)
    return SERVICE_AI if ai_service.is_ai_configured() else SERVICE_MOCK


def select_responders(settings: Settings | None = None) -> tuple[Responder, Responder | None]:
    """(primary, fallback). Fallback is the mock responder, only for AI with fallback enabled."""
    settings = settings or get_settings()
    mode = resolve_service_mode(settings)
    if mode == SERVICE_AI:
        fallback = MockResponder() if settings.chat_fallback_to_mock else None
        return AIResponder(settings), fallback
    return MockResponder(), None
