"""Extract a clean answer from whatever shape a provider returned.

Providers disagree on answer shape: clean JSON, JSON fenced in triple
backticks, JSON embedded in prose, or (for some vision models) a long
deliberation trace with the real answer buried inside. Stages run in order
and the first success wins:

1. strip a code fence and parse strict JSON
2. pull `"tweet"`, `"description"` and `"location"` fields out with regexes
3. cut the answer out of a reasoning trace using per-provider phrase tables
4. give up and return None

Nothing in here raises on bad input.
"""

import json
import logging
import re
from dataclasses import dataclass, field

import httpx

from tweet_engine.generation.providers import RequestFormat

logger = logging.getLogger(__name__)

MAX_TRACE_ANSWER = 280

_FENCE_START = re.compile(r"^```[A-Za-z0-9_-]*\s*")
_FENCE_END = re.compile(r"\s*```$")

_HASHTAG = re.compile(r"#[A-Za-z]\w+")
_EMOJI = re.compile(
    "["
    "\U0001f300-\U0001faff"  # pictographs, emoticons, transport, supplemental
    "\U0001f1e6-\U0001f1ff"  # flags
    "\u2600-\u27bf"  # misc symbols and dingbats
    "\u2b50\u2b55"
    "]"
)
_QUOTED = re.compile(r"[\"“]([^\"“”\n]{10,300})[\"”]")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+|\n+")


def _field_pattern(name: str) -> re.Pattern[str]:
    # Tolerates escaped quotes inside the value
    return re.compile(rf'"{name}"\s*:\s*"((?:[^"\\]|\\.)+)"', re.IGNORECASE)


_TWEET_FIELD = _field_pattern("tweet")
_DESCRIPTION_FIELD = _field_pattern("description")
_LOCATION_FIELD = _field_pattern("location")


@dataclass(frozen=True)
class NormalizedOutput:
    """The answer extracted from a provider response."""

    description: str
    tweet: str
    location: str | None = None


@dataclass(frozen=True)
class ReasoningPhrases:
    """Phrases around the real answer inside a deliberation trace."""

    intro: tuple[str, ...]
    correction: tuple[str, ...]
    _intro_re: re.Pattern[str] = field(init=False, repr=False, compare=False)
    _correction_re: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        intro = "|".join(self.intro)
        correction = "|".join(self.correction)
        object.__setattr__(
            self, "_intro_re", re.compile(rf"(?:{intro})\s*:\s*", re.IGNORECASE)
        )
        object.__setattr__(self, "_correction_re", re.compile(rf"\n\s*(?:{correction})"))

    def last_intro_end(self, text: str) -> int | None:
        matches = list(self._intro_re.finditer(text))
        return matches[-1].end() if matches else None

    def first_correction(self, text: str, start: int = 0) -> int | None:
        match = self._correction_re.search(text, start)
        return match.start() if match else None

    def looks_like_trace(self, text: str) -> bool:
        return bool(self._intro_re.search(text) or self._correction_re.search(text))


_DEFAULT_PHRASES = ReasoningPhrases(
    intro=(
        r"Tweet needs to be",
        r"Let'?s think",
        r"Maybe",
        r"For the tweet",
        r"The tweet could be",
        r"Here'?s a tweet",
        r"Final tweet",
    ),
    correction=(
        r"Wait,",
        r"Let me count",
        r"Let'?s count",
        r"Check length",
        r"Hmm",
        r"Actually",
    ),
)

# Model output formats drift between versions; extend per provider as needed
REASONING_PHRASES: dict[str, ReasoningPhrases] = {
    "default": _DEFAULT_PHRASES,
    "glm": ReasoningPhrases(
        intro=_DEFAULT_PHRASES.intro + (r"Draft", r"Possible tweet"),
        correction=_DEFAULT_PHRASES.correction + (r"But wait", r"Let me check", r"Alternatively"),
    ),
}


def phrases_for(provider_id: str | None) -> ReasoningPhrases:
    return REASONING_PHRASES.get(provider_id or "default", REASONING_PHRASES["default"])


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ``` fence, with or without a language tag."""
    stripped = _FENCE_START.sub("", text.strip())
    return _FENCE_END.sub("", stripped).strip()


def _as_text(value: object) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _from_mapping(data: object) -> NormalizedOutput | None:
    if not isinstance(data, dict):
        return None
    description = _as_text(data.get("description"))
    tweet = _as_text(data.get("tweet"))
    if not description and not tweet:
        return None
    return NormalizedOutput(
        description=description,
        tweet=tweet,
        location=_as_text(data.get("location")) or None,
    )


def _loads(text: str) -> object:
    try:
        return json.loads(text)
    except (ValueError, RecursionError):
        return None


def parse_json_answer(text: str) -> NormalizedOutput | None:
    """Stage 1: strict JSON, either the whole text or its outermost object."""
    stripped = strip_code_fence(text)
    result = _from_mapping(_loads(stripped))
    if result is not None:
        return result

    start, end = stripped.find("{"), stripped.rfind("}")
    if 0 <= start < end and (start > 0 or end < len(stripped) - 1):
        return _from_mapping(_loads(stripped[start : end + 1]))
    return None


def _unescape(value: str) -> str:
    decoded = _loads(f'"{value}"')
    return decoded.strip() if isinstance(decoded, str) else value.strip()


def extract_fields(text: str) -> NormalizedOutput | None:
    """Stage 2: regex extraction of individual fields from broken JSON."""
    tweet = _TWEET_FIELD.search(text)
    description = _DESCRIPTION_FIELD.search(text)
    location = _LOCATION_FIELD.search(text)
    if not (tweet or description or location):
        return None
    return NormalizedOutput(
        description=_unescape(description.group(1)) if description else "",
        tweet=_unescape(tweet.group(1)) if tweet else "",
        location=_unescape(location.group(1)) if location else None,
    )


def _has_signal(text: str) -> bool:
    return bool(_HASHTAG.search(text) or _EMOJI.search(text))


def extract_from_reasoning(trace: str, provider_id: str | None = None) -> str | None:
    """Stage 3: cut the literal answer out of a deliberation trace."""
    if not trace or not trace.strip():
        return None

    phrases = phrases_for(provider_id)
    start = phrases.last_intro_end(trace)
    begin = start if start is not None else 0
    stop = phrases.first_correction(trace, begin)
    candidate = trace[begin : stop if stop is not None else len(trace)].strip()
    if start is None and stop is None:
        logger.warning("No reasoning boundary phrases found, falling back to sentence heuristics")

    # A quoted, sentence-like string with a hashtag or emoji is almost always the answer
    for match in _QUOTED.finditer(candidate):
        quoted = match.group(1).strip()
        if _has_signal(quoted):
            return quoted

    for line in candidate.splitlines():
        line = line.strip().strip("\"'“”")
        if 20 <= len(line) <= MAX_TRACE_ANSWER and _has_signal(line) and line[:1].isupper():
            return line

    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(candidate) if len(s.strip()) > 20]
    if sentences:
        for sentence in sentences:
            if _has_signal(sentence):
                return sentence
        last = sentences[-1]
        if len(last) < 300:
            logger.warning(f"Reasoning extraction fell back to last sentence: {last[:60]!r}")
            return last

    logger.warning("Reasoning extraction fell back to hard truncation")
    if candidate:
        return candidate[:MAX_TRACE_ANSWER].strip()
    return trace[-MAX_TRACE_ANSWER:].strip() or None


def normalize_output(
    raw: str | None,
    provider_id: str | None = None,
    reasoning: bool = True,
) -> NormalizedOutput | None:
    """Extract `{description, tweet, location}` from provider text.

    Returns None when nothing usable was found, which is distinct from a
    model that answered with an empty tweet.
    """
    if not raw or not raw.strip():
        return None

    result = parse_json_answer(raw)
    if result is not None:
        return result

    result = extract_fields(raw)
    if result is not None:
        logger.debug("Answer recovered with field-level pattern extraction")
        return result

    if reasoning and phrases_for(provider_id).looks_like_trace(raw):
        tweet = extract_from_reasoning(raw, provider_id)
        if tweet:
            return NormalizedOutput(description="", tweet=tweet)

    return None


_ANSWER_PREFIXES = ("tweet:", "reply:", "response:", "answer:", "output:")


def clean_tweet_text(text: str) -> str:
    """Strip wrapping quotes and `Tweet:`-style prefixes."""
    text = text.strip()

    for prefix in _ANSWER_PREFIXES:
        if text.lower().startswith(prefix):
            text = text[len(prefix) :].strip()
            break

    if len(text) >= 2 and text[0] == text[-1] and text[0] in "\"'":
        text = text[1:-1]

    return text.strip()


_FALLBACK_CONTENT_KEYS = ("data", "content", "message", "msg", "output", "text", "result")


def _content_to_text(content: object) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") if isinstance(part, dict) else str(part) for part in content
        )
    return ""


def extract_message_text(
    data: object,
    request_format: RequestFormat = RequestFormat.OPENAI_CHAT,
    provider_id: str | None = None,
) -> str:
    """Raw answer text from a provider's response envelope, or ""."""
    if not isinstance(data, dict):
        return ""

    if request_format is RequestFormat.GEMINI_CONTENTS:
        try:
            parts = data["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            return ""
        return _content_to_text(parts)

    message: dict = {}
    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        candidate = choices[0].get("message")
        if isinstance(candidate, dict):
            message = candidate

    content = _content_to_text(message.get("content"))
    if content.strip():
        return content

    reasoning = message.get("reasoning_content")
    if isinstance(reasoning, str) and reasoning.strip():
        logger.debug("Empty content, extracting answer from reasoning_content")
        return extract_from_reasoning(reasoning, provider_id) or ""

    for key in _FALLBACK_CONTENT_KEYS:
        value = data.get(key)
        if isinstance(value, str) and value.strip():
            logger.debug(f"Using non-standard response field '{key}'")
            return value

    return ""


def extract_error_message(response: httpx.Response, provider_id: str) -> str:
    """Best-effort human-readable error from a failing provider response."""
    fallback = f"Failed to generate tweet using {provider_id} (HTTP {response.status_code})"
    try:
        data = response.json()
    except ValueError:
        return fallback

    if isinstance(data, list) and data:
        data = data[0]
    if not isinstance(data, dict):
        return fallback

    error = data.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(error, str) and error:
        return error
    if isinstance(data.get("message"), str) and data["message"]:
        return data["message"]
    return fallback
