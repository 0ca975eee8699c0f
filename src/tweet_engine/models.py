"""Request and response models shared by the generation pipeline."""

from dataclasses import dataclass, field
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

TweetStyle = Literal["viral", "professional", "casual", "thread"]
Tone = Literal["formal", "neutral", "casual", "playful"]
LengthTier = Literal["short", "medium", "long"]
Mood = Literal[
    "optimistic",
    "controversial",
    "humorous",
    "urgent",
    "nostalgic",
    "motivational",
    "critical",
    "curious",
]
Audience = Literal[
    "developers",
    "founders",
    "creators",
    "students",
    "executives",
    "general",
    "investors",
    "marketers",
]


class AdvancedSettings(BaseModel):
    """Temperature, tone and length overrides."""

    model_config = ConfigDict(frozen=True)

    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    tone: Tone = "neutral"
    length: LengthTier = "medium"


class GenerationRequest(BaseModel):
    """One tweet generation call."""

    model_config = ConfigDict(frozen=True)

    topic: str = Field(min_length=1, max_length=500)
    style: TweetStyle = "viral"
    include_hashtags: bool = True
    include_emojis: bool = True
    template: str | None = None
    use_template: bool = False
    mood: Mood | None = None
    audience: Audience | None = None
    hook: str | None = Field(default=None, max_length=100)
    personal: bool = True
    advanced_settings: AdvancedSettings | None = None

    @field_validator("topic")
    @classmethod
    def _topic_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("Topic is required and must be a non-empty string")
        return value


class BatchRequest(GenerationRequest):
    """Several variations of the same tweet in one call."""

    batch_count: int = Field(default=3, ge=2, le=5)


class VisionRequest(BaseModel):
    """Image-to-tweet call. The image is base64 JPEG data without a data: prefix."""

    model_config = ConfigDict(frozen=True)

    image_base64: str = Field(min_length=1)
    style: TweetStyle = "viral"
    include_hashtags: bool = True
    include_emojis: bool = True
    custom_context: str | None = None
    advanced_settings: AdvancedSettings | None = None


@dataclass
class GenerationResponse:
    """Result handed to collaborators. `error` is a ready-to-display string."""

    tweet: str
    error: str | None = None


@dataclass
class BatchResponse:
    """Batch result."""

    tweets: list[str] = field(default_factory=list)
    error: str | None = None


@dataclass
class VisionResponse:
    """Vision result."""

    description: str
    tweet: str
    location: str | None = None
    error: str | None = None
