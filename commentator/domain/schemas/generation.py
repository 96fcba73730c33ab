from pydantic import BaseModel, Field, field_validator
from typing import Optional

from commentator.domain.models import Emotion, Intent


class GeneratedReply(BaseModel):
    """JSON contract the text-generation collaborator is asked to follow"""
    text: str = Field(..., min_length=1)
    emotion: Emotion = Emotion.NEUTRAL
    action: Intent = Intent.NONE
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)

    @field_validator("text")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("text must not be blank")
        return value

    @field_validator("emotion", mode="before")
    @classmethod
    def coerce_emotion(cls, value: Optional[str]) -> Emotion:
        return Emotion.parse(value)

    @field_validator("action", mode="before")
    @classmethod
    def coerce_action(cls, value: Optional[str]) -> Intent:
        return Intent.parse(value)

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value) -> float:
        try:
            return min(1.0, max(0.0, float(value)))
        except (TypeError, ValueError):
            return 0.5
