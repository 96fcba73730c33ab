from pydantic import BaseModel, Field, field_validator
from typing import Optional

from commentator.domain.models import Emotion


class WatchRequest(BaseModel):
    address: str = Field(..., min_length=3, max_length=128)

    @field_validator("address")
    @classmethod
    def strip_address(cls, value: str) -> str:
        return value.strip()


class SpeakRequest(BaseModel):
    text: str = Field(..., min_length=1, max_length=500)
    emotion: Emotion = Emotion.NEUTRAL

    @field_validator("text")
    @classmethod
    def strip_text(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("text must not be blank")
        return value


class SpeakResponse(BaseModel):
    accepted: bool
    queue_depth: int


class WatchResponse(BaseModel):
    address: str
    symbol: Optional[str]
    live: bool
