"""Pydantic request schemas for the HTTP control surface."""

from pydantic import BaseModel, ConfigDict, Field


class AltitudeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    altitude: float


class HeadingRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    heading: float


class FlapsRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    position: float


class RadioRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    frequency: float


class VoiceCommandRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    command: str = Field(min_length=1, max_length=500)
