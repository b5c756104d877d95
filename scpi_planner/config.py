from __future__ import annotations

import os
from typing import Mapping, Optional, Tuple

from pydantic import BaseModel, Field

# Response texts the ask collaborator uses for transient failures.
EMPTY_RESPONSE_ERROR = "Error: Empty response from AI service."
CONNECTION_ERROR_PREFIX = "Error connecting to AI service:"
TERMINAL_RETRY_MESSAGE = "Error: Failed to get a valid response from AI service after multiple attempts."

DEFAULT_MODEL = "gpt-oss:20b"
PREFIX_SEPARATOR = "||"


class RetryPolicy(BaseModel):
    max_attempts: int = Field(default=6, ge=1, description="Total attempts, including the first")
    delay_seconds: float = Field(default=3.0, ge=0, description="Fixed wait between attempts")
    retryable_prefixes: Tuple[str, ...] = Field(
        default=(EMPTY_RESPONSE_ERROR, CONNECTION_ERROR_PREFIX),
        description="Responses starting with any of these are retried",
    )
    terminal_message: str = Field(
        default=TERMINAL_RETRY_MESSAGE,
        description="Returned when every attempt was retryable",
    )


class PlannerSettings(BaseModel):
    model: str = Field(default=DEFAULT_MODEL, description="Ollama model id")
    temperature: float = Field(default=0.5, description="Sampling temperature for plan generation")
    retry: RetryPolicy = Field(default_factory=RetryPolicy)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PlannerSettings":
        env = os.environ if environ is None else environ
        retry_fields = {}
        if env.get("PLANNER_MAX_ATTEMPTS"):
            retry_fields["max_attempts"] = int(env["PLANNER_MAX_ATTEMPTS"])
        if env.get("PLANNER_RETRY_DELAY"):
            retry_fields["delay_seconds"] = float(env["PLANNER_RETRY_DELAY"])
        if env.get("PLANNER_RETRYABLE_PREFIXES"):
            prefixes = [p.strip() for p in env["PLANNER_RETRYABLE_PREFIXES"].split(PREFIX_SEPARATOR)]
            retry_fields["retryable_prefixes"] = tuple(p for p in prefixes if p)

        fields = {"retry": RetryPolicy(**retry_fields)}
        if env.get("PLANNER_MODEL"):
            fields["model"] = env["PLANNER_MODEL"]
        if env.get("PLANNER_TEMPERATURE"):
            fields["temperature"] = float(env["PLANNER_TEMPERATURE"])
        return cls(**fields)


__all__ = [
    "EMPTY_RESPONSE_ERROR",
    "CONNECTION_ERROR_PREFIX",
    "TERMINAL_RETRY_MESSAGE",
    "RetryPolicy",
    "PlannerSettings",
]
