"""
Oracle client for the extraction engine.

Wraps one prompt + images exchange with the multimodal model: strips code
fences, parses JSON, validates the stage schema and retries with exponential
backoff. A single attempt never raises; it returns a StageOutcome that the
retry policy inspects.
"""

import base64
import json
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Generic, List, Optional, Protocol, Sequence, Type, TypeVar

import structlog
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from finextract.config import OracleConfig
from finextract.exceptions import (
    OracleConfigurationError,
    OracleError,
    OracleResponseError,
    OracleSchemaError,
    StageFailedError,
)

logger = structlog.get_logger(__name__)

PayloadT = TypeVar("PayloadT", bound=BaseModel)

FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)


class Oracle(Protocol):
    """Anything that answers a prompt (plus base64 JPEG pages) with text."""

    def generate(self, prompt: str, images: Sequence[str]) -> str:
        ...


class GeminiOracle:
    """Google Gemini vision model behind the Oracle protocol."""

    IMAGE_MIME_TYPE = "image/jpeg"

    def __init__(self, config: OracleConfig):
        if not config.api_key:
            raise OracleConfigurationError("GEMINI_API_KEY is not set")

        import google.generativeai as genai

        genai.configure(api_key=config.api_key)
        self._model = genai.GenerativeModel(
            config.model_name,
            generation_config={"temperature": config.temperature},
        )
        self.model_name = config.model_name
        logger.info("Gemini oracle initialized", model=config.model_name)

    def generate(self, prompt: str, images: Sequence[str]) -> str:
        parts: List[Any] = [prompt]
        parts.extend(
            {"mime_type": self.IMAGE_MIME_TYPE, "data": base64.b64decode(image)}
            for image in images
        )
        response = self._model.generate_content(parts)
        return response.text


@dataclass(frozen=True)
class RetryPolicy:
    """How many attempts a stage gets and how long to wait between them."""

    max_attempts: int = 2
    base_delay: float = 1.0

    def delay_for(self, attempt: int) -> float:
        """Delay after failed attempt number `attempt` (1-based): 1s, 2s, 4s..."""
        return self.base_delay * (2 ** (attempt - 1))


@dataclass
class StageOutcome(Generic[PayloadT]):
    """Result of a single oracle attempt."""

    stage: str
    attempt: int
    payload: Optional[PayloadT] = None
    error: Optional[OracleError] = None
    raw: Any = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.payload is not None


def strip_code_fences(text: str) -> str:
    """Remove markdown ```json fences around a model response."""
    return FENCE_PATTERN.sub("", text or "").strip()


class OracleClient:
    """
    Executes stage calls against an Oracle.

    Holds no state between calls; the sleep function is injectable so tests
    can observe backoff without waiting.
    """

    def __init__(self, oracle: Oracle, sleep: Callable[[float], None] = time.sleep):
        self._oracle = oracle
        self._sleep = sleep

    def attempt(
        self,
        prompt: str,
        images: Sequence[str],
        schema: Type[PayloadT],
        stage: str,
        attempt: int = 1,
        validator: Optional[Callable[[PayloadT], None]] = None,
    ) -> StageOutcome[PayloadT]:
        """
        Run one exchange and classify its result.

        Args:
            prompt: Instruction text.
            images: Base64 JPEG page images.
            schema: Pydantic model the JSON must satisfy.
            stage: Stage label for logs and errors.
            attempt: Attempt number, for logging.
            validator: Extra check on the parsed payload; raises OracleError.

        Returns:
            StageOutcome with either payload or error set.
        """
        try:
            text = self._oracle.generate(prompt, images)
        except Exception as e:
            return StageOutcome(
                stage=stage,
                attempt=attempt,
                error=OracleError(f"Model request failed: {e}", details={"stage": stage}),
            )

        cleaned = strip_code_fences(text)
        try:
            data = json.loads(cleaned)
        except (json.JSONDecodeError, TypeError) as e:
            return StageOutcome(
                stage=stage,
                attempt=attempt,
                error=OracleResponseError(f"Invalid JSON for {stage}: {e}", details={"stage": stage}),
                raw=cleaned,
            )

        try:
            payload = schema.model_validate(data)
        except PydanticValidationError as e:
            return StageOutcome(
                stage=stage,
                attempt=attempt,
                error=OracleSchemaError(
                    f"Invalid JSON structure for {stage}",
                    details={
                        "stage": stage,
                        "errors": [
                            {"loc": [str(part) for part in err["loc"]], "msg": err["msg"]}
                            for err in e.errors()
                        ],
                    },
                ),
                raw=data,
            )

        if validator is not None:
            try:
                validator(payload)
            except OracleError as e:
                return StageOutcome(stage=stage, attempt=attempt, error=e, raw=data)

        return StageOutcome(stage=stage, attempt=attempt, payload=payload, raw=data)

    def call(
        self,
        prompt: str,
        images: Sequence[str],
        schema: Type[PayloadT],
        stage: str,
        policy: Optional[RetryPolicy] = None,
        validator: Optional[Callable[[PayloadT], None]] = None,
    ) -> PayloadT:
        """
        Run a stage under a retry policy.

        Returns:
            The validated payload.

        Raises:
            StageFailedError: After max_attempts failed attempts.
        """
        policy = policy or RetryPolicy()
        outcome: Optional[StageOutcome[PayloadT]] = None

        for attempt in range(1, policy.max_attempts + 1):
            logger.info("Oracle call", stage=stage, attempt=attempt, max_attempts=policy.max_attempts)
            outcome = self.attempt(prompt, images, schema, stage, attempt=attempt, validator=validator)
            if outcome.ok:
                return outcome.payload

            logger.warning(
                "Oracle attempt failed",
                stage=stage,
                attempt=attempt,
                error=str(outcome.error),
                error_type=type(outcome.error).__name__,
            )
            if attempt < policy.max_attempts:
                self._sleep(policy.delay_for(attempt))

        logger.error("Oracle stage exhausted retries", stage=stage, attempts=policy.max_attempts)
        raise StageFailedError(
            stage=stage,
            attempts=policy.max_attempts,
            last_error=outcome.error if outcome else None,
            raw=outcome.raw if outcome else None,
        )


def get_oracle_client(config: OracleConfig) -> OracleClient:
    """Build an OracleClient backed by Gemini."""
    return OracleClient(GeminiOracle(config))
