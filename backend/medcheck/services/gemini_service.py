"""
MedCheck Backend - Google Gemini Service Implementation
=======================================================

What:  Concrete LLM service using the Google Gemini API for label reading,
       medication lookup, dosage advice, interaction analysis and chat.
How:   Builds the task prompt, sends it (with inline image bytes where
       needed) through one guarded call path, then decodes the JSON answer
       into a Pydantic schema.
Who:   Instantiated once at import; used by the medication, interaction
       and chat services.

Resilience Strategy:
    1. Tenacity retry with exponential backoff + jitter, for transient
       upstream errors only (unavailable, quota, deadline, 5xx, network)
    2. Circuit breaker shared by every task, so an outage fails fast
    3. Per-call timeout from GEMINI_TIMEOUT
    4. Answers that are not valid JSON are task failures, not upstream
       failures: they never trip the breaker

Task settings:
    task              temperature   max tokens   on failure
    label scan        0.4           500          LLMServiceError
    lookup by name    0.3           400          empty MedicationInfo
    dosage advice     0.3           400          generic fallback
    interactions      0.4           1000         LLMServiceError
    chat              0.7           200 / 800    LLMServiceError
"""

import logging
import time
import uuid
from typing import Any, Dict, List, Optional, Sequence

import google.generativeai as genai
from google.api_core import exceptions as google_exceptions
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential_jitter,
    retry_if_exception_type,
    before_sleep_log,
)

from medcheck.config import settings
from medcheck.core.assistant import extract_json_object, gemini_error_message
from medcheck.exceptions import CircuitBreakerOpenError, LLMServiceError, MedCheckError
from medcheck.schemas.interaction import InteractionAnalysis
from medcheck.schemas.medication import DosageRecommendation, MedicationInfo
from medcheck.schemas.profile import PatientContext
from medcheck.services import prompts
from medcheck.services.llm_base import ChatTurn, LLMService

logger = logging.getLogger(__name__)

# Errors worth another attempt; anything else (bad key, bad request) fails fast
TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.ResourceExhausted,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    ConnectionError,
    TimeoutError,
)

IMAGE_PROMPT = "What can you tell me about this image?"


# ══════════════════════════════════════════════════════════════════════════
# Circuit Breaker Implementation
# ══════════════════════════════════════════════════════════════════════════

class CircuitBreaker:
    """
    Circuit breaker guarding every Gemini call.

    State Machine:
        CLOSED (normal operation)
            → On failure: increment failure_count
            → When failure_count >= threshold: transition to OPEN

        OPEN (rejecting all requests)
            → All calls raise CircuitBreakerOpenError immediately
            → After recovery_timeout seconds: transition to HALF_OPEN

        HALF_OPEN (testing recovery)
            → Allow ONE request through; others are rejected while it runs
            → A test request that never reports back stops blocking after
              recovery_timeout seconds
            → On success: transition to CLOSED (reset failure_count)
            → On failure: transition back to OPEN (reset timer)

    Not shared between worker processes; each uvicorn worker keeps its own
    counters.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"

    def __init__(self, failure_threshold: int = 5, recovery_timeout: int = 60):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time: Optional[float] = None
        self.trial_started_at: Optional[float] = None

    def can_execute(self) -> bool:
        """
        Check if a request is allowed through the circuit breaker.

        Raises:
            CircuitBreakerOpenError if circuit is OPEN and recovery timeout hasn't elapsed.
        """
        if self.state == self.CLOSED:
            return True

        if self.state == self.OPEN:
            elapsed = time.time() - (self.last_failure_time or 0)
            if elapsed >= self.recovery_timeout:
                logger.info(
                    "Circuit breaker transitioning to HALF_OPEN after %.1fs",
                    elapsed,
                )
                self.state = self.HALF_OPEN
                self.trial_started_at = time.time()
                return True
            remaining = int(self.recovery_timeout - elapsed)
            raise CircuitBreakerOpenError(recovery_time=remaining)

        # HALF_OPEN: one test request at a time
        waited = time.time() - (self.trial_started_at or 0)
        if waited < self.recovery_timeout:
            raise CircuitBreakerOpenError(recovery_time=max(1, int(self.recovery_timeout - waited)))
        self.trial_started_at = time.time()
        return True

    def record_success(self) -> None:
        if self.state == self.HALF_OPEN:
            logger.info("Circuit breaker transitioning to CLOSED (service recovered)")
        self.failure_count = 0
        self.state = self.CLOSED
        self.last_failure_time = None
        self.trial_started_at = None

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.time()
        self.trial_started_at = None

        if self.state == self.HALF_OPEN:
            logger.warning("Circuit breaker returning to OPEN (test request failed)")
            self.state = self.OPEN
        elif self.failure_count >= self.failure_threshold:
            logger.warning(
                "Circuit breaker OPENING after %d consecutive failures",
                self.failure_count,
            )
            self.state = self.OPEN


# ══════════════════════════════════════════════════════════════════════════
# Gemini Service
# ══════════════════════════════════════════════════════════════════════════

class GeminiService(LLMService):
    """
    Google Gemini implementation of the medication AI tasks.

    Error Handling Chain:
        API call fails → tenacity retries transient errors (3 attempts, backoff)
        → still failing → record circuit breaker failure → LLMServiceError
        → threshold reached → future calls rejected instantly
        → recovery timeout → allow test call (HALF_OPEN)
        → test succeeds → resume normal operation (CLOSED)
    """

    def __init__(self):
        # The SDK keeps the key in module-level state
        if settings.gemini_configured:
            genai.configure(api_key=settings.gemini_api_key)

        self.model = genai.GenerativeModel(settings.gemini_model)

        self.circuit_breaker = CircuitBreaker(
            failure_threshold=settings.cb_failure_threshold,
            recovery_timeout=settings.cb_recovery_timeout,
        )

        logger.info(
            "GeminiService initialized with model=%s, configured=%s, "
            "circuit_breaker(threshold=%d, recovery=%ds)",
            settings.gemini_model,
            settings.gemini_configured,
            settings.cb_failure_threshold,
            settings.cb_recovery_timeout,
        )

    @property
    def is_configured(self) -> bool:
        return settings.gemini_configured

    # ── Guarded call path ────────────────────────────────────────────────

    async def _generate(
        self,
        contents: Any,
        temperature: float,
        max_output_tokens: int,
        task: str,
    ) -> str:
        """
        Run one generation through the circuit breaker and retry policy.

        Returns:
            The model's text; empty when the answer had no text part.

        Raises:
            LLMServiceError: not configured, or the call failed after retries.
            CircuitBreakerOpenError: circuit is open.
        """
        if not self.is_configured:
            raise LLMServiceError(
                message="The AI assistant is not configured. Please set GEMINI_API_KEY.",
                context={"task": task},
            )

        request_id = str(uuid.uuid4())[:8]
        self.circuit_breaker.can_execute()

        generation_config = {
            "temperature": temperature,
            "max_output_tokens": max_output_tokens,
        }
        logger.info("[%s] Starting Gemini %s request", request_id, task)

        try:
            result = await self._call_gemini_with_retry(contents, generation_config, request_id)
            self.circuit_breaker.record_success()
            return result
        except CircuitBreakerOpenError:
            raise
        except Exception as e:
            self.circuit_breaker.record_failure()
            detail = getattr(e, "message", None) or str(e)
            logger.error(
                "[%s] Gemini %s request failed: %s",
                request_id,
                task,
                detail,
                exc_info=not isinstance(e, TRANSIENT_ERRORS),
            )
            raise LLMServiceError(
                message=gemini_error_message(detail),
                retry_after=self.circuit_breaker.recovery_timeout,
                context={"request_id": request_id, "task": task, "error_type": type(e).__name__},
            )

    @retry(
        retry=retry_if_exception_type(TRANSIENT_ERRORS),
        stop=stop_after_attempt(settings.retry_max_attempts),
        # wait = min(max_wait, min_wait * 2^attempt) + random(0, 1)
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _call_gemini_with_retry(
        self, contents: Any, generation_config: Dict[str, Any], request_id: str
    ) -> str:
        """
        The actual API call. Kept apart from _generate so the circuit breaker
        check is not retried along with it.
        """
        start_time = time.time()

        try:
            response = await self.model.generate_content_async(
                contents,
                generation_config=generation_config,
                request_options={"timeout": settings.gemini_timeout},
            )
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.warning(
                "[%s] Gemini API call failed after %.0fms: %s",
                request_id,
                duration_ms,
                str(e),
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        try:
            text = response.text.strip() if response.text else ""
        except ValueError:
            # .text raises when the candidate was blocked or has no parts
            logger.warning("[%s] Gemini response had no text part", request_id)
            text = ""

        logger.info(
            "[%s] Gemini call completed in %.0fms, %d chars",
            request_id,
            duration_ms,
            len(text),
        )
        return text

    # ── Tasks ────────────────────────────────────────────────────────────

    async def analyze_label_image(self, image: bytes, mime_type: str) -> MedicationInfo:
        text = await self._generate(
            [prompts.LABEL_PROMPT, {"mime_type": mime_type, "data": image}],
            temperature=0.4,
            max_output_tokens=500,
            task="label_scan",
        )
        try:
            info = MedicationInfo.model_validate(extract_json_object(text))
        except ValueError as e:
            logger.warning("Label scan answer was not usable JSON: %s", e)
            raise LLMServiceError(
                message="Failed to extract medication information. Please try a clearer photo.",
                context={"task": "label_scan"},
            )
        if not info.name:
            raise LLMServiceError(
                message="No medication name could be read from the label. Please try a clearer photo.",
                context={"task": "label_scan"},
            )
        return info

    async def lookup_medication(self, name: str) -> MedicationInfo:
        """Empty result on any failure so the user can still fill the form by hand."""
        try:
            text = await self._generate(
                prompts.lookup_prompt(name),
                temperature=0.3,
                max_output_tokens=400,
                task="lookup",
            )
            info = MedicationInfo.model_validate(extract_json_object(text))
        except (MedCheckError, ValueError) as e:
            logger.warning("Medication lookup for %r failed: %s", name, e)
            return MedicationInfo()
        if not info.name:
            info = info.model_copy(update={"name": name})
        return info

    async def recommend_dosage(
        self, medication: Any, patient: PatientContext
    ) -> DosageRecommendation:
        try:
            text = await self._generate(
                prompts.dosage_prompt(medication, patient),
                temperature=0.3,
                max_output_tokens=400,
                task="dosage",
            )
            return DosageRecommendation.model_validate(extract_json_object(text))
        except (MedCheckError, ValueError) as e:
            logger.warning("Dosage recommendation for %r failed: %s", medication.name, e)
            return DosageRecommendation.fallback(medication.dosage)

    async def check_interactions(
        self, medications: Sequence[Any], patient: PatientContext
    ) -> InteractionAnalysis:
        text = await self._generate(
            prompts.interaction_prompt(medications, patient),
            temperature=0.4,
            max_output_tokens=1000,
            task="interactions",
        )
        try:
            return InteractionAnalysis.model_validate(extract_json_object(text))
        except ValueError as e:
            logger.warning("Interaction answer was not usable JSON: %s", e)
            raise LLMServiceError(
                message="Failed to extract interaction information. Please try again.",
                context={"task": "interactions"},
            )

    async def chat(
        self,
        messages: Sequence[ChatTurn],
        medications: Sequence[Any],
        patient: PatientContext,
        detailed: bool = False,
    ) -> str:
        system_prompt = prompts.chat_system_prompt(
            patient,
            medications,
            messages,
            detailed=detailed,
            window=settings.chat_history_window,
        )

        contents: List[Dict[str, Any]] = []
        for i, turn in enumerate(messages):
            text = turn.content or (IMAGE_PROMPT if turn.image else "")
            # The API has no system role here; the prompt rides on the first message
            if i == 0:
                text = f"{system_prompt}\n\n{text}"
            parts: List[Any] = [text]
            if turn.image:
                parts.append({"mime_type": turn.image_mime_type or "image/jpeg", "data": turn.image})
            contents.append({
                "role": "model" if turn.role == "assistant" else "user",
                "parts": parts,
            })

        return await self._generate(
            contents,
            temperature=0.7,
            max_output_tokens=800 if detailed else 200,
            task="chat",
        )

    async def health_check(self) -> bool:
        """
        Check if Gemini API is reachable.

        Lists available models, which verifies key and connectivity without
        consuming tokens.
        """
        if not self.is_configured:
            return False
        try:
            model_names = [m.name for m in genai.list_models()]
            target = f"models/{settings.gemini_model}"
            if target not in model_names:
                logger.warning("Configured model %s not found in available models", target)
            return True
        except Exception as e:
            logger.warning("Gemini health check failed: %s", str(e))
            return False


# ── Singleton Instance ────────────────────────────────────────────────────
# Holds the circuit breaker state, which must be shared across requests
gemini_service = GeminiService()
