"""
MedCheck Backend - Gemini Service Unit Tests (Mocked)
=====================================================

What:  GeminiService with the SDK model replaced by mocks; no network.

What we test:
    ✅ Circuit breaker state machine
    ✅ JSON answers decoded into schemas (fenced or wrapped in prose)
    ✅ Per-task failure behaviour: raise vs empty result vs fallback
    ✅ Unusable answers never trip the breaker; upstream failures do
    ✅ Transient errors retried, permanent ones not
    ✅ Chat contents: system prompt on the first turn, model role, images
    ❌ Real API calls (scripts/check_gemini_key.py does that by hand)
"""

import time
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from google.api_core import exceptions as google_exceptions
from tenacity import stop_after_attempt, wait_none

from medcheck.exceptions import CircuitBreakerOpenError, LLMServiceError
from medcheck.schemas.medication import DosageRecommendation
from medcheck.schemas.profile import PatientContext
from medcheck.services.gemini_service import CircuitBreaker, GeminiService
from medcheck.services.llm_base import ChatTurn


def answer(text):
    return MagicMock(text=text)


class BlockedResponse:
    """A candidate stopped by safety filters: .text raises."""

    @property
    def text(self):
        raise ValueError("response was blocked")


def medication(name="Ibuprofen", dosage="200mg", generic_name=None, is_prescription=False):
    return SimpleNamespace(
        name=name,
        generic_name=generic_name,
        dosage=dosage,
        frequency="Twice daily",
        is_prescription=is_prescription,
        category="otc",
    )


class TestCircuitBreaker:

    def test_initial_state_is_closed(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        assert cb.state == CircuitBreaker.CLOSED
        assert cb.failure_count == 0

    def test_stays_closed_under_threshold(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=60)
        for _ in range(4):
            cb.record_failure()
        assert cb.state == CircuitBreaker.CLOSED
        assert cb.can_execute()

    def test_open_circuit_rejects_calls(self):
        cb = CircuitBreaker(failure_threshold=3, recovery_timeout=60)
        for _ in range(3):
            cb.record_failure()
        assert cb.state == CircuitBreaker.OPEN
        with pytest.raises(CircuitBreakerOpenError) as exc_info:
            cb.can_execute()
        assert 0 < exc_info.value.recovery_time <= 60

    def test_half_open_after_recovery_timeout(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        time.sleep(0.01)
        assert cb.can_execute()
        assert cb.state == CircuitBreaker.HALF_OPEN

    def test_failure_in_half_open_reopens(self):
        cb = CircuitBreaker(failure_threshold=5, recovery_timeout=0)
        for _ in range(5):
            cb.record_failure()
        time.sleep(0.01)
        cb.can_execute()
        cb.record_failure()
        assert cb.state == CircuitBreaker.OPEN

    def test_success_closes_and_resets(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=0)
        cb.record_failure()
        time.sleep(0.01)
        cb.can_execute()
        cb.record_success()
        assert cb.state == CircuitBreaker.CLOSED
        assert cb.failure_count == 0

    def test_half_open_lets_one_request_through(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        cb.record_failure()
        cb.last_failure_time = time.time() - 61

        assert cb.can_execute()
        with pytest.raises(CircuitBreakerOpenError):
            cb.can_execute()

        cb.record_success()
        assert cb.can_execute()

    def test_abandoned_test_request_stops_blocking(self):
        cb = CircuitBreaker(failure_threshold=1, recovery_timeout=60)
        cb.record_failure()
        cb.last_failure_time = time.time() - 61
        cb.can_execute()
        cb.trial_started_at = time.time() - 61

        assert cb.can_execute()
        assert cb.state == CircuitBreaker.HALF_OPEN


class TestGeminiTasks:

    def setup_method(self):
        self.service = GeminiService()
        self.service.model = MagicMock()
        self.service.model.generate_content_async = AsyncMock()
        self.generate = self.service.model.generate_content_async

    # ── Label scan ────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_label_scan_decodes_fenced_json(self, sample_image_bytes):
        self.generate.return_value = answer(
            '```json\n{"name": "Advil", "generic_name": "Ibuprofen", "dosage": "200mg", '
            '"is_prescription": false, "category": "otc"}\n```'
        )

        info = await self.service.analyze_label_image(sample_image_bytes, "image/jpeg")

        assert info.name == "Advil"
        assert info.generic_name == "Ibuprofen"
        contents = self.generate.call_args.args[0]
        assert contents[1] == {"mime_type": "image/jpeg", "data": sample_image_bytes}
        config = self.generate.call_args.kwargs["generation_config"]
        assert config == {"temperature": 0.4, "max_output_tokens": 500}

    @pytest.mark.asyncio
    async def test_label_scan_unreadable_answer_raises_without_tripping_breaker(self, sample_image_bytes):
        self.generate.return_value = answer("Sorry, the photo is too blurry.")

        with pytest.raises(LLMServiceError, match="clearer photo"):
            await self.service.analyze_label_image(sample_image_bytes, "image/jpeg")
        assert self.service.circuit_breaker.failure_count == 0

    @pytest.mark.asyncio
    async def test_label_scan_without_name_raises(self, sample_image_bytes):
        self.generate.return_value = answer('{"name": null, "dosage": "5mg"}')

        with pytest.raises(LLMServiceError, match="No medication name"):
            await self.service.analyze_label_image(sample_image_bytes, "image/png")

    @pytest.mark.asyncio
    async def test_unknown_category_is_dropped(self, sample_image_bytes):
        self.generate.return_value = answer('{"name": "Zinc", "category": "mineral"}')

        info = await self.service.analyze_label_image(sample_image_bytes, "image/png")

        assert info.name == "Zinc"
        assert info.category is None

    # ── Lookup ────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_lookup_fills_in_name(self):
        self.generate.return_value = answer(
            'Here is the info: {"generic_name": "Acetaminophen", "category": "otc"}'
        )

        info = await self.service.lookup_medication("Tylenol")

        assert info.name == "Tylenol"
        assert info.generic_name == "Acetaminophen"
        assert "Tylenol" in self.generate.call_args.args[0]

    @pytest.mark.asyncio
    async def test_lookup_failure_returns_empty(self):
        self.generate.side_effect = google_exceptions.InvalidArgument("bad request")

        info = await self.service.lookup_medication("Tylenol")

        assert info.name is None
        assert info.generic_name is None

    # ── Dosage ────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_dosage_recommendation(self):
        self.generate.return_value = answer(
            '{"recommended_dosage": "200-400mg", "recommended_frequency": "Every 4-6 hours", '
            '"dosage_notes": "Take with food."}'
        )
        patient = PatientContext(age=34, weight=70, allergies=["penicillin"])

        result = await self.service.recommend_dosage(medication(), patient)

        assert result.recommended_dosage == "200-400mg"
        prompt = self.generate.call_args.args[0]
        assert "34" in prompt
        assert "penicillin" in prompt

    @pytest.mark.asyncio
    async def test_dosage_falls_back_on_garbage(self):
        self.generate.return_value = answer("no json here")

        result = await self.service.recommend_dosage(medication(dosage="500mg"), PatientContext())

        assert result == DosageRecommendation.fallback("500mg")

    # ── Interactions ──────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_interactions_parsed(self):
        self.generate.return_value = answer(
            '{"interactions": [{"drug1": "Warfarin", "drug2": "Aspirin", "severity": "High", '
            '"description": "Bleeding risk"}], "warnings": ["Avoid alcohol"], "safe": false}'
        )

        analysis = await self.service.check_interactions(
            [medication("Warfarin"), medication("Aspirin")], PatientContext()
        )

        assert analysis.safe is False
        assert analysis.interactions[0].severity.value == "high"
        assert analysis.warnings == ["Avoid alcohol"]

    @pytest.mark.asyncio
    async def test_interactions_unparseable_raises(self):
        self.generate.return_value = answer("I am not sure.")

        with pytest.raises(LLMServiceError):
            await self.service.check_interactions([medication(), medication("Aspirin")], PatientContext())

    # ── Guarded call path ─────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_upstream_failure_records_breaker_failure(self):
        self.generate.side_effect = google_exceptions.PermissionDenied("API key not valid")

        with pytest.raises(LLMServiceError) as exc_info:
            await self.service.check_interactions([medication(), medication("Aspirin")], PatientContext())

        assert "API key not valid" in exc_info.value.message
        assert self.service.circuit_breaker.failure_count == 1
        # permanent errors are not retried
        assert self.generate.await_count == 1

    @pytest.mark.asyncio
    async def test_open_circuit_fails_fast(self):
        for _ in range(self.service.circuit_breaker.failure_threshold):
            self.service.circuit_breaker.record_failure()

        with pytest.raises(CircuitBreakerOpenError):
            await self.service.chat([ChatTurn("user", "hi")], [], PatientContext())
        self.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_not_configured(self):
        with patch("medcheck.services.gemini_service.settings") as mock_settings:
            mock_settings.gemini_configured = False
            with pytest.raises(LLMServiceError, match="not configured"):
                await self.service.check_interactions([medication(), medication()], PatientContext())
        self.generate.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried(self):
        self.generate.side_effect = [
            google_exceptions.ServiceUnavailable("overloaded"),
            answer("ok"),
        ]
        call = GeminiService._call_gemini_with_retry.retry_with(
            wait=wait_none(), stop=stop_after_attempt(3)
        )

        text = await call(self.service, "prompt", {"temperature": 0.1}, "test")

        assert text == "ok"
        assert self.generate.await_count == 2

    @pytest.mark.asyncio
    async def test_blocked_answer_is_empty_text(self):
        self.generate.return_value = BlockedResponse()

        text = await self.service._generate("prompt", 0.1, 10, task="test")

        assert text == ""

    # ── Chat ──────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_chat_contents(self, sample_png_bytes):
        self.generate.return_value = answer("Ibuprofen is an NSAID.")
        turns = [
            ChatTurn("user", "What is ibuprofen?"),
            ChatTurn("assistant", "A pain reliever."),
            ChatTurn("user", "", image=sample_png_bytes, image_mime_type="image/png"),
        ]

        reply = await self.service.chat(turns, [medication()], PatientContext(age=40))

        assert reply == "Ibuprofen is an NSAID."
        contents = self.generate.call_args.args[0]
        assert [c["role"] for c in contents] == ["user", "model", "user"]
        assert contents[0]["parts"][0].endswith("What is ibuprofen?")
        assert "Ibuprofen" in contents[0]["parts"][0]  # medication context in the system prompt
        assert contents[2]["parts"][1] == {"mime_type": "image/png", "data": sample_png_bytes}
        assert self.generate.call_args.kwargs["generation_config"]["max_output_tokens"] == 200

    @pytest.mark.asyncio
    async def test_detailed_chat_allows_longer_answers(self):
        self.generate.return_value = answer("Long answer")

        await self.service.chat([ChatTurn("user", "yes")], [], PatientContext(), detailed=True)

        assert self.generate.call_args.kwargs["generation_config"]["max_output_tokens"] == 800

    # ── Health ────────────────────────────────────────────────────────────

    @pytest.mark.asyncio
    async def test_health_check(self):
        with patch("medcheck.services.gemini_service.genai") as mock_genai:
            mock_genai.list_models.return_value = [SimpleNamespace(name="models/gemini-2.0-flash")]
            assert await self.service.health_check() is True

            mock_genai.list_models.side_effect = google_exceptions.Unauthenticated("bad key")
            assert await self.service.health_check() is False
