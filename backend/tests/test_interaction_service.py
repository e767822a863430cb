"""
MedCheck Backend - Interaction Check Service Tests
==================================================

What we test:
    ✅ Fewer than two active medications: no AI call, nothing stored
    ✅ Cache hit when the newest check covers the same medications
    ✅ force=True bypasses the cache
    ✅ Status/severity aggregation stored with the new check
    ✅ Unconfigured AI gives an unchecked, unstored result
    ✅ AI failures propagate
"""

from unittest.mock import AsyncMock

import pytest

from conftest import apply_insert_defaults, medication_row, result_with
from medcheck.exceptions import LLMServiceError, NotFoundError
from medcheck.models.interaction import InteractionCheck
from medcheck.schemas.interaction import InteractionAnalysis
from medcheck.services.interaction_service import InteractionService
from medcheck.services.llm_base import LLMService


def analysis(*severities, safe=False, warnings=()):
    return InteractionAnalysis.model_validate({
        "interactions": [
            {"drug1": "A", "drug2": "B", "severity": s, "description": "..."} for s in severities
        ],
        "warnings": list(warnings),
        "safe": safe,
    })


class TestInteractionCheck:

    @pytest.fixture(autouse=True)
    def _setup(self, user_id):
        self.llm = AsyncMock(spec=LLMService)
        self.llm.is_configured = True
        self.service = InteractionService(llm=self.llm)
        self.meds = [medication_row(user_id, name="Warfarin"), medication_row(user_id, name="Aspirin")]

    def cached_row(self, user_id, medication_ids):
        row = InteractionCheck(
            user_id=user_id,
            medication_ids=medication_ids,
            analysis=analysis("moderate").model_dump(mode="json"),
            status="warning",
            max_severity="moderate",
            has_warnings=True,
        )
        apply_insert_defaults(row)
        return row

    @pytest.mark.asyncio
    async def test_single_medication_is_trivially_safe(self, mock_db_session, user_id):
        mock_db_session.execute.return_value = result_with(self.meds[:1])

        result = await self.service.check(mock_db_session, user_id)

        assert result.checked is False
        assert result.status == "safe"
        assert result.analysis.interactions == []
        self.llm.check_interactions.assert_not_awaited()
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_same_medications_served_from_cache(self, mock_db_session, user_id):
        # stored order differs from the listing order
        cached = self.cached_row(user_id, [self.meds[1].id, self.meds[0].id])
        mock_db_session.execute.side_effect = [result_with(self.meds), result_with([cached])]

        result = await self.service.check(mock_db_session, user_id)

        assert result.cached is True
        assert result.id == cached.id
        assert result.max_severity.value == "moderate"
        self.llm.check_interactions.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_changed_medications_recompute(self, mock_db_session, user_id):
        cached = self.cached_row(user_id, [self.meds[0].id])
        mock_db_session.execute.side_effect = [result_with(self.meds), result_with([cached])]
        self.llm.check_interactions.return_value = analysis("low", "high", warnings=["Bleeding risk"])

        result = await self.service.check(mock_db_session, user_id)

        assert result.cached is False
        assert result.checked is True
        assert result.status == "warning"
        assert result.max_severity.value == "high"
        assert result.has_warnings is True

        stored = mock_db_session.add.call_args.args[0]
        assert stored.status == "warning"
        assert stored.max_severity == "high"
        assert stored.analysis["interactions"][1]["severity"] == "high"

    @pytest.mark.asyncio
    async def test_force_skips_cache_lookup(self, mock_db_session, user_id):
        mock_db_session.execute.return_value = result_with(self.meds)
        self.llm.check_interactions.return_value = analysis("critical")

        result = await self.service.check(mock_db_session, user_id, force=True)

        assert result.status == "critical"
        # only the medication listing hit the database
        assert mock_db_session.execute.await_count == 1

    @pytest.mark.asyncio
    async def test_safe_answer_with_no_pairs(self, mock_db_session, user_id):
        mock_db_session.execute.side_effect = [result_with(self.meds), result_with([])]
        self.llm.check_interactions.return_value = analysis(safe=True)

        result = await self.service.check(mock_db_session, user_id)

        assert result.status == "safe"
        assert result.max_severity.value == "none"
        assert result.has_warnings is False

    @pytest.mark.asyncio
    async def test_unconfigured_ai_is_not_stored(self, mock_db_session, user_id):
        self.llm.is_configured = False
        mock_db_session.execute.side_effect = [result_with(self.meds), result_with([])]

        result = await self.service.check(mock_db_session, user_id)

        assert result.checked is False
        assert result.status == "safe"
        self.llm.check_interactions.assert_not_awaited()
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_ai_failure_propagates(self, mock_db_session, user_id):
        mock_db_session.execute.side_effect = [result_with(self.meds), result_with([])]
        self.llm.check_interactions.side_effect = LLMServiceError(message="Gemini down")

        with pytest.raises(LLMServiceError):
            await self.service.check(mock_db_session, user_id)
        mock_db_session.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_latest(self, mock_db_session, user_id):
        cached = self.cached_row(user_id, [m.id for m in self.meds])
        mock_db_session.execute.return_value = result_with([cached])

        result = await self.service.latest(mock_db_session, user_id)

        assert result.id == cached.id
        assert result.cached is True

    @pytest.mark.asyncio
    async def test_latest_without_checks(self, mock_db_session, user_id):
        mock_db_session.execute.return_value = result_with([])

        with pytest.raises(NotFoundError):
            await self.service.latest(mock_db_session, user_id)
