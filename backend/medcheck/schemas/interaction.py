"""
MedCheck Backend - Interaction Schemas
======================================

InteractionAnalysis is the validated shape of the AI's answer; pairs whose
severity falls outside the five-level scale are dropped while parsing.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from medcheck.core.severity import Severity, parse_severity

logger = logging.getLogger(__name__)


class InteractionPair(BaseModel):
    drug1: str
    drug2: str
    severity: Severity
    description: str = ""

    @field_validator("severity", mode="before")
    @classmethod
    def normalise_severity(cls, v: Any) -> Severity:
        return parse_severity(v)


class InteractionAnalysis(BaseModel):
    interactions: List[InteractionPair] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    safe: bool = True

    @field_validator("interactions", mode="before")
    @classmethod
    def drop_unreadable_pairs(cls, v: Any) -> List[Any]:
        if not isinstance(v, list):
            return []
        kept = []
        for item in v:
            try:
                kept.append(InteractionPair.model_validate(item))
            except ValueError as e:
                logger.warning("Dropping unreadable interaction pair %r: %s", item, e)
        return kept

    @field_validator("warnings", mode="before")
    @classmethod
    def warnings_as_strings(cls, v: Any) -> List[str]:
        if not isinstance(v, list):
            return []
        return [str(w) for w in v if w]

    @classmethod
    def empty(cls) -> "InteractionAnalysis":
        return cls(interactions=[], warnings=[], safe=True)


class InteractionCheckResponse(BaseModel):
    """
    Result of an interaction check, fresh or served from the cache.

    checked=false means no AI call was possible (fewer than two active
    medications, or no AI key configured); the result is then trivially safe.
    """
    id: Optional[uuid.UUID] = None
    medication_ids: List[uuid.UUID] = Field(default_factory=list)
    analysis: InteractionAnalysis
    status: str = Field(description="safe, warning or critical")
    max_severity: Severity = Severity.NONE
    has_warnings: bool = False
    checked: bool = True
    cached: bool = False
    checked_at: Optional[datetime] = None
