"""
MedCheck Backend - Abstract LLM Service Interface
=================================================

What:  Abstract base class defining the contract for the AI provider.
How:   GeminiService implements every method; services depend on this
       interface only, so tests substitute an AsyncMock with spec=LLMService.
Who:   MedicationService (label scan, lookup, dosage), InteractionService,
       ChatService.

Failure contract:
    - analyze_label_image, check_interactions and chat raise LLMServiceError
      or CircuitBreakerOpenError.
    - lookup_medication and recommend_dosage never raise for upstream
      failures; they return the empty result / generic fallback instead.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional, Sequence

from medcheck.schemas.interaction import InteractionAnalysis
from medcheck.schemas.medication import DosageRecommendation, MedicationInfo
from medcheck.schemas.profile import PatientContext


@dataclass
class ChatTurn:
    """One message of a conversation as sent to the model."""

    role: str  # "user" or "assistant"
    content: str
    image: Optional[bytes] = None
    image_mime_type: Optional[str] = None


class LLMService(ABC):
    """Abstract interface for the medication AI tasks."""

    @property
    @abstractmethod
    def is_configured(self) -> bool:
        """False when no API key is set; callers may skip the call entirely."""
        ...

    @abstractmethod
    async def analyze_label_image(self, image: bytes, mime_type: str) -> MedicationInfo:
        """
        Read a medication label photo.

        Raises:
            LLMServiceError: the model failed, or found no medication name.
            CircuitBreakerOpenError: too many recent upstream failures.
        """
        ...

    @abstractmethod
    async def lookup_medication(self, name: str) -> MedicationInfo:
        """General information about a medication name; empty on failure."""
        ...

    @abstractmethod
    async def recommend_dosage(
        self, medication: Any, patient: PatientContext
    ) -> DosageRecommendation:
        """Personalised dosage advice; the generic fallback on failure."""
        ...

    @abstractmethod
    async def check_interactions(
        self, medications: Sequence[Any], patient: PatientContext
    ) -> InteractionAnalysis:
        """Pairwise interaction analysis of the given medications."""
        ...

    @abstractmethod
    async def chat(
        self,
        messages: Sequence[ChatTurn],
        medications: Sequence[Any],
        patient: PatientContext,
        detailed: bool = False,
    ) -> str:
        """The assistant's raw reply to the last user message."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the LLM service is reachable and operational.

        Lightweight connectivity test that does not consume generation quota.
        """
        ...
