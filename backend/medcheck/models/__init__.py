"""
MedCheck Backend - ORM Models
=============================

Every table carries the owning user's id (the `sub` claim of the access
token). Services always filter on it; see services/ownership.py.

Importing this package registers every model with Base.metadata, which is
what Alembic reads.
"""

from medcheck.models.conversation import Conversation, ConversationMessage
from medcheck.models.interaction import InteractionCheck
from medcheck.models.medication import Medication, MedicationLog
from medcheck.models.profile import UserProfile

__all__ = [
    "Conversation",
    "ConversationMessage",
    "InteractionCheck",
    "Medication",
    "MedicationLog",
    "UserProfile",
]
