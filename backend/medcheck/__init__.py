"""
MedCheck Backend - Application Package
======================================

What: Medication tracking API: label scanning, interaction checks, reminders,
      adherence logging and a chat assistant.
Who:  Imported by uvicorn (`medcheck.main:app`), Alembic and pytest.

Layering:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Orchestration, ownership
    ├─────────────────────────────────────┤
    │      Core (pure domain rules)       │  ← Severity, reminders, adherence
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
