# Services package init
"""
MedCheck Backend - Services Layer
=================================

What:  Business logic between the routes (HTTP) and the database.
How:   Each service is a module-level singleton; routes pass in the request's
       AsyncSession and the caller's user id on every call.

Service Inventory:
    - LLMService (abstract) / GeminiService: label reading, lookup, dosage
      advice, interaction analysis and chat
    - FileService: image validation, per-owner storage, owner-checked reads
    - ProfileService: health profile and the PatientContext for prompts
    - MedicationService: medication list, reminders, label scan, lookup
    - InteractionService: cached interaction checks
    - TrackingService: dose logs, calendars, adherence, missed doses
    - ChatService: conversations with the health assistant

Support modules: prompts (prompt text), ownership (owner-scoped queries),
clock (time zones and "now").
"""
