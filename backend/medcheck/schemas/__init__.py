"""
MedCheck Backend - Pydantic Schemas
===================================

API contracts, kept separate from the ORM models so the wire format can
change independently of the tables:

    - common.py:       error and health responses
    - profile.py:      profile read/update and the PatientContext used in prompts
    - medication.py:   medication CRUD, label scan, dosage advice, reminders
    - interaction.py:  AI interaction analysis and cached check responses
    - tracking.py:     dose logs, calendar and adherence summaries
    - chat.py:         conversations, messages and assistant replies
"""
