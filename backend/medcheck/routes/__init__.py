"""
MedCheck Backend - API Routes Package
=====================================

Route Inventory:
    - health.py:        GET /health
    - profile.py:       /api/profile
    - medications.py:   /api/medications, /api/reminders/upcoming
    - interactions.py:  /api/interactions
    - tracking.py:      dose logs, calendar, /api/adherence
    - chat.py:          /api/conversations
    - files.py:         /api/files/{path}

Routes are thin: read the request, resolve the caller and time zone, call a
service, return its schema. Errors raised by services are turned into
responses by the handlers registered in main.py.
"""
