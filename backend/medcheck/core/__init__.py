"""
MedCheck Backend - Core Domain Rules
====================================

Pure, synchronous functions over already-fetched data. Nothing in this
package touches the database, the network or the clock implicitly; callers
pass "now" and the time zone in.

    - severity.py:    interaction severity ordering and aggregation
    - reminders.py:   reminder frequency, day selection and trigger expansion
    - adherence.py:   dose-log calendar status and adherence rate
    - formatting.py:  display normalisation, age and BMI
    - assistant.py:   chat reply parsing and AI response decoding
"""
