"""
MedCheck Backend - Display Normalisation
========================================

Medication names, dosages and frequencies arrive from hand entry or from the
label scanner in every possible casing; they are stored in one consistent
form. Also holds the two numbers derived from a profile: age and BMI.
"""

import re
from datetime import date
from typing import Optional

# Dosage units stay lower-case inside a title-cased name ("Ibuprofen 200 mg")
UNITS = {"mg", "ml", "g", "kg", "mcg", "iu", "unit", "units"}

_WHITESPACE = re.compile(r"\s+")


def format_medication_name(name: str) -> str:
    words = _WHITESPACE.split(name.strip())
    formatted = []
    for word in words:
        if not word:
            continue
        lower = word.lower()
        if lower in UNITS:
            formatted.append(lower)
        else:
            formatted.append(lower[0].upper() + lower[1:])
    return " ".join(formatted)


def format_dosage(dosage: str) -> str:
    return dosage.strip()


def format_frequency(frequency: str) -> str:
    """ "TWICE DAILY" → "Twice daily" """
    value = frequency.strip()
    if not value:
        return value
    return value[0].upper() + value[1:].lower()


def calculate_age(date_of_birth: Optional[date], today: date) -> Optional[int]:
    """Completed years on `today`."""
    if date_of_birth is None:
        return None
    before_birthday = (today.month, today.day) < (date_of_birth.month, date_of_birth.day)
    return today.year - date_of_birth.year - int(before_birthday)


def calculate_bmi(weight_kg: Optional[float], height_cm: Optional[float]) -> Optional[float]:
    """weight / (height in metres)^2, one decimal."""
    if not weight_kg or not height_cm or weight_kg <= 0 or height_cm <= 0:
        return None
    height_m = height_cm / 100
    return round(weight_kg / (height_m * height_m), 1)
