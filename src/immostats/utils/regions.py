"""
French Administrative Lookups

Static department -> region table and postal code -> department derivation.
"""
import re
from typing import Optional

UNKNOWN_REGION = "unknown"

_REGION_DEPARTMENTS = {
    "Auvergne-Rhône-Alpes": [
        "01", "03", "07", "15", "26", "38", "42", "43", "63", "69", "73", "74",
    ],
    "Bourgogne-Franche-Comté": ["21", "25", "39", "58", "70", "71", "89", "90"],
    "Bretagne": ["22", "29", "35", "56"],
    "Centre-Val de Loire": ["18", "28", "36", "37", "41", "45"],
    "Corse": ["2A", "2B"],
    "Grand Est": ["08", "10", "51", "52", "54", "55", "57", "67", "68", "88"],
    "Hauts-de-France": ["02", "59", "60", "62", "80"],
    "Île-de-France": ["75", "77", "78", "91", "92", "93", "94", "95"],
    "Normandie": ["14", "27", "50", "61", "76"],
    "Nouvelle-Aquitaine": [
        "16", "17", "19", "23", "24", "33", "40", "47", "64", "79", "86", "87",
    ],
    "Occitanie": [
        "09", "11", "12", "30", "31", "32", "34", "46", "48", "65", "66", "81", "82",
    ],
    "Pays de la Loire": ["44", "49", "53", "72", "85"],
    "Provence-Alpes-Côte d'Azur": ["04", "05", "06", "13", "83", "84"],
    "Guadeloupe": ["971"],
    "Martinique": ["972"],
    "Guyane": ["973"],
    "La Réunion": ["974"],
    "Mayotte": ["976"],
}

DEPARTMENT_TO_REGION = {
    department: region
    for region, departments in _REGION_DEPARTMENTS.items()
    for department in departments
}

_POSTAL_CODE_RE = re.compile(r"^[0-9]{5}$")


def normalize_department(code: Optional[str]) -> Optional[str]:
    """
    Normalize a department code to its canonical form.

    Zero-pads single digits ("6" -> "06") and upper-cases Corsica codes.
    """
    if code is None:
        return None
    code = str(code).strip().upper()
    if not code:
        return None
    if code.isdigit() and len(code) == 1:
        return code.zfill(2)
    return code


def region_for_department(department: Optional[str]) -> str:
    """
    Look up the administrative region for a department code.

    Args:
        department: Department code ("75", "2A", "974"...)

    Returns:
        Region name, or "unknown" when the department is absent or unmapped
    """
    department = normalize_department(department)
    if not department:
        return UNKNOWN_REGION
    return DEPARTMENT_TO_REGION.get(department, UNKNOWN_REGION)


def is_valid_postal_code(postal_code: Optional[str]) -> bool:
    """Check for a five-digit French postal code."""
    return bool(postal_code) and bool(_POSTAL_CODE_RE.match(str(postal_code)))


def department_from_postal_code(postal_code: Optional[str]) -> Optional[str]:
    """
    Derive the department code from a French postal code.

    Overseas codes (97x/98x) use three digits; Corsica splits at 20200
    between 2A and 2B.

    Args:
        postal_code: Five-digit postal code

    Returns:
        Department code or None if the postal code is invalid
    """
    if not is_valid_postal_code(postal_code):
        return None

    postal_code = str(postal_code)
    prefix = postal_code[:2]
    if prefix in ("97", "98"):
        return postal_code[:3]
    if prefix == "20":
        return "2A" if int(postal_code) < 20200 else "2B"
    return prefix
