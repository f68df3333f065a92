"""French postal code to department and region helpers for geo leaderboards."""

from typing import Optional

# Department code -> region code
DEPARTMENT_TO_REGION = {
    # Ile-de-France
    "75": "IDF", "77": "IDF", "78": "IDF", "91": "IDF", "92": "IDF", "93": "IDF", "94": "IDF", "95": "IDF",
    # Auvergne-Rhone-Alpes
    "01": "ARA", "03": "ARA", "07": "ARA", "15": "ARA", "26": "ARA", "38": "ARA",
    "42": "ARA", "43": "ARA", "63": "ARA", "69": "ARA", "73": "ARA", "74": "ARA",
    # Bourgogne-Franche-Comte
    "21": "BFC", "25": "BFC", "39": "BFC", "58": "BFC", "70": "BFC", "71": "BFC", "89": "BFC", "90": "BFC",
    # Bretagne
    "22": "BRE", "29": "BRE", "35": "BRE", "56": "BRE",
    # Centre-Val de Loire
    "18": "CVL", "28": "CVL", "36": "CVL", "37": "CVL", "41": "CVL", "45": "CVL",
    # Corse
    "2A": "COR", "2B": "COR", "20": "COR",
    # Grand Est
    "08": "GES", "10": "GES", "51": "GES", "52": "GES", "54": "GES",
    "55": "GES", "57": "GES", "67": "GES", "68": "GES", "88": "GES",
    # Hauts-de-France
    "02": "HDF", "59": "HDF", "60": "HDF", "62": "HDF", "80": "HDF",
    # Normandie
    "14": "NOR", "27": "NOR", "50": "NOR", "61": "NOR", "76": "NOR",
    # Nouvelle-Aquitaine
    "16": "NAQ", "17": "NAQ", "19": "NAQ", "23": "NAQ", "24": "NAQ", "33": "NAQ",
    "40": "NAQ", "47": "NAQ", "64": "NAQ", "79": "NAQ", "86": "NAQ", "87": "NAQ",
    # Occitanie
    "09": "OCC", "11": "OCC", "12": "OCC", "30": "OCC", "31": "OCC", "32": "OCC", "34": "OCC",
    "46": "OCC", "48": "OCC", "65": "OCC", "66": "OCC", "81": "OCC", "82": "OCC",
    # Pays de la Loire
    "44": "PDL", "49": "PDL", "53": "PDL", "72": "PDL", "85": "PDL",
    # Provence-Alpes-Cote d'Azur
    "04": "PAC", "05": "PAC", "06": "PAC", "13": "PAC", "83": "PAC", "84": "PAC",
    # Overseas
    "971": "DOM", "972": "DOM", "973": "DOM", "974": "DOM", "976": "DOM",
}

REGION_LABELS = {
    "IDF": "Île-de-France",
    "ARA": "Auvergne-Rhône-Alpes",
    "BFC": "Bourgogne-Franche-Comté",
    "BRE": "Bretagne",
    "CVL": "Centre-Val de Loire",
    "COR": "Corse",
    "GES": "Grand Est",
    "HDF": "Hauts-de-France",
    "NOR": "Normandie",
    "NAQ": "Nouvelle-Aquitaine",
    "OCC": "Occitanie",
    "PDL": "Pays de la Loire",
    "PAC": "Provence-Alpes-Côte d'Azur",
    "DOM": "Outre-Mer",
}


def get_department_from_postal_code(postal_code: Optional[str]) -> Optional[str]:
    """
    Derive the department code from a French postal code.

    Corsica (20xxx) splits into 2A (20000-20190) and 2B (20200-20999);
    overseas departments (97x) use three digits.
    """
    if not postal_code:
        return None
    trimmed = postal_code.strip()
    if len(trimmed) < 2:
        return None
    if trimmed.startswith("20"):
        try:
            number = int(trimmed)
        except ValueError:
            return "20"
        if 20000 <= number <= 20190:
            return "2A"
        if 20200 <= number <= 20999:
            return "2B"
        return "20"
    if trimmed.startswith("97"):
        return trimmed[:3]
    return trimmed[:2]


def get_region_from_department(department_code: Optional[str]) -> Optional[str]:
    if not department_code:
        return None
    return DEPARTMENT_TO_REGION.get(department_code)
