"""CUIT/CUIL normalization, check-digit validation and classification.

A CUIT/CUIL is 11 digits: a two-digit type prefix, an eight-digit document
number and a mod-11 check digit. Masks such as ``20-30405060-9`` are accepted
everywhere and reduced to their digits.
"""

import re
from typing import Final, Literal

type DocType = Literal["CUIT", "CUIL"]
type IvaCondition = Literal["RI", "MONOTRIBUTO", "EXENTO", "CF"]

CUIT_LENGTH: Final[int] = 11
CHECK_WEIGHTS: Final[tuple[int, ...]] = (5, 4, 3, 2, 7, 6, 5, 4, 3, 2)
INDIVIDUAL_PREFIXES: Final[frozenset[str]] = frozenset({"20", "23", "24", "27"})

_NON_DIGITS = re.compile(r"\D+")

# Tried in order; short codes only match as whole words so that
# "MONOTRIBUTO" is never read as "RI".
_IVA_PATTERNS: Final[tuple[tuple[IvaCondition, re.Pattern[str]], ...]] = (
    ("RI", re.compile(r"RESPONSABLE\s*INSCRIPTO|\bRI\b", re.IGNORECASE)),
    ("MONOTRIBUTO", re.compile(r"MONOTRIBUT|\bMT\b", re.IGNORECASE)),
    ("EXENTO", re.compile(r"EXENT[OA]", re.IGNORECASE)),
    ("CF", re.compile(r"CONSUMIDOR\s*FINAL|\bCF\b", re.IGNORECASE)),
)


def _digits(raw: object) -> str:
    return _NON_DIGITS.sub("", "" if raw is None else str(raw))


def normalize(raw: object) -> str:
    """Strip every non-digit character and keep at most 11 digits.

    Args:
        raw: A CUIT/CUIL with or without mask.

    Returns:
        str: The digits, truncated to 11.
    """
    return _digits(raw)[:CUIT_LENGTH]


def compute_check_digit(first_ten: str) -> int:
    """Compute the mod-11 check digit for the first ten digits.

    Args:
        first_ten: Exactly ten digits.

    Returns:
        int: The expected eleventh digit.
    """
    total = sum(w * int(d) for w, d in zip(CHECK_WEIGHTS, first_ten, strict=True))
    expected = 11 - (total % 11)
    if expected == 11:
        return 0
    if expected == 10:
        return 9
    return expected


def is_valid(raw: object) -> bool:
    """Check that the input carries exactly 11 digits with a valid check digit.

    Inputs with more than 11 digits are rejected rather than truncated, and an
    all-zero identifier is never valid.

    Args:
        raw: A CUIT/CUIL with or without mask.

    Returns:
        bool: True if the identifier is well formed.
    """
    digits = _digits(raw)
    if len(digits) != CUIT_LENGTH or set(digits) == {"0"}:
        return False
    return compute_check_digit(digits[:10]) == int(digits[10])


def classify(normalized: str) -> DocType:
    """Classify an identifier by holder type.

    Args:
        normalized: An 11-digit identifier.

    Returns:
        DocType: ``CUIL`` for individual prefixes (20, 23, 24, 27), else ``CUIT``.
    """
    return "CUIL" if normalized[:2] in INDIVIDUAL_PREFIXES else "CUIT"


def normalize_fiscal_status(raw: object) -> IvaCondition | None:
    """Map a provider's IVA condition text to a canonical category.

    Returns None when nothing matches; callers decide the fallback.
    """
    if raw is None:
        return None
    value = str(raw).strip()
    if not value:
        return None
    for condition, pattern in _IVA_PATTERNS:
        if pattern.search(value):
            return condition
    return None


def format_cuit(raw: object) -> str:
    """Render an identifier with the usual ``XX-XXXXXXXX-X`` mask.

    Identifiers that are not 11 digits long are returned as bare digits.
    """
    digits = normalize(raw)
    if len(digits) != CUIT_LENGTH:
        return digits
    return f"{digits[:2]}-{digits[2:10]}-{digits[10]}"
