"""
Text normalisation shared by scoring, distractor selection and answer checking.
"""

from __future__ import annotations

import re
import unicodedata

_ANNOTATION_RE = re.compile(r"\s*\(.*?\)\s*")

# Lithuanian letters that NFKD does not always decompose the same way on every
# platform; folded explicitly before the generic combining-mark pass.
_LITHUANIAN_FOLD = str.maketrans(
    {
        "ą": "a", "č": "c", "ę": "e", "ė": "e", "į": "i",
        "š": "s", "ų": "u", "ū": "u", "ž": "z",
        "Ą": "A", "Č": "C", "Ę": "E", "Ė": "E", "Į": "I",
        "Š": "S", "Ų": "U", "Ū": "U", "Ž": "Z",
    }
)

NUMBER_WORDS = (
    "zero|one|two|three|four|five|six|seven|eight|nine|ten|eleven|twelve|"
    "thirteen|fourteen|fifteen|sixteen|seventeen|eighteen|nineteen|twenty|"
    "thirty|forty|fifty|sixty|seventy|eighty|ninety|hundred|thousand|million|billion"
)
_NUMERAL_RE = re.compile(rf"^(?:{NUMBER_WORDS})(?:[-\s]?(?:{NUMBER_WORDS}))*$", re.IGNORECASE)


def strip_annotations(text: str) -> str:
    """Remove parenthetical grammar notes: ``"run (verb)"`` -> ``"run"``."""
    return _ANNOTATION_RE.sub(" ", text).strip()


def comparison_form(text: str) -> str:
    """Annotation-free, case-folded form used for equality and scoring."""
    return strip_annotations(text).casefold()


def fold_diacritics(text: str) -> str:
    folded = text.translate(_LITHUANIAN_FOLD)
    decomposed = unicodedata.normalize("NFKD", folded)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_answer(text: str) -> str:
    """Form used to check a submitted answer against the expected one."""
    collapsed = " ".join(text.split())
    return fold_diacritics(collapsed).casefold()


def answers_match(submitted: str, expected: str) -> bool:
    return normalize_answer(submitted) == normalize_answer(expected)


def is_numeral_word(text: str) -> bool:
    """True for spelled-out numbers such as ``"seven"`` or ``"twenty-one"``."""
    return bool(_NUMERAL_RE.match(text.strip()))