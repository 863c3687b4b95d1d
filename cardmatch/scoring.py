"""Name normalization, similarity scoring and the match threshold policy."""

import re
import unicodedata
from dataclasses import dataclass

from rapidfuzz.distance import Levenshtein

# Matches any sequence of whitespace (including Unicode whitespace like U+2006)
_WHITESPACE_RE = re.compile(r'\s+')
_TEAM_STRIP_RE = re.compile(r'[\s\-]+')


@dataclass(frozen=True)
class MatchPolicy:
    """Acceptance thresholds for fuzzy matching.

    The defaults are empirically tuned values carried over from production
    imports and have no documented derivation. They are meant to be
    calibrated against a labeled sample, so every one of them can be
    overridden (see ``matcher.py``).
    """

    # Player acceptance: distance OR similarity OR (surname AND similarity)
    max_edit_distance: int = 2
    fuzzy_similarity: float = 0.85
    surname_similarity: float = 0.70

    set_similarity: float = 0.7
    series_similarity: float = 0.7
    color_similarity: float = 0.5

    # Team names are short, so fuzzy candidates use a looser bar
    team_fuzzy_similarity: float = 0.5
    team_similarity: float = 0.6
    team_context_similarity: float = 0.7

    single_name_confidence: float = 0.95
    team_mismatch_confidence: float = 0.8
    resolved_confidence: float = 0.95

    max_fuzzy_candidates: int = 5
    max_trailing_candidates: int = 2

    def accepts_player(self, distance: int, similarity: float, surname_match: bool) -> bool:
        """Decide whether a fuzzy player candidate is close enough.

        Args:
            distance: Levenshtein distance between the normalized names.
            similarity: Similarity of the normalized names (0.0–1.0).
            surname_match: True if the last name token matches exactly.

        Returns:
            True if the candidate should be kept.
        """
        return (
            distance <= self.max_edit_distance
            or similarity > self.fuzzy_similarity
            or (surname_match and similarity > self.surname_similarity)
        )


DEFAULT_POLICY = MatchPolicy()


def normalize(text: str) -> str:
    """Normalize a name for comparison.

    Case-folds, removes accents/diacritics via NFD decomposition, removes
    periods (so 'J.T.' becomes 'jt'), collapses whitespace and trims.
    Applying it twice gives the same result as applying it once.

    Args:
        text: Raw name string.

    Returns:
        Normalized string for comparison.
    """
    if not text:
        return ''
    # Case-fold first: lowering can itself produce combining marks ('İ')
    decomposed = unicodedata.normalize('NFD', text.casefold())
    # Remove combining marks (category 'Mn')
    stripped = ''.join(ch for ch in decomposed if unicodedata.category(ch) != 'Mn')
    stripped = stripped.replace('.', '')
    return _WHITESPACE_RE.sub(' ', stripped).strip()


def normalize_team(text: str) -> str:
    """Stricter normalization for team names.

    Like :func:`normalize`, but additionally removes all whitespace and
    hyphens so that 'Wolf Pack' and 'Wolfpack' compare equal.
    """
    return _TEAM_STRIP_RE.sub('', normalize(text))


def edit_distance(a: str, b: str) -> int:
    """Levenshtein distance between two normalized strings."""
    return Levenshtein.distance(normalize(a), normalize(b))


def similarity(a: str, b: str) -> float:
    """Calculate the similarity of two names (0.0–1.0).

    - Equal normalized strings score 1.0.
    - If exactly one of them is empty the result is 0.0.
    - If one contains the other, the score is len(shorter) / len(longer),
      so 'Angels' inside 'Los Angeles Angels' scores without a full
      edit-distance computation.
    - Otherwise the normalized Levenshtein similarity
      1 - distance / max(len(a), len(b)) is returned.

    The function is symmetric.
    """
    a = normalize(a)
    b = normalize(b)
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    shorter, longer = (a, b) if len(a) <= len(b) else (b, a)
    if shorter in longer:
        return len(shorter) / len(longer)

    distance = Levenshtein.distance(a, b)
    return 1.0 - distance / max(len(a), len(b))


def last_token(name: str) -> str:
    """Return the last whitespace-separated token of a normalized name."""
    tokens = normalize(name).split(' ')
    return tokens[-1] if tokens else ''
