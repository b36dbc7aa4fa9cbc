# cinelog/textmatch.py
import re
import unicodedata
from typing import List, Optional

# separators for multi-valued country / genre text
TAG_SEPARATORS = re.compile(r"[,，/、\s]+")
# separators used to cut a title into words for fuzzy matching
WORD_SEPARATORS = re.compile(r"[\s\-_：:，,。]+")


def levenshtein(a: str, b: str) -> int:
    """Edit distance between a and b (insertions, deletions, substitutions)."""
    matrix = [[0] * (len(a) + 1) for _ in range(len(b) + 1)]
    for i in range(len(a) + 1):
        matrix[0][i] = i
    for j in range(len(b) + 1):
        matrix[j][0] = j

    for j in range(1, len(b) + 1):
        for i in range(1, len(a) + 1):
            indicator = 0 if a[i - 1] == b[j - 1] else 1
            matrix[j][i] = min(
                matrix[j][i - 1] + 1,
                matrix[j - 1][i] + 1,
                matrix[j - 1][i - 1] + indicator,
            )
    return matrix[len(b)][len(a)]


def fuzzy_match(text: Optional[str], term: str) -> bool:
    """
    True when term is a substring of text or within a small edit distance of
    the whole text or of one of its words. Case-insensitive.
    """
    if not term:
        return True
    if not text:
        return False

    clean_text = text.lower()
    clean_term = term.lower()

    if clean_term in clean_text:
        return True

    # single characters would match almost anything
    if len(clean_term) < 2:
        return False

    max_errors = 2 if len(clean_term) > 4 else 1

    # whole-string comparison, useful for CJK titles without spaces
    if abs(len(clean_text) - len(clean_term)) <= max_errors + 1:
        if levenshtein(clean_text, clean_term) <= max_errors:
            return True

    for word in WORD_SEPARATORS.split(clean_text):
        if abs(len(word) - len(clean_term)) > max_errors:
            continue
        if levenshtein(clean_term, word) <= max_errors:
            return True
    return False


def split_tags(value: Optional[str]) -> List[str]:
    """Split a delimited tag field ("科幻,剧情", "美国 / 英国") into its tags."""
    if not value:
        return []
    return [t.strip() for t in TAG_SEPARATORS.split(value) if t.strip()]


def collation_key(text: Optional[str]) -> str:
    """Sort key for titles: width/compatibility folded and case-folded."""
    return unicodedata.normalize("NFKC", text or "").casefold()
