import math
import re
from collections import Counter
from typing import Dict

# Runs of non-word characters separate terms
_TERM_SEPARATOR = re.compile(r"\W+")

def term_frequencies(text: str) -> Dict[str, int]:
    """Count lower-cased terms in text, ignoring empty tokens."""
    return Counter(term for term in _TERM_SEPARATOR.split(text.lower()) if term)

def cosine_similarity(text_a: str, text_b: str) -> float:
    """
    Cosine similarity between the term-frequency vectors of two texts.

    No stemming or stop-word removal is applied. A text without any terms
    has a zero vector, in which case the similarity is 0.0.

    Returns:
        Similarity in [0.0, 1.0]
    """
    freq_a = term_frequencies(text_a or "")
    freq_b = term_frequencies(text_b or "")

    if not freq_a or not freq_b:
        return 0.0

    dot = sum(count * freq_b[term] for term, count in freq_a.items() if term in freq_b)
    norm_a = sum(count * count for count in freq_a.values())
    norm_b = sum(count * count for count in freq_b.values())

    # Integer counts keep dot and norms exact, so identical texts score exactly 1.0
    return min(1.0, dot / math.sqrt(norm_a * norm_b))

def lyrics_similarity(lyrics_a: str, lyrics_b: str) -> float:
    """Compare two lyrics texts. Returns similarity in [0.0, 1.0]."""
    return cosine_similarity(lyrics_a, lyrics_b)
