def hamming_distance(fingerprint_a: str, fingerprint_b: str) -> int:
    """Number of positions at which two equal-length fingerprints differ."""
    if len(fingerprint_a) != len(fingerprint_b):
        raise ValueError("Fingerprints must have equal length")
    return sum(1 for a, b in zip(fingerprint_a, fingerprint_b) if a != b)

def fingerprint_similarity(fingerprint_a: str, fingerprint_b: str) -> float:
    """
    Normalized Hamming similarity between two fingerprint digests.

    Digests are compared character by character, so this is a coarse proxy
    for audio similarity rather than a perceptual model. Digests of different
    length (or two empty digests) are incomparable and score 0.0.

    Returns:
        Similarity in [0.0, 1.0]
    """
    if not fingerprint_a or len(fingerprint_a) != len(fingerprint_b):
        return 0.0

    return 1.0 - hamming_distance(fingerprint_a, fingerprint_b) / len(fingerprint_a)
