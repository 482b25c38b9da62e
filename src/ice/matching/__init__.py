from ice.matching.normalize import normalize_name, normalize_for_display, first_token, split_name
from ice.matching.similarity import levenshtein_distance, similarity
from ice.matching.thresholds import MatchingThresholds, DEFAULT_THRESHOLDS, ConfidenceLevel

__all__ = [
    "normalize_name",
    "normalize_for_display",
    "first_token",
    "split_name",
    "levenshtein_distance",
    "similarity",
    "MatchingThresholds",
    "DEFAULT_THRESHOLDS",
    "ConfidenceLevel",
]
