"""Processing package: text metrics and behavioural fingerprints.

Fingerprints depend on the database package; import them from
src.processing.fingerprint.
"""

from src.processing.text_metrics import TextMetrics, combine_post_text, compute_text_metrics

__all__ = [
    "TextMetrics",
    "combine_post_text",
    "compute_text_metrics",
]
