"""
Known Perplexity model identifiers.

The API offers no listing endpoint, so the catalogue shown by the ``models``
command is static.
"""

from typing import List, Tuple

DEFAULT_MODEL = "sonar"

KNOWN_MODELS: List[Tuple[str, str]] = [
    ("sonar", "Default, balanced speed and capability"),
    ("sonar-small", "Fastest, least capable"),
    ("sonar-medium", "Good balance of speed and capability"),
    ("sonar-large", "Most capable, slower"),
    ("codellama-70b", "Specialized for code generation"),
    ("mistral-7b", "Open-source model"),
    ("mixtral-8x7b", "Mixture of experts model"),
    ("llama-3-70b", "Meta's latest model"),
]


def get_known_model_names() -> List[str]:
    """Get the identifiers of all catalogued models."""
    return [name for name, _ in KNOWN_MODELS]
