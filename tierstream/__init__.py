"""tierstream - authenticated streaming relay for language-model output."""

__version__ = "0.1.0"
