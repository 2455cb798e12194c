"""Package a source tree into a single token-bounded document for an LLM."""

__version__ = "0.1.0"
