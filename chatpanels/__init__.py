"""Fan a prompt out to several LLM providers and stream the answers side by side."""

__version__ = "0.1.0"
