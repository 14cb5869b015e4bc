"""OpenAI-compatible chat completions API backed by a Dify chat app."""

__version__ = "0.1.0"
