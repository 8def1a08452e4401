"""NutriBot — privacy-gated, LLM-driven health assessment service."""

__version__ = "0.1.0"
