"""Backend orchestration for a conversational ordering assistant."""

__version__ = "0.1.0"
