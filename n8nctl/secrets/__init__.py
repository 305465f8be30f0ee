"""Secret generation for n8nctl."""

from .generator import SecretGenerator

__all__ = ["SecretGenerator"]
