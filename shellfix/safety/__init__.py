"""Safety checks for suggested commands."""

from .classifier import CommandRisk, classify, is_dangerous, is_non_actionable

__all__ = ["CommandRisk", "classify", "is_dangerous", "is_non_actionable"]
