"""Vision, generation, and review capability clients."""

from photo_stylizer.capabilities.base import Analyzer, Generator, Reviewer

__all__ = ["Analyzer", "Generator", "Reviewer"]
