"""kulgen package.

Turns a face reference, an outfit and a set of background photos into a batch
of composited character images by chaining calls to a generative service.
"""

from .pipeline import CharacterGenerator  # noqa: F401
from .session import GenerationSession  # noqa: F401

__all__ = ["CharacterGenerator", "GenerationSession"]
