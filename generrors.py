"""
generrors.py
============
Exceptions raised by the universe generator.

Every generation failure carries enough context to reproduce it from the
same root seed: the hierarchy level being built, the entity and its parent,
the domain tag of the sub-stream that failed, and the seed in use.
"""

from __future__ import annotations

from typing import Optional


class GenerationError(RuntimeError):
    """Base class for failures while building a galaxy."""

    _CONTEXT_FIELDS = ("level", "entity_id", "parent_id", "domain", "seed")

    def __init__(
        self,
        message: str,
        *,
        level: Optional[str] = None,
        entity_id: Optional[str] = None,
        parent_id: Optional[str] = None,
        domain: Optional[object] = None,
        seed: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.level = level
        self.entity_id = entity_id
        self.parent_id = parent_id
        self.domain = domain
        self.seed = seed

    @property
    def context(self) -> dict:
        return {
            name: getattr(self, name)
            for name in self._CONTEXT_FIELDS
            if getattr(self, name) is not None
        }

    def with_context(self, **context) -> "GenerationError":
        """Return a copy of this error with missing context fields filled in.

        Fields already set on the error win over *context*, so the innermost
        (most specific) information survives re-raising through the builder.
        """
        merged = {name: context.get(name) for name in self._CONTEXT_FIELDS}
        merged.update(self.context)
        return type(self)(self.message, **merged)

    def __str__(self) -> str:
        ctx = self.context
        if not ctx:
            return self.message
        detail = ", ".join(f"{key}={_fmt(value)}" for key, value in ctx.items())
        return f"{self.message} ({detail})"


def _fmt(value: object) -> str:
    name = getattr(value, "name", None)
    return name if isinstance(name, str) else str(value)


class InvalidRange(GenerationError, ValueError):
    """A Range with min > max (or no usable values) was handed to the sampler."""


class NoValidCandidate(GenerationError):
    """A taxonomy row produced an empty compatible set for some parent."""


class SeedExhaustion(GenerationError):
    """A child index falls outside the fan-out the seed expander supports."""


class TaxonomyError(ValueError):
    """Taxonomy or configuration data could not be loaded."""
