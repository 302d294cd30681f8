"""nginx virtual-host discovery and editing."""
from __future__ import annotations

from .locator import VhostCandidate, VhostLocator
from .mutator import InsertOutcome, InsertResult, VhostMutator, managed_include_pattern
from .snippet import generate_snippet, managed_directive, snippet_path

__all__ = [
    "InsertOutcome",
    "InsertResult",
    "VhostCandidate",
    "VhostLocator",
    "VhostMutator",
    "generate_snippet",
    "managed_directive",
    "managed_include_pattern",
    "snippet_path",
]
