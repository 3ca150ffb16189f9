"""Deterministic name collision resolution."""

from __future__ import annotations

import os
from itertools import count
from typing import Callable


def split_name(name: str) -> tuple[str, str]:
    """Split ``name`` into stem and extension (``"a.tar.gz"`` -> ``("a.tar", ".gz")``)."""
    return os.path.splitext(name)


def first_free_name(desired_name: str, is_taken: Callable[[str], bool]) -> str:
    """Return ``desired_name``, or the first ``"stem (n).ext"`` that is not taken."""
    if not is_taken(desired_name):
        return desired_name

    stem, ext = split_name(desired_name)
    for counter in count(1):
        candidate = f"{stem} ({counter}){ext}"
        if not is_taken(candidate):
            return candidate


def resolve_unique_name(target_dir: str, desired_name: str) -> str:
    """Return a name that does not exist in ``target_dir``.

    ``desired_name`` is returned unchanged when free; otherwise the first free
    of ``"stem (1).ext"``, ``"stem (2).ext"``, ... wins.
    """
    return first_free_name(
        desired_name, lambda candidate: os.path.lexists(os.path.join(target_dir, candidate))
    )
