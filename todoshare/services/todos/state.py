"""Observable application state for the ToDos service."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Union

from .models import ToDo


@dataclass(frozen=True)
class Loading:
    pass


@dataclass(frozen=True)
class Loaded:
    private: List[ToDo] = field(default_factory=list)
    shared: List[ToDo] = field(default_factory=list)


@dataclass(frozen=True)
class Error:
    cause: BaseException


ApplicationState = Union[Loading, Loaded, Error]


def describe_state(state: ApplicationState) -> str:
    """One-line, human readable rendering of a state value."""
    if isinstance(state, Loading):
        return "loading"
    if isinstance(state, Loaded):
        return f"loaded: {len(state.private)} private, {len(state.shared)} shared"
    if isinstance(state, Error):
        return f"error: {state.cause}"
    raise TypeError(f"Unknown application state: {state!r}")


__all__ = ["ApplicationState", "Error", "Loaded", "Loading", "describe_state"]
