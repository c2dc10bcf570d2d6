"""Decorator that marks pawnctl command classes with registry metadata."""

from __future__ import annotations

from typing import Any, Callable, Type

from .abc import PawnAbstractCommand

_CommandCandidate = Type[Any]


def _determine_group(cls: type, override: str | None) -> str:
    if override:
        return override
    module = getattr(cls, "__module__", "")
    return module.split(".")[0] or "pawnctl"


def _attach_feature_metadata(cls: type, kind: str, *, name: str | None, group: str | None) -> type:
    if not isinstance(cls, type):
        raise TypeError("Decorated object must be a class.")

    metadata = {
        "kind": kind,
        "name": name or cls.__name__,
        "group": _determine_group(cls, group),
    }
    metadata["qualified_name"] = f"{metadata['group']}:{metadata['name']}"
    setattr(cls, "__pawn_feature__", metadata)
    return cls


def pawncommand(
    cls: _CommandCandidate | None = None,
    *,
    name: str | None = None,
    group: str | None = None,
) -> Callable[[_CommandCandidate], _CommandCandidate] | _CommandCandidate:
    def wrap(target: _CommandCandidate) -> _CommandCandidate:
        if not issubclass(target, PawnAbstractCommand):
            raise TypeError(
                f"{target.__name__} must subclass {PawnAbstractCommand.__name__} "
                "to be registered as command."
            )
        return _attach_feature_metadata(target, "command", name=name, group=group)

    if cls is None:
        return wrap
    return wrap(cls)
