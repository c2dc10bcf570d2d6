"""Convenience imports for pawnctl command API helpers."""

from .abc import PawnAbstractCommand
from .decorators import pawncommand

__all__ = ["PawnAbstractCommand", "pawncommand"]
