"""Command line interface for pawnctl."""
