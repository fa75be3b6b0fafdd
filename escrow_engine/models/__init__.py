"""Domain models for the escrow transaction lifecycle."""

from escrow_engine.models.base import Event

__all__ = ["Event"]
