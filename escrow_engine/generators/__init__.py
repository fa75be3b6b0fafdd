"""Synthetic data generators for marketplace workloads."""

from escrow_engine.generators.base import BaseGenerator
from escrow_engine.generators.escrow import (
    ProfileDraft,
    ProfileGenerator,
    TransactionTerms,
    TransactionTermsGenerator,
)

__all__ = [
    "BaseGenerator",
    "ProfileDraft",
    "ProfileGenerator",
    "TransactionTerms",
    "TransactionTermsGenerator",
]
