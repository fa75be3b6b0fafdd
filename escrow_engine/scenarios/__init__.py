"""Scenarios driving the engine with synthetic marketplace activity."""

from escrow_engine.scenarios.marketplace import MarketplaceScenario, ScenarioResult, TransactionPlan

__all__ = ["MarketplaceScenario", "ScenarioResult", "TransactionPlan"]
