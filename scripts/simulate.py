#!/usr/bin/env python3
"""Drive a synthetic escrow marketplace through the lifecycle engine.

Buyers, sellers and an admin are generated with Faker; transactions run
concurrently through release, dispute, cancellation and abandonment paths.
Committed events and notifications can be published to:
- Console (default when no other sink is chosen)
- JSON Lines files
- Kafka topics ``<prefix>.transaction-events`` and ``<prefix>.notifications``
- PostgreSQL archive tables
"""

import argparse
import logging
import sys
import time
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from escrow_engine.config import EscrowConfig, SimulatedPaymentConfig
from escrow_engine.exceptions import EscrowError
from escrow_engine.logging import setup_logging
from escrow_engine.scenarios import MarketplaceScenario, ScenarioResult
from escrow_engine.sinks import ConsoleSink, JsonFileSink, KafkaSink, PostgresSink
from escrow_engine.sinks.kafka import ProducerConfig

logger = logging.getLogger(__name__)


def build_sinks(args: argparse.Namespace, config: EscrowConfig) -> list:
    """Create the sinks selected on the command line."""
    sinks: list = []
    if args.json:
        sinks.append(JsonFileSink(args.output_dir or config.output.json_output_dir))
    if args.kafka:
        producer_config = ProducerConfig.from_kafka_config(config.kafka)
        if args.kafka_bootstrap:
            producer_config.bootstrap_servers = args.kafka_bootstrap
        sinks.append(KafkaSink(producer_config))
    if args.postgres:
        sinks.append(PostgresSink(args.postgres_url or config.postgres.connection_string))
    if args.console or not sinks:
        sinks.append(ConsoleSink(pretty=False, max_records=args.console_max))
    return sinks


def print_summary(result: ScenarioResult, elapsed: float) -> None:
    """Print scenario summary."""
    summary = result.summary
    print("\n" + "=" * 60)
    print("SIMULATION SUMMARY")
    print("=" * 60)
    print(f"  Transactions:      {summary['total']:>8,}")
    print(f"  Funded (open):     {summary['funded']:>8,}")
    print(f"  Disputed (open):   {summary['disputed']:>8,}")
    print(f"  Released:          {summary['released']:>8,}")
    print(f"  Payment attempts:  {result.payment_attempts:>8,}")
    print(f"  Errors:            {len(result.errors):>8,}")
    print(f"  Elapsed:           {elapsed:>8.2f}s")
    print("-" * 60)
    for status, count in sorted(summary["by_status"].items()):
        if count:
            print(f"  {status:<28} {count:>6,}")
    print("=" * 60)


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Simulate escrow marketplace activity"
    )
    parser.add_argument(
        "--transactions",
        type=int,
        default=50,
        help="Number of transactions to simulate (default: 50)",
    )
    parser.add_argument(
        "--buyers",
        type=int,
        default=10,
        help="Number of buyers (default: 10)",
    )
    parser.add_argument(
        "--sellers",
        type=int,
        default=10,
        help="Number of sellers (default: 10)",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=8,
        help="Concurrent actor threads (default: 8)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed for reproducibility (default: SEED env var)",
    )
    parser.add_argument(
        "--latency",
        type=float,
        default=None,
        help="Simulated payment latency in seconds (default: PAYMENT_LATENCY or 2.5)",
    )
    parser.add_argument(
        "--success-rate",
        type=float,
        default=None,
        help="Simulated payment success rate (default: PAYMENT_SUCCESS_RATE or 0.7)",
    )
    parser.add_argument(
        "--force-success",
        action="store_true",
        help="Every payment attempt succeeds",
    )

    sink_group = parser.add_argument_group("sinks")
    sink_group.add_argument("--console", action="store_true", help="Print records to stdout")
    sink_group.add_argument(
        "--console-max",
        type=int,
        default=20,
        help="Maximum records printed per topic (default: 20)",
    )
    sink_group.add_argument("--json", action="store_true", help="Write JSON Lines files")
    sink_group.add_argument("--output-dir", type=Path, default=None, help="JSON Lines output directory")
    sink_group.add_argument("--kafka", action="store_true", help="Publish to Kafka")
    sink_group.add_argument("--kafka-bootstrap", type=str, default=None, help="Kafka bootstrap servers")
    sink_group.add_argument("--postgres", action="store_true", help="Archive to PostgreSQL")
    sink_group.add_argument("--postgres-url", type=str, default=None, help="PostgreSQL connection string")
    parser.add_argument(
        "--log-format",
        choices=["standard", "json"],
        default="standard",
        help="Log output format (default: standard)",
    )

    args = parser.parse_args()

    try:
        config = EscrowConfig.from_env()
        if args.seed is not None:
            config.seed = args.seed
        config.payments = SimulatedPaymentConfig(
            latency_seconds=args.latency if args.latency is not None else config.payments.latency_seconds,
            success_rate=args.success_rate if args.success_rate is not None else config.payments.success_rate,
            force_success=args.force_success or config.payments.force_success,
        )
    except EscrowError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(2)

    setup_logging(config.log_level, args.log_format)

    logger.info("=" * 60)
    logger.info("Escrow marketplace simulation")
    logger.info("=" * 60)
    logger.info("Transactions: %d, workers: %d, seed: %s", args.transactions, args.workers, config.seed)
    logger.info(
        "Payments: latency=%.2fs, success_rate=%.2f, force_success=%s",
        config.payments.latency_seconds,
        config.payments.success_rate,
        config.payments.force_success,
    )

    sinks = build_sinks(args, config)
    scenario = MarketplaceScenario(
        num_transactions=args.transactions,
        num_buyers=args.buyers,
        num_sellers=args.sellers,
        workers=args.workers,
        config=config,
        sinks=sinks,
        seed=config.seed,
    )

    start = time.perf_counter()
    try:
        result = scenario.generate()
    finally:
        scenario.close()
    elapsed = time.perf_counter() - start

    print_summary(result, elapsed)
    for error in result.errors:
        logger.error("Scenario error: %s", error)
    if result.errors:
        sys.exit(1)


if __name__ == "__main__":
    main()
