"""
Run the day-settlement simulation from the command line.

Creates a population, advances it a number of days with the chosen
decision provider and prints one line per day.
"""

import argparse
import asyncio
import logging
import time

from config import CONFIG
from population import build_provider, create_engine


async def main(num_days: int = 30, num_bots: int = 10, seed=None, provider_name: str = "heuristic"):
    """Run the simulation and print a per-day table."""
    print("=" * 96)
    print(f"MEMEECON SETTLEMENT ({num_bots} bots, {num_days} days, {provider_name} decisions)")
    print("=" * 96)
    print()

    engine = create_engine(build_provider(provider_name, CONFIG, seed), CONFIG, seed=seed, num_bots=num_bots)
    start_time = time.time()

    print("Day |      Price |    Treasury |  Buyback | Rate  |  New Wealth | APY     | Pool medals | Status")
    print("-" * 96)
    for _ in range(num_days):
        result = await engine.advance_day()
        log = result.log
        print(f"{log.day:3d} | {log.price:10.6f} | {log.treasury:11,.0f} | {log.buyback_spend:8,.0f} | "
              f"{log.buyback_rate:5.2%} | {log.new_wealth:11,.0f} | {log.staking_apy:7.1%} | "
              f"{log.next_medals_in_pool:11,.0f} | {log.provider_status}")

    total_time = time.time() - start_time
    human = engine.ledger.human
    print()
    print(f"✓ Simulation complete in {total_time:.2f} seconds")
    print(f"  Final price:        {engine.amm.price:.6f}")
    print(f"  Treasury:           {engine.ledger.state.treasury:,.2f}")
    print(f"  Total wealth:       {engine.ledger.state.total_wealth:,.2f}")
    print(f"  Total staked:       {engine.ledger.state.total_staked:,.2f}")
    if human is not None:
        print(f"  Player unclaimed:   {human.total_unclaimed:,.2f} token")
    print()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the day-settlement simulation.")
    parser.add_argument("--days", type=int, default=30, help="Number of days to run")
    parser.add_argument("--bots", type=int, default=CONFIG.population.num_bots, help="Number of autonomous agents")
    parser.add_argument("--seed", type=int, default=None, help="Seed for population and execution order")
    parser.add_argument("--provider", choices=["none", "heuristic", "llm"], default="heuristic",
                        help="Decision provider for the bots")
    parser.add_argument("--verbose", action="store_true", help="Log every day-step")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    if args.seed is not None:
        CONFIG.settlement.seed = args.seed

    asyncio.run(main(num_days=args.days, num_bots=args.bots, seed=args.seed, provider_name=args.provider))
