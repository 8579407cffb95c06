#!/usr/bin/env python3
"""
Demo script showing how to use the FERS retirement engine programmatically.
Runs a deterministic projection and a Monte Carlo simulation on the default scenario.
"""
import argparse
import logging

from config_utils import get_default_scenario_params, load_engine_config
from coordinator import SimulationCoordinator, SimulationProgress
from deterministic import project_deterministic
from formulas import adjusted_social_security, pension_annual
from io_utils import format_currency, scenario_from_dict
from scenario import validate_scenario


def main():
    parser = argparse.ArgumentParser(description="FERS retirement engine demo")
    parser.add_argument("--config", help="Engine config JSON (default: engine_config.json)")
    parser.add_argument("--iterations", type=int, help="Monte Carlo trials")
    parser.add_argument("--seed", type=int, help="Random seed")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_engine_config(args.config)
    iterations = args.iterations or config['iterations']
    seed = args.seed if args.seed is not None else config['random_seed']

    print("FERS Retirement Engine Demo")
    print("=" * 50)

    # 1. Build the scenario
    scenario = scenario_from_dict(get_default_scenario_params())
    for warning in validate_scenario(scenario):
        print(f"   Warning: {warning}")

    service = scenario.federal_service
    print(f"\nRetirement at age {scenario.retirement_age} in {scenario.retirement_year}")
    print(f"   High-3: {format_currency(service.high_three_salary)}, "
          f"service: {service.total_creditable_years} years")
    pension = pension_annual(service.total_creditable_years, service.high_three_salary, scenario.retirement_age)
    print(f"   Basic annuity: {format_currency(pension, 1)} / year")
    ss = scenario.social_security
    ss_monthly = adjusted_social_security(ss.estimated_benefit, ss.claiming_age, ss.full_retirement_age)
    print(f"   Social Security at {ss.claiming_age}: ${ss_monthly:,.0f} / month")

    # 2. Deterministic projection
    print("\nDeterministic Projection (first 5 years):")
    results = project_deterministic(scenario)
    print(f"   {'Year':<6} {'Age':<5} {'Gross':>10} {'Taxes':>9} {'Net':>10} {'Expenses':>10} {'TSP':>12}")
    for p in results.projections[:5]:
        print(f"   {p.year:<6} {p.age:<5} {p.income.total:>10,.0f} {p.taxes.total:>9,.0f} "
              f"{p.net_income:>10,.0f} {p.expenses:>10,.0f} {p.tsp_balance:>12,.0f}")

    summary = results.summary
    print(f"   Average net income: {format_currency(summary.average_annual_net_income, 1)}")
    print(f"   Lifetime net income: {format_currency(summary.total_lifetime_income, 2)}")
    depletion = summary.tsp_depletion_age if summary.tsp_depletion_age is not None else "never"
    print(f"   TSP depletion age: {depletion}")

    # 3. Monte Carlo simulation
    print(f"\nRunning Monte Carlo simulation ({iterations:,} trials, {config['worker_mode']} worker)...")
    with SimulationCoordinator(config['worker_mode'], config['progress_interval']) as coordinator:
        handle = coordinator.start(scenario, iterations, seed)
        handle.subscribe(
            lambda event: print(f"   {event.progress:5.1f}%")
            if isinstance(event, SimulationProgress) else None
        )
        mc = handle.result()

    print(f"\nSuccess rate: {mc.success_rate:.1%}")
    shortfall = mc.shortfall_analysis
    print(f"Probability of shortfall: {shortfall.probability_of_shortfall:.1%}")
    if shortfall.average_shortfall_age is not None:
        print(f"Average shortfall age: {shortfall.average_shortfall_age:.1f}")
    final_age = int(mc.ages[-1])
    print(f"TSP at age {final_age} (P10/P50/P90): "
          f"{format_currency(mc.band(10)[-1])} / {format_currency(mc.band(50)[-1])} / "
          f"{format_currency(mc.band(90)[-1])}")


if __name__ == "__main__":
    main()
