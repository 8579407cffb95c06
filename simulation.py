"""
Monte Carlo retirement simulation engine.
Runs the deterministic year loop under randomized market returns and inflation,
then aggregates the trajectories into percentile bands and shortfall statistics.
"""
import logging
import math
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from config_utils import (
    DEFAULT_ITERATIONS, HORIZON_YEARS, INFLATION_MEAN, INFLATION_VOLATILITY,
    PERCENTILES, PROGRESS_INTERVAL, RETURN_VOLATILITY
)
from deterministic import (
    SUPPLEMENT_END_AGE, IncomeBreakdown, calculate_year_taxes, other_income_for_age,
    prepare_benefits, withdraw_from_tsp
)
from formulas import cola_adjusted_increment
from scenario import ScenarioInput

logger = logging.getLogger(__name__)


class SimulationCancelledError(Exception):
    """Raised when a simulation run is cancelled before it completes"""


@dataclass
class SimulationTrial:
    """One 30-year trajectory under one random draw path"""
    portfolio_values: np.ndarray
    success: bool
    depletion_age: Optional[int]
    shortfall_amount: float = 0.0
    shortfall_years: int = 0


@dataclass
class PercentileBand:
    percentile: int
    values: np.ndarray


@dataclass
class ShortfallAnalysis:
    probability_of_shortfall: float
    average_shortfall_age: Optional[float]
    average_shortfall_magnitude: float
    average_shortfall_duration: float


@dataclass
class AggregateResult:
    """Aggregate of all Monte Carlo trials"""
    success_rate: float
    total_iterations: int
    ages: np.ndarray
    percentile_bands: List[PercentileBand]
    median_portfolio_values: np.ndarray
    shortfall_analysis: ShortfallAnalysis
    final_balance_stats: Dict[str, float]

    def band(self, percentile: int) -> np.ndarray:
        """Values of the band for a percentile"""
        for band in self.percentile_bands:
            if band.percentile == percentile:
                return band.values
        raise KeyError(f"No band for percentile {percentile}")


def standard_normal_draws(rng: np.random.Generator, size: int) -> np.ndarray:
    """Standard normal variates via the Box-Muller transform"""
    u1 = 1.0 - rng.random(size)  # (0, 1], keeps log finite
    u2 = rng.random(size)
    return np.sqrt(-2.0 * np.log(u1)) * np.cos(2.0 * np.pi * u2)


def draw_market_returns(rng: np.random.Generator,
                        mean_return: float,
                        size: int,
                        volatility: float = RETURN_VOLATILITY) -> np.ndarray:
    """
    Log-normal annual returns whose expected gross return is 1 + mean_return.

    Returns:
        Array of simple returns, each > -1
    """
    z = standard_normal_draws(rng, size)
    log_return = math.log(1 + mean_return) - 0.5 * volatility ** 2 + volatility * z
    return np.exp(log_return) - 1


def draw_inflation(rng: np.random.Generator,
                   size: int,
                   mean: float = INFLATION_MEAN,
                   volatility: float = INFLATION_VOLATILITY) -> np.ndarray:
    """Normal annual inflation floored at zero"""
    return np.maximum(0.0, mean + volatility * standard_normal_draws(rng, size))


class MonteCarloSimulator:
    """Monte Carlo retirement simulation over the fixed horizon"""

    def __init__(self,
                 scenario: ScenarioInput,
                 iterations: int = DEFAULT_ITERATIONS,
                 random_seed: Optional[int] = None,
                 horizon_years: int = HORIZON_YEARS):
        self.scenario = scenario
        self.iterations = iterations
        self.random_seed = random_seed
        self.horizon_years = horizon_years
        self._validate_params()
        self.benefits = prepare_benefits(scenario)
        self.ages = self.benefits.retirement_age + np.arange(horizon_years)

    def _validate_params(self):
        """Validate simulation parameters"""
        if self.iterations <= 0:
            raise ValueError(f"Iterations must be positive, got {self.iterations}")
        if self.horizon_years <= 0:
            raise ValueError(f"Horizon must be positive, got {self.horizon_years}")

    def run_trial(self, rng: np.random.Generator) -> SimulationTrial:
        """Run a single trajectory with fresh return and inflation draws"""
        scenario = self.scenario
        benefits = self.benefits
        expense_rate = scenario.expenses.inflation_rate
        base_expenses = scenario.expenses.monthly_amount * 12
        claiming_age = scenario.social_security.claiming_age

        market_returns = draw_market_returns(rng, scenario.tsp.growth_rate, self.horizon_years)
        inflation_path = draw_inflation(rng, self.horizon_years)

        portfolio_values = np.zeros(self.horizon_years)
        balance = benefits.starting_tsp_balance
        pension = benefits.pension_annual
        cpi_factor = 1.0
        expense_factor = 1.0

        success = True
        depletion_age = None
        shortfall_amount = 0.0
        shortfall_years = 0

        for year_idx in range(self.horizon_years):
            age = int(self.ages[year_idx])
            inflation = float(inflation_path[year_idx])

            if year_idx > 0:
                pension += cola_adjusted_increment(pension, inflation, age)
                cpi_factor *= 1 + inflation
                expense_factor *= 1 + max(inflation, expense_rate)

            social_security = benefits.social_security_annual * cpi_factor if age >= claiming_age else 0.0

            # Withdraw, then apply the year's market return
            draw = withdraw_from_tsp(balance, scenario.tsp, age, benefits.traditional_fraction)
            balance = draw.new_balance * (1 + float(market_returns[year_idx]))

            supplement = benefits.supplement_annual if age < SUPPLEMENT_END_AGE else 0.0
            other_total, other_taxable = other_income_for_age(scenario.other_income, age, cpi_factor)

            income = IncomeBreakdown(
                pension=pension,
                social_security=social_security,
                tsp_withdrawal=draw.withdrawal,
                annuity_supplement=supplement,
                other_income=other_total,
                total=pension + social_security + draw.withdrawal + supplement + other_total,
            )
            taxes = calculate_year_taxes(scenario, benefits, income, other_taxable, age)
            net_income = income.total - taxes.total
            expenses = base_expenses * expense_factor

            portfolio_values[year_idx] = max(0.0, balance)

            # Fund exhausted and income other than the TSP draw does not cover the year
            other_net_income = net_income - draw.withdrawal
            if balance <= 0 and other_net_income < expenses:
                if success:
                    success = False
                    depletion_age = age
                shortfall_amount += expenses - other_net_income
                shortfall_years += 1

        return SimulationTrial(
            portfolio_values=portfolio_values,
            success=success,
            depletion_age=depletion_age,
            shortfall_amount=shortfall_amount,
            shortfall_years=shortfall_years,
        )

    def run(self,
            progress_callback: Optional[Callable[[float], None]] = None,
            should_cancel: Optional[Callable[[], bool]] = None,
            progress_interval: int = PROGRESS_INTERVAL) -> AggregateResult:
        """
        Run all trials and aggregate them.

        Args:
            progress_callback: Called with the completed percentage every
                `progress_interval` trials, starting at 0
            should_cancel: Polled before each trial; a true result raises
                SimulationCancelledError and discards the partial run

        Returns:
            AggregateResult
        """
        rng = np.random.default_rng(self.random_seed)
        interval = max(1, progress_interval)

        logger.debug("Starting Monte Carlo simulation with %d iterations", self.iterations)

        trials = []
        for i in range(self.iterations):
            if should_cancel is not None and should_cancel():
                logger.debug("Monte Carlo simulation cancelled after %d trials", i)
                raise SimulationCancelledError(f"Cancelled after {i} of {self.iterations} trials")
            if progress_callback is not None and i % interval == 0:
                progress_callback(i / self.iterations * 100)
            trials.append(self.run_trial(rng))

        result = aggregate_trials(trials, self.ages)
        logger.debug("Monte Carlo simulation finished: success rate %.4f", result.success_rate)
        return result


def calculate_percentile_bands(portfolio_values: np.ndarray,
                               percentiles: Sequence[int] = PERCENTILES) -> List[PercentileBand]:
    """
    Nearest-rank percentile of portfolio value at each age.

    Args:
        portfolio_values: Array of shape (trials, years)

    Returns:
        One PercentileBand per percentile, indexed at floor(p/100 * trials)
        in the ascending values for each age (no interpolation)
    """
    sorted_values = np.sort(portfolio_values, axis=0)
    num_trials = sorted_values.shape[0]

    bands = []
    for percentile in percentiles:
        index = min(int(math.floor(percentile / 100 * num_trials)), num_trials - 1)
        bands.append(PercentileBand(percentile=percentile, values=sorted_values[index, :].copy()))
    return bands


def calculate_shortfall_analysis(trials: List[SimulationTrial], final_age: int) -> ShortfallAnalysis:
    """
    Shortfall probability and averages over failed trials.

    A failed trial without a recorded depletion age counts as failing at
    `final_age`, the last age of the horizon.
    """
    failed = [t for t in trials if not t.success]

    if not failed:
        return ShortfallAnalysis(
            probability_of_shortfall=0.0,
            average_shortfall_age=None,
            average_shortfall_magnitude=0.0,
            average_shortfall_duration=0.0,
        )

    depletion_ages = [t.depletion_age if t.depletion_age is not None else final_age for t in failed]
    return ShortfallAnalysis(
        probability_of_shortfall=len(failed) / len(trials),
        average_shortfall_age=float(np.mean(depletion_ages)),
        average_shortfall_magnitude=float(np.mean([t.shortfall_amount for t in failed])),
        average_shortfall_duration=float(np.mean([t.shortfall_years for t in failed])),
    )


def calculate_summary_stats(final_balances: np.ndarray) -> Dict[str, float]:
    """Calculate summary statistics for the final-year balance"""
    return {
        'mean': float(np.mean(final_balances)),
        'p10': float(np.percentile(final_balances, 10)),
        'p50': float(np.percentile(final_balances, 50)),
        'p90': float(np.percentile(final_balances, 90)),
        'prob_depleted': float(np.mean(final_balances <= 0)),
    }


def aggregate_trials(trials: List[SimulationTrial], ages: np.ndarray) -> AggregateResult:
    """Build the aggregate result from completed trials"""
    if not trials:
        raise ValueError("Cannot aggregate zero trials")

    portfolio_values = np.vstack([t.portfolio_values for t in trials])
    successes = np.array([t.success for t in trials])
    bands = calculate_percentile_bands(portfolio_values)
    median = next(b.values for b in bands if b.percentile == 50)

    return AggregateResult(
        success_rate=float(np.mean(successes)),
        total_iterations=len(trials),
        ages=np.asarray(ages).copy(),
        percentile_bands=bands,
        median_portfolio_values=median,
        shortfall_analysis=calculate_shortfall_analysis(trials, int(ages[-1])),
        final_balance_stats=calculate_summary_stats(portfolio_values[:, -1]),
    )


def run_monte_carlo_sync(scenario: ScenarioInput,
                         iterations: int = DEFAULT_ITERATIONS,
                         random_seed: Optional[int] = None) -> AggregateResult:
    """Run a simulation on the calling thread"""
    return MonteCarloSimulator(scenario, iterations, random_seed).run()
