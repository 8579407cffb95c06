"""
FERS retirement formula library.
Pure functions for pension, annuity supplement, Social Security, TSP withdrawals,
RMDs and COLA. No input validation: NaN and Infinity propagate through the arithmetic.
"""
import math
from typing import NamedTuple, Optional

from scenario import (
    FIXED_AMOUNT, FIXED_PERCENTAGE, MIXED, WithdrawalStrategy
)


# Simplified IRS Uniform Lifetime Table
LIFE_EXPECTANCY_TABLE = {
    70: 27.4, 71: 26.5, 72: 25.6, 73: 24.7, 74: 23.8,
    75: 22.9, 76: 22.0, 77: 21.2, 78: 20.3, 79: 19.5,
    80: 18.7, 81: 17.9, 82: 17.1, 83: 16.3, 84: 15.5,
    85: 14.8, 86: 14.1, 87: 13.4, 88: 12.7, 89: 12.0,
    90: 11.4, 91: 10.8, 92: 10.2, 93: 9.6, 94: 9.1,
    95: 8.6, 96: 8.1, 97: 7.6, 98: 7.1, 99: 6.7, 100: 6.3,
}
LIFE_EXPECTANCY_MIN_AGE = 70
LIFE_EXPECTANCY_MAX_AGE = 100

RMD_START_AGE = 73
COLA_START_AGE = 62
ENHANCED_MULTIPLIER_AGE = 62
ENHANCED_MULTIPLIER_SERVICE = 20

SURVIVOR_REDUCTIONS = {
    "NONE": 0.0,
    "PARTIAL": 0.05,
    "FULL": 0.10,
}


class TSPWithdrawal(NamedTuple):
    withdrawal: float
    new_balance: float


def pension_multiplier(service_years: float, age_at_retirement: float) -> float:
    """1.1% at 62+ with 20+ years of service, otherwise 1.0%"""
    if age_at_retirement >= ENHANCED_MULTIPLIER_AGE and service_years >= ENHANCED_MULTIPLIER_SERVICE:
        return 0.011
    return 0.01


def pension_annual(service_years: float, high_three: float, age_at_retirement: float) -> float:
    """
    Calculate the annual FERS basic annuity.

    Args:
        service_years: Creditable service in years (>= 0, fractional allowed)
        high_three: High-3 average salary
        age_at_retirement: Age when the annuity starts

    Returns:
        Annual pension before any reductions
    """
    return high_three * service_years * pension_multiplier(service_years, age_at_retirement)


def annuity_supplement(service_years: float, estimated_ss_at_62: float) -> float:
    """
    Monthly FERS annuity supplement: (SS estimate at 62 / 40) per started year of service.

    No eligibility check is performed. Callers stop paying it at 62 and only
    pay it to immediate unreduced annuitants retiring before 62.
    """
    return (estimated_ss_at_62 / 40) * math.ceil(service_years)


def adjusted_social_security(benefit_at_fra: float, claiming_age: float, full_retirement_age: float) -> float:
    """
    Adjust the full-retirement-age benefit for the claiming age.

    Early claiming loses 5/9% per month for the first 36 months and 5/12% per
    month beyond that. Delayed claiming earns 2/3% per month.
    """
    if claiming_age == full_retirement_age:
        return benefit_at_fra

    months_difference = (claiming_age - full_retirement_age) * 12

    if claiming_age < full_retirement_age:
        early_months = abs(months_difference)
        first_three_years = min(early_months, 36)
        additional_months = max(0, early_months - 36)
        reduction = first_three_years * 5 / 9 + additional_months * 5 / 12
        return benefit_at_fra * (1 - reduction / 100)

    increase = months_difference * 2 / 3
    return benefit_at_fra * (1 + increase / 100)


def life_expectancy_factor(age: float) -> float:
    """
    Distribution period from the Uniform Lifetime table.

    Ages are floored to whole years. Ages below 70 use the age-70 factor and
    ages above 100 use the age-100 factor.
    """
    whole_age = int(math.floor(age))
    whole_age = min(max(whole_age, LIFE_EXPECTANCY_MIN_AGE), LIFE_EXPECTANCY_MAX_AGE)
    return LIFE_EXPECTANCY_TABLE[whole_age]


def tsp_withdrawal(balance: float,
                   strategy: str,
                   age: float,
                   params: Optional[WithdrawalStrategy] = None) -> TSPWithdrawal:
    """
    Annual TSP withdrawal for a strategy.

    Args:
        balance: Balance at the start of the year
        strategy: LIFE_EXPECTANCY, FIXED_AMOUNT, FIXED_PERCENTAGE or MIXED;
            anything else is treated as LIFE_EXPECTANCY
        age: Attained age, used for the life expectancy factor
        params: Strategy parameters; missing amounts withdraw nothing

    Returns:
        TSPWithdrawal(withdrawal, new_balance) with withdrawal <= balance
    """
    if params is None:
        params = WithdrawalStrategy(type=strategy)

    if balance <= 0:
        return TSPWithdrawal(0.0, 0.0)

    if strategy == FIXED_AMOUNT:
        withdrawal = min(params.fixed_amount or 0.0, balance)
    elif strategy == FIXED_PERCENTAGE:
        withdrawal = balance * ((params.fixed_percentage or 0.0) / 100)
    elif strategy == MIXED:
        life_expectancy_portion = min(params.mixed_life_expectancy_amount or 0.0, balance)
        fixed_portion = min(params.mixed_fixed_amount or 0.0, balance - life_expectancy_portion)
        withdrawal = life_expectancy_portion + fixed_portion
    else:
        withdrawal = balance / life_expectancy_factor(age)

    withdrawal = min(withdrawal, balance)
    new_balance = balance - withdrawal
    if new_balance < 0:
        new_balance = 0.0
    return TSPWithdrawal(withdrawal, new_balance)


def required_minimum_distribution(balance: float, age: float) -> float:
    """Minimum withdrawal from a tax-deferred balance; zero below age 73"""
    if age < RMD_START_AGE:
        return 0.0
    return balance / life_expectancy_factor(age)


def cola_adjusted_increment(base: float, inflation: float, age: float) -> float:
    """
    FERS COLA increment for one year.

    No COLA before 62. Inflation in (2%, 3%] is capped at 2%, inflation above
    3% is reduced by one percentage point, otherwise it passes through.
    """
    if age < COLA_START_AGE:
        return 0.0

    adjusted_inflation = inflation
    if 0.02 < inflation <= 0.03:
        adjusted_inflation = 0.02
    elif inflation > 0.03:
        adjusted_inflation = inflation - 0.01

    return base * adjusted_inflation


def early_retirement_reduction(age_at_retirement: float, service_years: float) -> float:
    """
    Age reduction for MRA+10 retirements: 5% per year under 62.

    No reduction with 30+ years, or 20+ years at 60 or older.
    """
    if service_years >= 30:
        return 0.0
    if age_at_retirement >= 60 and service_years >= 20:
        return 0.0
    if age_at_retirement >= 62:
        return 0.0
    return min(1.0, 0.05 * (62 - age_at_retirement))


def survivor_benefit_reduction(election: str) -> float:
    """Pension reduction for the survivor annuity election"""
    return SURVIVOR_REDUCTIONS.get(election, 0.0)


def future_value_with_contributions(balance: float,
                                    monthly_contribution: float,
                                    annual_rate: float,
                                    months: int) -> float:
    """
    Grow a balance with end-of-month contributions, compounding monthly.
    """
    if months <= 0:
        return balance
    monthly_rate = annual_rate / 12
    growth = (1 + monthly_rate) ** months
    if monthly_rate == 0:
        return balance + monthly_contribution * months
    return balance * growth + monthly_contribution * (growth - 1) / monthly_rate
