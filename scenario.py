"""
Scenario data model for the FERS retirement engine.
A ScenarioInput is a fully populated, already validated record supplied by the caller.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional


LIFE_EXPECTANCY = "LIFE_EXPECTANCY"
FIXED_AMOUNT = "FIXED_AMOUNT"
FIXED_PERCENTAGE = "FIXED_PERCENTAGE"
MIXED = "MIXED"
WITHDRAWAL_STRATEGIES = (LIFE_EXPECTANCY, FIXED_AMOUNT, FIXED_PERCENTAGE, MIXED)

SURVIVOR_ELECTIONS = ("NONE", "PARTIAL", "FULL")


class ScenarioFormatError(ValueError):
    """Raised when a scenario record cannot be built from its input"""


def age_on(birth_date: date, on_date: date) -> int:
    """Whole years of age attained on `on_date`"""
    years = on_date.year - birth_date.year
    if (on_date.month, on_date.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years


@dataclass(frozen=True)
class PersonalInfo:
    birth_date: date
    hire_date: date
    planned_retirement_date: date


@dataclass(frozen=True)
class FederalService:
    high_three_salary: float
    total_creditable_years: float
    survivor_benefit: str = "NONE"


@dataclass(frozen=True)
class SocialSecurity:
    """Social Security estimate. `estimated_benefit` is monthly, at full retirement age."""
    estimated_benefit: float
    full_retirement_age: int = 67
    claiming_age: int = 67


@dataclass(frozen=True)
class WithdrawalStrategy:
    type: str = LIFE_EXPECTANCY
    fixed_amount: Optional[float] = None
    fixed_percentage: Optional[float] = None
    mixed_life_expectancy_amount: Optional[float] = None
    mixed_fixed_amount: Optional[float] = None


@dataclass(frozen=True)
class TSPAccount:
    current_balance: float
    traditional_balance: float = 0.0
    roth_balance: float = 0.0
    monthly_contribution: float = 0.0
    growth_rate: float = 0.07
    withdrawal_strategy: WithdrawalStrategy = field(default_factory=WithdrawalStrategy)

    @property
    def traditional_fraction(self) -> float:
        """Share of the balance that is tax-deferred (1.0 when the split is unknown)"""
        split_total = self.traditional_balance + self.roth_balance
        if split_total <= 0:
            return 1.0
        return self.traditional_balance / split_total


@dataclass(frozen=True)
class OtherIncome:
    name: str
    monthly_amount: float
    start_age: int
    end_age: Optional[int] = None
    cola_adjustment: bool = False
    taxable: bool = True

    def is_active(self, age: int) -> bool:
        """Whether this income is paid at the given attained age (both ends inclusive)"""
        return age >= self.start_age and (self.end_age is None or age <= self.end_age)


@dataclass(frozen=True)
class Expenses:
    monthly_amount: float
    inflation_rate: float = 0.03


@dataclass(frozen=True)
class TaxInfo:
    filing_status: str = "SINGLE"
    state_tax_rate: float = 0.05


@dataclass(frozen=True)
class ScenarioInput:
    """Everything the engine needs for one run. Immutable for the duration of the run."""
    personal_info: PersonalInfo
    federal_service: FederalService
    social_security: SocialSecurity
    tsp: TSPAccount
    expenses: Expenses
    taxes: TaxInfo = field(default_factory=TaxInfo)
    other_income: List[OtherIncome] = field(default_factory=list)
    # When set, the TSP balance is as of this date and accumulates until retirement
    valuation_date: Optional[date] = None

    @property
    def retirement_age(self) -> int:
        return age_on(self.personal_info.birth_date, self.personal_info.planned_retirement_date)

    @property
    def retirement_year(self) -> int:
        return self.personal_info.planned_retirement_date.year

    @property
    def birth_year(self) -> int:
        return self.personal_info.birth_date.year

    def months_until_retirement(self) -> int:
        """Whole months between the valuation date and retirement (0 without a valuation date)"""
        if self.valuation_date is None:
            return 0
        start = self.valuation_date
        end = self.personal_info.planned_retirement_date
        months = (end.year - start.year) * 12 + (end.month - start.month)
        if end.day < start.day:
            months -= 1
        return max(0, months)


def validate_scenario(scenario: ScenarioInput) -> List[str]:
    """
    Check a scenario against the engine's preconditions.

    Returns a list of warnings; an empty list means the scenario is within
    the ranges the formulas were written for. Never raises.
    """
    warnings = []
    ss = scenario.social_security
    tsp = scenario.tsp
    info = scenario.personal_info

    if not 62 <= ss.claiming_age <= 70:
        warnings.append(f"Social Security claiming age {ss.claiming_age} is outside 62-70")
    if not 65 <= ss.full_retirement_age <= 67:
        warnings.append(f"Full retirement age {ss.full_retirement_age} is outside 65-67")

    if info.planned_retirement_date.year < info.hire_date.year:
        warnings.append("Planned retirement year is before hire year")
    if info.birth_date >= info.hire_date:
        warnings.append("Birth date must be before hire date")

    for name, value in [
        ('TSP current balance', tsp.current_balance),
        ('TSP traditional balance', tsp.traditional_balance),
        ('TSP Roth balance', tsp.roth_balance),
        ('TSP monthly contribution', tsp.monthly_contribution),
        ('TSP growth rate', tsp.growth_rate),
        ('High-3 salary', scenario.federal_service.high_three_salary),
        ('Creditable service', scenario.federal_service.total_creditable_years),
        ('Monthly expenses', scenario.expenses.monthly_amount),
    ]:
        if value < 0:
            warnings.append(f"{name} must be non-negative (got {value})")

    strategy = tsp.withdrawal_strategy
    if strategy.type not in WITHDRAWAL_STRATEGIES:
        warnings.append(f"Unknown withdrawal strategy {strategy.type!r}; life expectancy will be used")
    for name in ('fixed_amount', 'fixed_percentage',
                 'mixed_life_expectancy_amount', 'mixed_fixed_amount'):
        value = getattr(strategy, name)
        if value is not None and value < 0:
            warnings.append(f"Withdrawal parameter {name} must be non-negative (got {value})")
    if strategy.fixed_percentage is not None and strategy.fixed_percentage > 100:
        warnings.append("Fixed withdrawal percentage exceeds 100%")

    if scenario.federal_service.survivor_benefit not in SURVIVOR_ELECTIONS:
        warnings.append(f"Unknown survivor benefit election {scenario.federal_service.survivor_benefit!r}")

    for income in scenario.other_income:
        if income.end_age is not None and income.end_age < income.start_age:
            warnings.append(f"Other income '{income.name}' ends before it starts")

    return warnings
