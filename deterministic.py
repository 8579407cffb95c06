"""
Deterministic retirement projection using the scenario's nominal assumptions (no randomness).
Provides the baseline year-by-year trajectory for comparison with Monte Carlo results.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from config_utils import HORIZON_YEARS
from formulas import (
    adjusted_social_security, annuity_supplement, cola_adjusted_increment,
    early_retirement_reduction, future_value_with_contributions, pension_annual,
    required_minimum_distribution, survivor_benefit_reduction, tsp_withdrawal, TSPWithdrawal
)
from scenario import OtherIncome, ScenarioInput, TSPAccount
from service import is_immediate_unreduced
from tax import (
    SINGLE, effective_tax_rate, federal_tax, is_supported_filing_status,
    standard_deduction_for, state_tax
)

logger = logging.getLogger(__name__)

# Share of Social Security benefits included in taxable income
SOCIAL_SECURITY_TAXABLE_SHARE = 0.85
SUPPLEMENT_END_AGE = 62


@dataclass
class IncomeBreakdown:
    pension: float
    social_security: float
    tsp_withdrawal: float
    annuity_supplement: float
    other_income: float
    total: float


@dataclass
class TaxBreakdown:
    federal: float
    state: float
    effective_rate: float
    total: float


@dataclass
class YearProjection:
    """One year of a retirement trajectory"""
    year: int
    age: int
    income: IncomeBreakdown
    taxes: TaxBreakdown
    net_income: float
    expenses: float
    surplus: float
    tsp_balance: float
    cumulative_net_income: float


@dataclass
class ProjectionSummary:
    average_annual_net_income: float
    total_lifetime_income: float
    years_of_retirement: int
    tsp_depletion_age: Optional[int]
    final_tsp_balance: float


@dataclass
class ProjectionResults:
    """Results from deterministic projection"""
    projections: List[YearProjection]
    summary: ProjectionSummary


@dataclass
class BaseBenefits:
    """Per-scenario amounts that are fixed at retirement"""
    retirement_age: int
    pension_annual: float
    social_security_annual: float
    supplement_annual: float
    starting_tsp_balance: float
    traditional_fraction: float
    standard_deduction: float


def prepare_benefits(scenario: ScenarioInput) -> BaseBenefits:
    """
    Compute the retirement-date amounts every trajectory starts from.

    The pension is reduced for MRA+10 early retirement and the survivor
    election. The annuity supplement is only paid to immediate unreduced
    annuitants retiring before 62 and is based on the Social Security
    estimate at 62.
    """
    service = scenario.federal_service
    ss = scenario.social_security
    tsp = scenario.tsp
    retirement_age = scenario.retirement_age

    if not is_supported_filing_status(scenario.taxes.filing_status):
        logger.warning("No bracket table for filing status %r, using %s",
                       scenario.taxes.filing_status, SINGLE)

    pension = pension_annual(service.total_creditable_years, service.high_three_salary, retirement_age)
    pension *= 1 - early_retirement_reduction(retirement_age, service.total_creditable_years)
    pension *= 1 - survivor_benefit_reduction(service.survivor_benefit)

    ss_monthly = adjusted_social_security(ss.estimated_benefit, ss.claiming_age, ss.full_retirement_age)

    supplement = 0.0
    if retirement_age < SUPPLEMENT_END_AGE and is_immediate_unreduced(
            retirement_age, service.total_creditable_years, scenario.birth_year):
        ss_at_62 = adjusted_social_security(ss.estimated_benefit, 62, ss.full_retirement_age)
        supplement = annuity_supplement(service.total_creditable_years, ss_at_62) * 12

    starting_balance = future_value_with_contributions(
        tsp.current_balance,
        tsp.monthly_contribution,
        tsp.growth_rate,
        scenario.months_until_retirement(),
    )

    return BaseBenefits(
        retirement_age=retirement_age,
        pension_annual=pension,
        social_security_annual=ss_monthly * 12,
        supplement_annual=supplement,
        starting_tsp_balance=starting_balance,
        traditional_fraction=tsp.traditional_fraction,
        standard_deduction=standard_deduction_for(scenario.taxes.filing_status),
    )


def withdraw_from_tsp(balance: float, tsp: TSPAccount, age: int, traditional_fraction: float) -> TSPWithdrawal:
    """Strategy withdrawal, raised to the RMD on the traditional share when that is larger"""
    strategy = tsp.withdrawal_strategy
    result = tsp_withdrawal(balance, strategy.type, age, strategy)

    rmd = required_minimum_distribution(balance * traditional_fraction, age)
    if rmd > result.withdrawal:
        withdrawal = min(rmd, balance)
        new_balance = balance - withdrawal
        if new_balance < 0:
            new_balance = 0.0
        return TSPWithdrawal(withdrawal, new_balance)
    return result


def other_income_for_age(entries: List[OtherIncome], age: int, cpi_factor: float) -> Tuple[float, float]:
    """
    Annual other income paid at an age.

    Returns:
        (total, taxable portion)
    """
    total = 0.0
    taxable = 0.0
    for income in entries:
        if not income.is_active(age):
            continue
        amount = income.monthly_amount * 12
        if income.cola_adjustment:
            amount *= cpi_factor
        total += amount
        if income.taxable:
            taxable += amount
    return total, taxable


def calculate_year_taxes(scenario: ScenarioInput,
                         benefits: BaseBenefits,
                         income: IncomeBreakdown,
                         taxable_other_income: float,
                         age: int) -> TaxBreakdown:
    """Federal and state tax for one year of income"""
    taxable_income = (
        income.pension
        + income.annuity_supplement
        + income.tsp_withdrawal * benefits.traditional_fraction
        + taxable_other_income
        + income.social_security * SOCIAL_SECURITY_TAXABLE_SHARE
    )

    federal = federal_tax(
        taxable_income,
        scenario.taxes.filing_status,
        benefits.standard_deduction,
        age >= 65,
    )
    state = state_tax(taxable_income, scenario.taxes.state_tax_rate)
    total = federal + state

    return TaxBreakdown(
        federal=federal,
        state=state,
        effective_rate=effective_tax_rate(total, income.total),
        total=total,
    )


class DeterministicProjector:
    """Deterministic retirement projection with nominal assumptions"""

    def __init__(self, scenario: ScenarioInput, horizon_years: int = HORIZON_YEARS):
        self.scenario = scenario
        self.horizon_years = horizon_years

    def run_projection(self) -> ProjectionResults:
        """Run deterministic projection"""
        scenario = self.scenario
        benefits = prepare_benefits(scenario)
        inflation = scenario.expenses.inflation_rate
        monthly_growth = scenario.tsp.growth_rate / 12
        claiming_age = scenario.social_security.claiming_age

        logger.debug(
            "Projecting %d years from age %d (pension %.2f, TSP %.2f)",
            self.horizon_years, benefits.retirement_age,
            benefits.pension_annual, benefits.starting_tsp_balance,
        )

        projections = []
        balance = benefits.starting_tsp_balance
        pension = benefits.pension_annual
        cpi_factor = 1.0
        cumulative_net = 0.0

        for year_idx in range(self.horizon_years):
            age = benefits.retirement_age + year_idx

            # COLAs from the second year on
            if year_idx > 0:
                pension += cola_adjusted_increment(pension, inflation, age)
                cpi_factor *= 1 + inflation

            social_security = benefits.social_security_annual * cpi_factor if age >= claiming_age else 0.0

            draw = withdraw_from_tsp(balance, scenario.tsp, age, benefits.traditional_fraction)
            balance = draw.new_balance * (1 + monthly_growth) ** 12

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
            expenses = scenario.expenses.monthly_amount * 12 * (1 + inflation) ** year_idx
            cumulative_net += net_income

            projections.append(YearProjection(
                year=scenario.retirement_year + year_idx,
                age=age,
                income=income,
                taxes=taxes,
                net_income=net_income,
                expenses=expenses,
                surplus=net_income - expenses,
                tsp_balance=balance,
                cumulative_net_income=cumulative_net,
            ))

        return ProjectionResults(projections=projections, summary=summarize_projections(projections))


def summarize_projections(projections: List[YearProjection]) -> ProjectionSummary:
    """Summary statistics over a projected trajectory"""
    total = sum(p.net_income for p in projections)
    depletion_age = next((p.age for p in projections if p.tsp_balance <= 0), None)
    return ProjectionSummary(
        average_annual_net_income=total / len(projections) if projections else 0.0,
        total_lifetime_income=total,
        years_of_retirement=len(projections),
        tsp_depletion_age=depletion_age,
        final_tsp_balance=projections[-1].tsp_balance if projections else 0.0,
    )


def project_deterministic(scenario: ScenarioInput) -> ProjectionResults:
    """Project a scenario over the fixed 30-year horizon"""
    return DeterministicProjector(scenario).run_projection()
