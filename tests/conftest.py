"""
Shared fixtures for engine tests.
"""
from datetime import date

import pytest

from scenario import (
    Expenses, FederalService, OtherIncome, PersonalInfo, ScenarioInput,
    SocialSecurity, TaxInfo, TSPAccount, WithdrawalStrategy
)


def build_scenario(birth_date=date(1965, 6, 15),
                   hire_date=date(1995, 9, 1),
                   retirement_date=date(2027, 6, 30),
                   high_three=100_000,
                   service_years=30,
                   survivor_benefit="NONE",
                   ss_benefit=2_000,
                   full_retirement_age=67,
                   claiming_age=67,
                   balance=500_000,
                   traditional=400_000,
                   roth=100_000,
                   monthly_contribution=0,
                   growth_rate=0.05,
                   strategy="LIFE_EXPECTANCY",
                   fixed_amount=None,
                   fixed_percentage=None,
                   mixed_life_expectancy_amount=None,
                   mixed_fixed_amount=None,
                   other_income=None,
                   monthly_expenses=5_000,
                   expense_inflation=0.025,
                   filing_status="MARRIED_FILING_JOINTLY",
                   state_tax_rate=0.05,
                   valuation_date=None) -> ScenarioInput:
    """Scenario with sensible defaults: retires at 62 with 30 years, pension 33,000"""
    return ScenarioInput(
        personal_info=PersonalInfo(birth_date, hire_date, retirement_date),
        federal_service=FederalService(high_three, service_years, survivor_benefit),
        social_security=SocialSecurity(ss_benefit, full_retirement_age, claiming_age),
        tsp=TSPAccount(
            current_balance=balance,
            traditional_balance=traditional,
            roth_balance=roth,
            monthly_contribution=monthly_contribution,
            growth_rate=growth_rate,
            withdrawal_strategy=WithdrawalStrategy(
                type=strategy,
                fixed_amount=fixed_amount,
                fixed_percentage=fixed_percentage,
                mixed_life_expectancy_amount=mixed_life_expectancy_amount,
                mixed_fixed_amount=mixed_fixed_amount,
            ),
        ),
        expenses=Expenses(monthly_expenses, expense_inflation),
        taxes=TaxInfo(filing_status, state_tax_rate),
        other_income=list(other_income or []),
        valuation_date=valuation_date,
    )


@pytest.fixture
def make_scenario():
    """Factory for scenarios; keyword arguments override the defaults"""
    return build_scenario


@pytest.fixture
def scenario():
    return build_scenario()


@pytest.fixture
def pension_income():
    return OtherIncome(name="Rental", monthly_amount=1_000, start_age=65, end_age=70)
