"""
Unit tests for deterministic projection.
"""
import logging
import math
from datetime import date

from deterministic import (
    DeterministicProjector, calculate_year_taxes, other_income_for_age, prepare_benefits,
    project_deterministic, withdraw_from_tsp
)
from scenario import OtherIncome
from simulation import MonteCarloSimulator


class TestDeterministicProjection:
    """Test deterministic projection functionality"""

    def test_horizon_ages_and_years(self, scenario):
        """Test 30 consecutive years starting at retirement"""
        results = project_deterministic(scenario)
        assert len(results.projections) == 30
        assert [p.age for p in results.projections] == list(range(62, 92))
        assert [p.year for p in results.projections] == list(range(2027, 2057))
        assert results.summary.years_of_retirement == 30

    def test_custom_horizon(self, scenario):
        """Test the projector honours a shorter horizon"""
        results = DeterministicProjector(scenario, horizon_years=5).run_projection()
        assert len(results.projections) == 5

    def test_pension_and_cola(self, scenario):
        """Test 33,000 pension with a 2% COLA at 2.5% inflation"""
        projections = project_deterministic(scenario).projections
        assert abs(projections[0].income.pension - 33_000) < 0.01
        assert abs(projections[1].income.pension - 33_660) < 0.01

    def test_social_security_starts_at_claiming_age(self, scenario):
        """Test SS is zero before claiming and CPI-adjusted after"""
        projections = project_deterministic(scenario).projections
        for p in projections[:5]:
            assert p.income.social_security == 0
        assert abs(projections[5].income.social_security - 24_000 * 1.025 ** 5) < 0.01

    def test_expenses_inflate(self, scenario):
        """Test expenses grow with the expense inflation rate"""
        projections = project_deterministic(scenario).projections
        for i, p in enumerate(projections):
            assert abs(p.expenses - 60_000 * 1.025 ** i) < 0.01

    def test_income_and_net_consistency(self, scenario):
        """Test totals, net income, surplus and cumulative sums agree"""
        projections = project_deterministic(scenario).projections
        cumulative = 0.0
        for p in projections:
            parts = (p.income.pension + p.income.social_security + p.income.tsp_withdrawal
                     + p.income.annuity_supplement + p.income.other_income)
            assert abs(p.income.total - parts) < 1e-6
            assert abs(p.net_income - (p.income.total - p.taxes.total)) < 1e-6
            assert abs(p.surplus - (p.net_income - p.expenses)) < 1e-6
            cumulative += p.net_income
            assert abs(p.cumulative_net_income - cumulative) < 1e-6
            assert p.tsp_balance >= 0

    def test_idempotent(self, scenario):
        """Test the same scenario always projects the same trajectory"""
        assert project_deterministic(scenario) == project_deterministic(scenario)

    def test_tsp_depletion(self, make_scenario):
        """Test a large fixed withdrawal depletes the TSP"""
        scenario = make_scenario(balance=200_000, traditional=200_000, roth=0, growth_rate=0.0,
                                 strategy="FIXED_AMOUNT", fixed_amount=100_000)
        results = project_deterministic(scenario)
        assert results.summary.tsp_depletion_age == 63
        assert results.projections[2].income.tsp_withdrawal == 0
        assert results.summary.final_tsp_balance == 0

    def test_no_depletion(self, scenario):
        """Test life expectancy withdrawals never empty the account"""
        summary = project_deterministic(scenario).summary
        assert summary.tsp_depletion_age is None
        assert summary.final_tsp_balance > 0

    def test_nan_salary_propagates(self, make_scenario):
        """Test NaN inputs surface as NaN outputs"""
        projections = project_deterministic(make_scenario(high_three=float('nan'))).projections
        assert math.isnan(projections[0].net_income)


class TestBenefits:
    """Test retirement-date amounts"""

    def test_annuity_supplement_before_62(self, make_scenario):
        """Test MRA+30 retiree receives the supplement until 62"""
        scenario = make_scenario(birth_date=date(1967, 1, 10), retirement_date=date(2024, 6, 30))
        benefits = prepare_benefits(scenario)
        assert benefits.retirement_age == 57
        assert abs(benefits.pension_annual - 30_000) < 0.01
        # 1,400 at 62 / 40 * 30 years * 12 months
        assert abs(benefits.supplement_annual - 12_600) < 0.01

        projections = project_deterministic(scenario).projections
        for p in projections[:5]:
            assert abs(p.income.annuity_supplement - 12_600) < 0.01
            assert abs(p.income.pension - 30_000) < 0.01
        assert projections[5].age == 62
        assert projections[5].income.annuity_supplement == 0

    def test_no_supplement_at_62(self, scenario):
        """Test retirees at 62 get no supplement"""
        assert prepare_benefits(scenario).supplement_annual == 0

    def test_mra_10_reduction(self, make_scenario):
        """Test 25% reduction at 57 with 15 years and no supplement"""
        scenario = make_scenario(birth_date=date(1967, 1, 10), hire_date=date(2009, 6, 30),
                                 retirement_date=date(2024, 6, 30), service_years=15)
        benefits = prepare_benefits(scenario)
        assert abs(benefits.pension_annual - 11_250) < 0.01
        assert benefits.supplement_annual == 0

    def test_survivor_reduction(self, make_scenario):
        """Test full survivor benefit costs 10%"""
        benefits = prepare_benefits(make_scenario(survivor_benefit="FULL"))
        assert abs(benefits.pension_annual - 29_700) < 0.01

    def test_accumulation_to_retirement(self, make_scenario):
        """Test the balance grows from the valuation date"""
        scenario = make_scenario(valuation_date=date(2026, 6, 30), growth_rate=0.0, monthly_contribution=1_000)
        assert abs(prepare_benefits(scenario).starting_tsp_balance - 512_000) < 0.01

    def test_unsupported_filing_status_warns_once_per_run(self, make_scenario, caplog):
        """Test a projection and a simulation each log the SINGLE fallback once"""
        scenario = make_scenario(filing_status="HEAD_OF_HOUSEHOLD")
        with caplog.at_level(logging.WARNING, logger="deterministic"):
            project_deterministic(scenario)
        assert len([r for r in caplog.records if "HEAD_OF_HOUSEHOLD" in r.getMessage()]) == 1

        caplog.clear()
        with caplog.at_level(logging.WARNING, logger="deterministic"):
            MonteCarloSimulator(scenario, iterations=50, random_seed=1).run()
        assert len([r for r in caplog.records if "HEAD_OF_HOUSEHOLD" in r.getMessage()]) == 1

    def test_supported_filing_status_is_silent(self, scenario, caplog):
        """Test no fallback warning for a status with its own table"""
        with caplog.at_level(logging.WARNING, logger="deterministic"):
            project_deterministic(scenario)
        assert not caplog.records


class TestYearComponents:
    """Test per-year helpers"""

    def test_rmd_floor(self, make_scenario):
        """Test the RMD raises a small fixed withdrawal at 73"""
        scenario = make_scenario(strategy="FIXED_AMOUNT", fixed_amount=1_000)
        draw = withdraw_from_tsp(247_000, scenario.tsp, 73, 1.0)
        assert abs(draw.withdrawal - 10_000) < 0.01
        assert abs(draw.new_balance - 237_000) < 0.01

        draw = withdraw_from_tsp(247_000, scenario.tsp, 72, 1.0)
        assert draw.withdrawal == 1_000

    def test_other_income(self):
        """Test active, COLA-adjusted and non-taxable other income"""
        entries = [
            OtherIncome("Rental", 1_000, start_age=65, end_age=70),
            OtherIncome("Annuity", 500, start_age=62, cola_adjustment=True, taxable=False),
        ]
        total, taxable = other_income_for_age(entries, 66, 1.1)
        assert abs(total - (12_000 + 6_600)) < 1e-9
        assert abs(taxable - 12_000) < 1e-9
        assert other_income_for_age(entries, 60, 1.0) == (0.0, 0.0)

    def test_roth_withdrawals_not_taxed(self, make_scenario):
        """Test only the traditional share of withdrawals is taxable"""
        roth_only = make_scenario(traditional=0, roth=500_000, state_tax_rate=0.0)
        benefits = prepare_benefits(roth_only)
        assert benefits.traditional_fraction == 0
        projections = project_deterministic(roth_only).projections
        traditional = project_deterministic(make_scenario(traditional=500_000, roth=0,
                                                          state_tax_rate=0.0)).projections
        assert projections[0].taxes.federal < traditional[0].taxes.federal

    def test_year_taxes_include_state(self, scenario):
        """Test state tax uses the scenario rate on taxable income"""
        benefits = prepare_benefits(scenario)
        projection = project_deterministic(scenario).projections[0]
        taxes = calculate_year_taxes(scenario, benefits, projection.income, 0.0, projection.age)
        taxable = 33_000 + projection.income.tsp_withdrawal * 0.8
        assert abs(taxes.state - taxable * 0.05) < 0.01
        assert taxes == projection.taxes
