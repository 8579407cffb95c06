"""
Tests for creditable service and retirement eligibility.
"""
from datetime import date

import pytest

from service import (
    FERS_FULL_TIME, FERS_PART_TIME, TEMPORARY, MilitaryService, ServicePeriod,
    calculate_creditable_service, check_retirement_eligibility, is_immediate_unreduced,
    minimum_retirement_age, part_time_proration_factor, period_creditable_months,
    service_from_dates, simple_service_period, validate_service_periods
)


class TestMinimumRetirementAge:
    """Test MRA phase-in"""

    def test_mra_by_birth_year(self):
        """Test MRA across the phase-in schedule"""
        assert minimum_retirement_age(1947) == 55
        assert abs(minimum_retirement_age(1950) - 55.5) < 1e-9
        assert minimum_retirement_age(1960) == 56
        assert abs(minimum_retirement_age(1967) - 56.5) < 1e-9
        assert minimum_retirement_age(1975) == 57


class TestCreditableService:
    """Test creditable service totals"""

    def test_thirty_year_career(self):
        """Test a full-time period of exactly 30 years"""
        period = simple_service_period(date(1995, 9, 1), date(2025, 9, 1))
        assert period_creditable_months(period) == 360
        service = calculate_creditable_service([period])
        assert service.total_creditable_years == 30

    def test_sick_leave_credit(self):
        """Test one work year of sick leave adds 12 months"""
        period = simple_service_period(date(1995, 9, 1), date(2025, 9, 1))
        service = calculate_creditable_service([period], unused_sick_leave_hours=2087)
        assert service.total_creditable_months == 372

    def test_military_deposit(self):
        """Test military time counts only with a paid deposit and no retired pay"""
        period = simple_service_period(date(2000, 1, 1), date(2020, 1, 1))
        paid = calculate_creditable_service([period], MilitaryService(48, deposit_paid=True))
        unpaid = calculate_creditable_service([period], MilitaryService(48, deposit_paid=False))
        retired = calculate_creditable_service(
            [period], MilitaryService(48, deposit_paid=True, receives_military_retired_pay=True))
        assert paid.total_creditable_years == 24
        assert unpaid.total_creditable_years == 20
        assert retired.total_creditable_years == 20

    def test_temporary_service_needs_deposit(self):
        """Test temporary service is only creditable once the deposit is paid"""
        unpaid = ServicePeriod(date(1990, 1, 1), date(1992, 1, 1), TEMPORARY, deposit_required=True)
        paid = ServicePeriod(date(1990, 1, 1), date(1992, 1, 1), TEMPORARY,
                             deposit_required=True, deposit_paid=True)
        assert period_creditable_months(unpaid) == 0
        assert period_creditable_months(paid) == 24

    def test_month_end_start_date(self):
        """Test periods starting on the 31st count partial months"""
        period = simple_service_period(date(2020, 1, 31), date(2020, 3, 1))
        months = period_creditable_months(period)
        assert 1 < months < 1.1

    def test_inverted_period_raises(self):
        """Test a period ending before it starts is rejected"""
        with pytest.raises(ValueError):
            period_creditable_months(simple_service_period(date(2020, 1, 1), date(2019, 1, 1)))

    def test_part_time_proration(self):
        """Test 75% part-time service prorates the annuity"""
        period = ServicePeriod(date(2000, 1, 1), date(2010, 1, 1), FERS_PART_TIME, part_time_percentage=75)
        assert abs(part_time_proration_factor([period]) - 0.75) < 1e-9
        assert part_time_proration_factor([]) == 1.0


class TestValidateServicePeriods:
    """Test service period validation"""

    def test_overlap_detected(self):
        """Test overlapping periods are reported"""
        periods = [
            ServicePeriod(date(2000, 1, 1), date(2010, 1, 1), agency="A"),
            ServicePeriod(date(2009, 1, 1), date(2015, 1, 1), agency="B"),
        ]
        errors = validate_service_periods(periods, today=date(2025, 1, 1))
        assert any("overlap" in e for e in errors)

    def test_clean_periods(self):
        """Test consecutive periods produce no errors"""
        periods = [
            ServicePeriod(date(2000, 1, 1), date(2010, 1, 1), FERS_FULL_TIME, agency="A"),
            ServicePeriod(date(2010, 1, 1), date(2015, 1, 1), FERS_FULL_TIME, agency="B"),
        ]
        assert validate_service_periods(periods, today=date(2025, 1, 1)) == []

    def test_future_and_part_time_errors(self):
        """Test future start dates and bad part-time percentages"""
        periods = [ServicePeriod(date(2030, 1, 1), date(2031, 1, 1), FERS_PART_TIME)]
        errors = validate_service_periods(periods, today=date(2025, 1, 1))
        assert any("future" in e for e in errors)
        assert any("Part-time" in e for e in errors)


class TestEligibility:
    """Test retirement eligibility"""

    def test_eligibility_types(self):
        """Test each retirement type"""
        assert check_retirement_eligibility(57, 30, 1967)['eligibility_type'] == 'MRA_30'
        assert check_retirement_eligibility(60, 20, 1965)['eligibility_type'] == 'AGE_60_20'
        assert check_retirement_eligibility(62, 5, 1962)['eligibility_type'] == 'AGE_62_5'
        assert check_retirement_eligibility(57, 15, 1967)['eligibility_type'] == 'MRA_10'

    def test_not_eligible(self):
        """Test too little service or age"""
        result = check_retirement_eligibility(50, 3, 1975)
        assert result['eligible'] is False
        assert result['eligibility_type'] is None
        assert "5 years" in result['message']

    def test_immediate_unreduced(self):
        """Test supplement-qualifying retirements"""
        assert is_immediate_unreduced(57, 30, 1967)
        assert is_immediate_unreduced(60, 20, 1964)
        assert not is_immediate_unreduced(57, 15, 1967)
        assert not is_immediate_unreduced(62, 10, 1962)

    def test_service_from_dates(self):
        """Test the hire-to-retirement convenience wrapper"""
        result = service_from_dates(date(1995, 9, 1), date(2025, 9, 1), date(1967, 1, 10))
        assert result['creditable_service'].total_creditable_years == 30
        assert result['eligibility']['eligibility_type'] == 'MRA_30'
