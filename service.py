"""
Creditable service and retirement eligibility for FERS.
Produces the pre-computed service totals a ScenarioInput carries.
"""
import calendar
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from scenario import age_on

FERS_FULL_TIME = "FERS_FULL_TIME"
FERS_PART_TIME = "FERS_PART_TIME"
TEMPORARY = "TEMPORARY"
SEASONAL = "SEASONAL"
NON_DEDUCTION = "NON_DEDUCTION"

# Hours in a work year for sick leave credit
SICK_LEAVE_HOURS_PER_YEAR = 2087
AVERAGE_DAYS_PER_MONTH = 30.44


@dataclass
class ServicePeriod:
    start_date: date
    end_date: date
    service_type: str = FERS_FULL_TIME
    agency: str = ""
    part_time_percentage: Optional[float] = None
    deposit_required: bool = False
    deposit_paid: bool = False


@dataclass
class MilitaryService:
    total_months: float
    deposit_paid: bool = False
    receives_military_retired_pay: bool = False


@dataclass
class CreditableService:
    service_periods: List[ServicePeriod] = field(default_factory=list)
    military_service: Optional[MilitaryService] = None
    total_creditable_months: float = 0.0
    total_creditable_years: float = 0.0


def _months_between(start: date, end: date) -> float:
    """Whole calendar months plus the remaining days as a fraction of an average month"""
    whole_months = (end.year - start.year) * 12 + (end.month - start.month)
    if end.day < start.day:
        whole_months -= 1

    anchor_month = start.month - 1 + whole_months
    anchor_year = start.year + anchor_month // 12
    anchor_month = anchor_month % 12 + 1
    # Clamp the day for short months (e.g. Jan 31 + 1 month)
    anchor_day = min(start.day, calendar.monthrange(anchor_year, anchor_month)[1])
    anchor = date(anchor_year, anchor_month, anchor_day)

    return whole_months + (end - anchor).days / AVERAGE_DAYS_PER_MONTH


def period_creditable_months(period: ServicePeriod) -> float:
    """
    Creditable months for one service period.

    Full- and part-time FERS service is fully creditable for eligibility.
    Temporary, seasonal and non-deduction service only count once the
    deposit is paid.
    """
    if period.start_date > period.end_date:
        raise ValueError(
            f"Invalid service period: start date {period.start_date} is after end date {period.end_date}"
        )

    months = _months_between(period.start_date, period.end_date)

    if period.service_type in (FERS_FULL_TIME, FERS_PART_TIME):
        pass
    elif period.service_type in (TEMPORARY, SEASONAL, NON_DEDUCTION):
        if not period.deposit_paid:
            months = 0.0
    else:
        months = 0.0

    return max(0.0, months)


def calculate_creditable_service(service_periods: List[ServicePeriod],
                                 military_service: Optional[MilitaryService] = None,
                                 unused_sick_leave_hours: float = 0) -> CreditableService:
    """
    Total creditable service from civilian periods, bought-back military
    service and unused sick leave.

    Military time counts only when the deposit is paid and no military
    retired pay is received. Results are rounded to two decimals.
    """
    total_months = sum(period_creditable_months(p) for p in service_periods)

    if (military_service is not None and military_service.deposit_paid
            and not military_service.receives_military_retired_pay):
        total_months += military_service.total_months

    total_months += (unused_sick_leave_hours / SICK_LEAVE_HOURS_PER_YEAR) * 12

    return CreditableService(
        service_periods=service_periods,
        military_service=military_service,
        total_creditable_months=round(total_months, 2),
        total_creditable_years=round(total_months / 12, 2),
    )


def part_time_proration_factor(service_periods: List[ServicePeriod]) -> float:
    """Ratio of full-time-equivalent months to actual creditable months (1.0 if none)"""
    full_time_equivalent = 0.0
    actual = 0.0

    for period in service_periods:
        months = period_creditable_months(period)
        actual += months
        if period.service_type == FERS_PART_TIME and period.part_time_percentage:
            full_time_equivalent += months * (period.part_time_percentage / 100)
        else:
            full_time_equivalent += months

    return full_time_equivalent / actual if actual > 0 else 1.0


def validate_service_periods(periods: List[ServicePeriod], today: Optional[date] = None) -> List[str]:
    """Return a list of problems with the service periods (overlaps, bad dates, unpaid deposits)"""
    today = today or date.today()
    errors = []

    ordered = sorted(periods, key=lambda p: p.start_date)
    for current, following in zip(ordered, ordered[1:]):
        if current.end_date > following.start_date:
            errors.append(
                f"Service periods overlap: {current.agency} ({current.start_date} - {current.end_date}) "
                f"and {following.agency} ({following.start_date} - {following.end_date})"
            )

    for index, period in enumerate(periods, start=1):
        if period.start_date > period.end_date:
            errors.append(f"Period {index}: Start date cannot be after end date")
        if period.start_date > today:
            errors.append(f"Period {index}: Start date cannot be in the future")
        if period.service_type == FERS_PART_TIME and not (
                period.part_time_percentage and 0 < period.part_time_percentage <= 100):
            errors.append(f"Period {index}: Part-time percentage must be between 1-100")
        if (period.service_type in (TEMPORARY, NON_DEDUCTION)
                and period.deposit_required and not period.deposit_paid):
            errors.append(f"Period {index}: Deposit required but not paid - this service will not count")

    return errors


def simple_service_period(hire_date: date, retirement_date: date, agency: str = "Federal Agency") -> ServicePeriod:
    """A single full-time period from hire to retirement"""
    return ServicePeriod(
        start_date=hire_date,
        end_date=retirement_date,
        service_type=FERS_FULL_TIME,
        agency=agency,
        deposit_paid=True,
    )


def minimum_retirement_age(birth_year: int) -> float:
    """FERS minimum retirement age, phasing from 55 to 57 by birth year"""
    if birth_year < 1948:
        return 55
    if birth_year < 1953:
        return 55 + (birth_year - 1947) * 2 / 12
    if birth_year < 1965:
        return 56
    if birth_year < 1970:
        return 56 + (birth_year - 1964) * 2 / 12
    return 57


def check_retirement_eligibility(age: float, service_years: float, birth_year: int) -> Dict:
    """
    Determine the FERS retirement type available at an age and service total.

    Returns:
        Dictionary with 'eligible', 'eligibility_type' (MRA_30, AGE_60_20,
        AGE_62_5, MRA_10 or None), 'mra' and a 'message'
    """
    mra = minimum_retirement_age(birth_year)

    if age >= mra and service_years >= 30:
        return {
            'eligible': True,
            'eligibility_type': 'MRA_30',
            'mra': mra,
            'message': f"Eligible for immediate, unreduced retirement at MRA ({mra:g}) with 30+ years",
        }

    if age >= 60 and service_years >= 20:
        return {
            'eligible': True,
            'eligibility_type': 'AGE_60_20',
            'mra': mra,
            'message': "Eligible for immediate, unreduced retirement at age 60 with 20+ years",
        }

    if age >= 62 and service_years >= 5:
        return {
            'eligible': True,
            'eligibility_type': 'AGE_62_5',
            'mra': mra,
            'message': "Eligible for immediate, unreduced retirement at age 62 with 5+ years",
        }

    if age >= mra and service_years >= 10:
        return {
            'eligible': True,
            'eligibility_type': 'MRA_10',
            'mra': mra,
            'message': (f"Eligible for early retirement at MRA ({mra:g}) with 10+ years "
                        "(5% annual reduction applies if taken before age 62)"),
        }

    return {
        'eligible': False,
        'eligibility_type': None,
        'mra': mra,
        'message': _eligibility_guidance(age, service_years, mra),
    }


def _eligibility_guidance(age: float, service_years: float, mra: float) -> str:
    if service_years < 5:
        return f"Need at least 5 years of FERS service. Currently have {service_years:.1f} years."

    if age < mra:
        years_to_mra = mra - age
        if service_years >= 30:
            return f"Can retire without reduction in {years_to_mra:.1f} years at MRA {mra:g}"
        if service_years >= 10:
            return (f"Can retire with reduction in {years_to_mra:.1f} years at MRA {mra:g}, "
                    "or continue to age 60/62 for unreduced benefits")
        return (f"Need {10 - service_years:.1f} more years of service to be eligible "
                f"for early retirement at MRA {mra:g}")

    return f"Need {min(10 - service_years, 30 - service_years):.1f} more years of service for retirement eligibility"


def is_immediate_unreduced(age_at_retirement: float, service_years: float, birth_year: int) -> bool:
    """Whether a retirement qualifies for the annuity supplement (MRA+30 or 60+20)"""
    eligibility = check_retirement_eligibility(age_at_retirement, service_years, birth_year)
    return eligibility['eligibility_type'] in ('MRA_30', 'AGE_60_20')


def service_from_dates(hire_date: date, retirement_date: date, birth_date: date) -> Dict:
    """Convenience: creditable years and eligibility for a simple hire-to-retirement career"""
    service = calculate_creditable_service([simple_service_period(hire_date, retirement_date)])
    age = age_on(birth_date, retirement_date)
    return {
        'creditable_service': service,
        'eligibility': check_retirement_eligibility(age, service.total_creditable_years, birth_date.year),
    }
