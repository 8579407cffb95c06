"""
Simplified federal and state income tax model with progressive brackets.
Brackets and standard deductions are the 2024 federal figures for the two supported filing statuses.
"""
from typing import Dict, List, Tuple

SINGLE = "SINGLE"
MARRIED_FILING_JOINTLY = "MARRIED_FILING_JOINTLY"

# (rate, min, max) per bracket
FEDERAL_BRACKETS: Dict[str, List[Tuple[float, float, float]]] = {
    SINGLE: [
        (0.10, 0, 11_600),
        (0.12, 11_600, 47_150),
        (0.22, 47_150, 100_525),
        (0.24, 100_525, 191_950),
        (0.32, 191_950, 243_725),
        (0.35, 243_725, 609_350),
        (0.37, 609_350, float('inf')),
    ],
    MARRIED_FILING_JOINTLY: [
        (0.10, 0, 23_200),
        (0.12, 23_200, 94_300),
        (0.22, 94_300, 201_050),
        (0.24, 201_050, 383_900),
        (0.32, 383_900, 487_450),
        (0.35, 487_450, 731_200),
        (0.37, 731_200, float('inf')),
    ],
}

STANDARD_DEDUCTIONS = {
    SINGLE: 14_600,
    MARRIED_FILING_JOINTLY: 29_200,
}

# Additional standard deduction at 65+
AGE_65_ADDITIONAL_DEDUCTION = 1_850


def is_supported_filing_status(filing_status: str) -> bool:
    """Whether a filing status has its own bracket table"""
    return filing_status in FEDERAL_BRACKETS


def brackets_for(filing_status: str) -> List[Tuple[float, float, float]]:
    """
    Bracket table for a filing status.

    Statuses other than SINGLE and MARRIED_FILING_JOINTLY (e.g. HEAD_OF_HOUSEHOLD)
    are taxed with the SINGLE table. Callers report the fallback once per run.
    """
    return FEDERAL_BRACKETS.get(filing_status, FEDERAL_BRACKETS[SINGLE])


def standard_deduction_for(filing_status: str) -> float:
    """Standard deduction for a filing status (SINGLE amount for unsupported statuses)"""
    return STANDARD_DEDUCTIONS.get(filing_status, STANDARD_DEDUCTIONS[SINGLE])


def federal_tax(taxable_income: float,
                filing_status: str,
                standard_deduction: float,
                is_over_65: bool = False) -> float:
    """
    Calculate federal income tax using progressive brackets.

    Args:
        taxable_income: Gross taxable income before the standard deduction (>= 0)
        filing_status: SINGLE or MARRIED_FILING_JOINTLY; anything else uses SINGLE
        standard_deduction: Standard deduction amount
        is_over_65: Adds the age-65 additional deduction

    Returns:
        Total federal tax owed. NaN input yields NaN.
    """
    deduction = standard_deduction + (AGE_65_ADDITIONAL_DEDUCTION if is_over_65 else 0)
    adjusted_income = taxable_income - deduction
    if adjusted_income < 0:
        adjusted_income = 0.0

    tax = 0.0
    for rate, bracket_min, bracket_max in brackets_for(filing_status):
        if adjusted_income > bracket_min:
            tax += (min(adjusted_income, bracket_max) - bracket_min) * rate
    # NaN compares false everywhere above; keep it visible to the caller
    if adjusted_income != adjusted_income:
        return adjusted_income
    return tax


def state_tax(taxable_income: float, state_tax_rate: float) -> float:
    """Flat state tax on taxable income"""
    if taxable_income <= 0:
        return 0.0
    return taxable_income * state_tax_rate


def effective_tax_rate(total_tax: float, gross_income: float) -> float:
    """
    Calculate effective tax rate.

    Returns:
        total_tax / gross_income, or 0 when there is no income
    """
    if gross_income <= 0:
        return 0.0
    return total_tax / gross_income


def marginal_tax_rate(taxable_income: float,
                      filing_status: str,
                      standard_deduction: float,
                      is_over_65: bool = False) -> float:
    """
    Calculate marginal federal rate at given income level.

    Returns:
        Rate applied to the next dollar of income
    """
    deduction = standard_deduction + (AGE_65_ADDITIONAL_DEDUCTION if is_over_65 else 0)
    adjusted_income = max(0.0, taxable_income - deduction)

    if adjusted_income <= 0:
        return 0.0

    current_rate = 0.0
    for rate, bracket_min, _ in brackets_for(filing_status):
        if adjusted_income >= bracket_min:
            current_rate = rate
        else:
            break

    return current_rate
