"""
IO utilities for converting scenario records and exporting engine results.
Handles dict conversion of scenarios and CSV/JSON exports of projections and simulations.
"""
import json
from dataclasses import asdict
from datetime import date
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from deterministic import ProjectionResults, YearProjection
from scenario import (
    Expenses, FederalService, OtherIncome, PersonalInfo, ScenarioFormatError,
    ScenarioInput, SocialSecurity, TaxInfo, TSPAccount, WithdrawalStrategy
)
from simulation import AggregateResult

_REQUIRED_SECTIONS = ('personal_info', 'federal_service', 'social_security', 'tsp', 'expenses')


def _parse_date(value: Any, field_name: str) -> date:
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except (TypeError, ValueError) as e:
        raise ScenarioFormatError(f"Invalid date for {field_name}: {value!r}") from e


def _build(cls, section: Dict[str, Any], section_name: str):
    try:
        return cls(**section)
    except TypeError as e:
        raise ScenarioFormatError(f"Invalid {section_name} section: {e}") from e


def scenario_to_dict(scenario: ScenarioInput) -> Dict[str, Any]:
    """
    Convert a ScenarioInput to a JSON-friendly dictionary.

    Dates become ISO strings; sections keep their field names.
    """
    scenario_dict = asdict(scenario)
    for key in ('birth_date', 'hire_date', 'planned_retirement_date'):
        scenario_dict['personal_info'][key] = scenario_dict['personal_info'][key].isoformat()
    if scenario_dict['valuation_date'] is not None:
        scenario_dict['valuation_date'] = scenario_dict['valuation_date'].isoformat()
    return scenario_dict


def scenario_from_dict(scenario_dict: Dict[str, Any]) -> ScenarioInput:
    """
    Convert a nested dictionary to a ScenarioInput.

    Args:
        scenario_dict: Dictionary in the scenario_to_dict layout

    Returns:
        ScenarioInput

    Raises:
        ScenarioFormatError: missing sections, unknown fields or bad dates
    """
    missing = [s for s in _REQUIRED_SECTIONS if s not in scenario_dict]
    if missing:
        raise ScenarioFormatError(f"Missing required sections: {', '.join(missing)}")

    info = dict(scenario_dict['personal_info'])
    for key in ('birth_date', 'hire_date', 'planned_retirement_date'):
        if key not in info:
            raise ScenarioFormatError(f"Missing required field: personal_info.{key}")
        info[key] = _parse_date(info[key], key)

    tsp = dict(scenario_dict['tsp'])
    strategy = tsp.pop('withdrawal_strategy', None) or {}
    tsp['withdrawal_strategy'] = _build(WithdrawalStrategy, strategy, 'withdrawal_strategy')

    valuation_date = scenario_dict.get('valuation_date')

    return ScenarioInput(
        personal_info=_build(PersonalInfo, info, 'personal_info'),
        federal_service=_build(FederalService, scenario_dict['federal_service'], 'federal_service'),
        social_security=_build(SocialSecurity, scenario_dict['social_security'], 'social_security'),
        tsp=_build(TSPAccount, tsp, 'tsp'),
        expenses=_build(Expenses, scenario_dict['expenses'], 'expenses'),
        taxes=_build(TaxInfo, scenario_dict.get('taxes') or {}, 'taxes'),
        other_income=[_build(OtherIncome, entry, 'other_income')
                      for entry in scenario_dict.get('other_income') or []],
        valuation_date=_parse_date(valuation_date, 'valuation_date') if valuation_date else None,
    )


def create_scenario_json(scenario: ScenarioInput) -> str:
    """Serialize a scenario to a JSON string"""
    return json.dumps(scenario_to_dict(scenario), indent=2)


def parse_scenario_json(json_string: str) -> ScenarioInput:
    """Parse a JSON string produced by create_scenario_json"""
    try:
        scenario_dict = json.loads(json_string)
    except json.JSONDecodeError as e:
        raise ScenarioFormatError(f"Invalid JSON: {e}") from e
    return scenario_from_dict(scenario_dict)


def _projection_row(p: YearProjection) -> Dict[str, Any]:
    return {
        'year': p.year,
        'age': p.age,
        'pension': p.income.pension,
        'social_security': p.income.social_security,
        'tsp_withdrawal': p.income.tsp_withdrawal,
        'annuity_supplement': p.income.annuity_supplement,
        'other_income': p.income.other_income,
        'gross_income': p.income.total,
        'federal_tax': p.taxes.federal,
        'state_tax': p.taxes.state,
        'effective_tax_rate': p.taxes.effective_rate,
        'total_tax': p.taxes.total,
        'net_income': p.net_income,
        'expenses': p.expenses,
        'surplus': p.surplus,
        'tsp_balance': p.tsp_balance,
        'cumulative_net_income': p.cumulative_net_income,
    }


def projections_to_dataframe(projections: List[YearProjection]) -> pd.DataFrame:
    """Flatten year projections into one row per year"""
    return pd.DataFrame([_projection_row(p) for p in projections])


def export_projections_csv(results: ProjectionResults) -> str:
    """
    Export the year-by-year projection table to CSV string.

    Returns:
        CSV string
    """
    return projections_to_dataframe(results.projections).to_csv(index=False)


def percentile_bands_to_dataframe(result: AggregateResult) -> pd.DataFrame:
    """One row per age, one p<N> column per percentile band"""
    data = {'age': result.ages}
    for band in result.percentile_bands:
        data[f'p{band.percentile}'] = band.values
    return pd.DataFrame(data)


def export_percentile_bands_csv(result: AggregateResult) -> str:
    """
    Export portfolio percentile bands to CSV string.

    Returns:
        CSV string
    """
    return percentile_bands_to_dataframe(result).to_csv(index=False)


def _to_builtin(value: Any) -> Any:
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return value.tolist()
    return value


def create_summary_report(scenario: ScenarioInput,
                          projection: Optional[ProjectionResults] = None,
                          simulation: Optional[AggregateResult] = None) -> Dict[str, Any]:
    """
    Create a summary report of a scenario's results.

    Args:
        scenario: Scenario the results were computed for
        projection: Deterministic projection, if run
        simulation: Monte Carlo aggregate, if run

    Returns:
        Dictionary with summary information
    """
    report: Dict[str, Any] = {
        'scenario_info': {
            'retirement_age': scenario.retirement_age,
            'retirement_year': scenario.retirement_year,
            'creditable_years': scenario.federal_service.total_creditable_years,
            'high_three_salary': scenario.federal_service.high_three_salary,
            'tsp_balance': scenario.tsp.current_balance,
            'withdrawal_strategy': scenario.tsp.withdrawal_strategy.type,
            'filing_status': scenario.taxes.filing_status,
        },
    }

    if projection is not None:
        report['deterministic_summary'] = asdict(projection.summary)

    if simulation is not None:
        shortfall = simulation.shortfall_analysis
        report['monte_carlo'] = {
            'total_iterations': simulation.total_iterations,
            'success_rate': simulation.success_rate,
            'shortfall_analysis': {k: _to_builtin(v) for k, v in asdict(shortfall).items()},
            'final_balance_stats': {k: _to_builtin(v) for k, v in simulation.final_balance_stats.items()},
            'median_portfolio_values': _to_builtin(simulation.median_portfolio_values),
        }

    return report


def export_summary_report_json(report: Dict[str, Any]) -> str:
    """
    Export summary report as JSON string.
    """
    return json.dumps(report, indent=2, default=str)


def format_currency(value: float, precision: int = 0) -> str:
    """
    Format currency values for display.

    Args:
        value: Numeric value to format
        precision: Number of decimal places

    Returns:
        Formatted string like $1.2M, $45K or $900
    """
    sign = "-" if value < 0 else ""
    magnitude = abs(value)
    if magnitude >= 1_000_000:
        return f"{sign}${magnitude/1_000_000:.{precision}f}M"
    if magnitude >= 1_000:
        return f"{sign}${magnitude/1_000:.{precision}f}K"
    return f"{sign}${magnitude:.{precision}f}"
