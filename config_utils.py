"""
Configuration Utilities for the FERS Retirement Engine
Engine constants, default scenario parameters and JSON engine configuration.
"""

import json
import logging
import os
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

# Projection horizon
HORIZON_YEARS = 30

# Market model (fixed, not calibrated to market data)
RETURN_VOLATILITY = 0.15
INFLATION_MEAN = 0.03
INFLATION_VOLATILITY = 0.02

# Monte Carlo defaults
DEFAULT_ITERATIONS = 10_000
PROGRESS_INTERVAL = 1_000
PERCENTILES = (10, 25, 50, 75, 90)

WORKER_MODES = ("process", "thread")

ENGINE_CONFIG_FILE = 'engine_config.json'
ENGINE_CONFIG_ENV = 'FERS_ENGINE_CONFIG'


def get_default_engine_config() -> Dict[str, Any]:
    """Get default engine run configuration"""
    return {
        'iterations': DEFAULT_ITERATIONS,
        'progress_interval': PROGRESS_INTERVAL,
        'worker_mode': 'process',
        'random_seed': None,
    }


def _config_path(path: Optional[str]) -> str:
    if path:
        return path
    return os.environ.get(ENGINE_CONFIG_ENV, ENGINE_CONFIG_FILE)


def load_engine_config(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load engine configuration, overlaying a JSON file on the defaults.

    The file location is `path`, else $FERS_ENGINE_CONFIG, else
    engine_config.json in the working directory. Unknown keys are ignored.
    A missing or unreadable file yields the defaults.
    """
    config = get_default_engine_config()
    config_path = _config_path(path)

    if not os.path.exists(config_path):
        logger.debug("Engine config %s not found, using defaults", config_path)
        return config

    try:
        with open(config_path, 'r') as f:
            overrides = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.error("Could not load engine config %s: %s", config_path, e)
        return config

    for key, value in overrides.items():
        if key in config:
            config[key] = value
        else:
            logger.warning("Ignoring unknown engine config key %r", key)

    if config['worker_mode'] not in WORKER_MODES:
        logger.warning("Unknown worker_mode %r, falling back to 'process'", config['worker_mode'])
        config['worker_mode'] = 'process'

    logger.debug("Loaded engine config from %s: %s", config_path, config)
    return config


def save_engine_config(config: Dict[str, Any], path: Optional[str] = None) -> None:
    """Save engine configuration to JSON"""
    config_path = _config_path(path)
    with open(config_path, 'w') as f:
        json.dump(config, f, indent=2)
    logger.debug("Saved engine config to %s", config_path)


def get_default_scenario_params() -> Dict[str, Any]:
    """Get a complete default scenario in the nested dictionary format"""
    return {
        'personal_info': {
            'birth_date': '1965-06-15',
            'hire_date': '1995-09-01',
            'planned_retirement_date': '2027-06-30',
        },
        'federal_service': {
            'high_three_salary': 100_000,
            'total_creditable_years': 30,
            'survivor_benefit': 'NONE',
        },
        'social_security': {
            'estimated_benefit': 2_000,
            'full_retirement_age': 67,
            'claiming_age': 67,
        },
        'tsp': {
            'current_balance': 500_000,
            'traditional_balance': 400_000,
            'roth_balance': 100_000,
            'monthly_contribution': 0,
            'growth_rate': 0.05,
            'withdrawal_strategy': {
                'type': 'LIFE_EXPECTANCY',
                'fixed_amount': None,
                'fixed_percentage': None,
                'mixed_life_expectancy_amount': None,
                'mixed_fixed_amount': None,
            },
        },
        'other_income': [],
        'expenses': {
            'monthly_amount': 5_000,
            'inflation_rate': 0.025,
        },
        'taxes': {
            'filing_status': 'MARRIED_FILING_JOINTLY',
            'state_tax_rate': 0.05,
        },
        'valuation_date': None,
    }
