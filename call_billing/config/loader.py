"""
Billing plan configuration.

Loads per-account billing plans from a YAML file.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict

import yaml

logger = logging.getLogger(__name__)

PLAN_KEYS = {
    'included_minutes',
    'overage_rate',
    'monthly_charge',
    'price_per_minute',
    'billing_reset_day'
}


@dataclass(frozen=True)
class BillingPlan:
    """Billing terms for one account."""
    included_minutes: int = 0
    overage_rate: float = 0.0
    monthly_charge: float = 0.0
    price_per_minute: float = 0.0
    billing_reset_day: int = 1

    def __post_init__(self):
        """Validate plan values."""
        if self.included_minutes < 0:
            raise ValueError("included_minutes cannot be negative")
        if self.overage_rate < 0:
            raise ValueError("overage_rate cannot be negative")
        if self.monthly_charge < 0:
            raise ValueError("monthly_charge cannot be negative")
        if self.price_per_minute < 0:
            raise ValueError("price_per_minute cannot be negative")
        if not 1 <= self.billing_reset_day <= 31:
            raise ValueError("billing_reset_day must be between 1 and 31")


@dataclass(frozen=True)
class PlanConfig:
    """Default plan plus per-account overrides."""
    defaults: BillingPlan
    accounts: Dict[str, BillingPlan]

    def get_plan(self, account_id: str) -> BillingPlan:
        """Get the plan for an account, using defaults if not specified."""
        return self.accounts.get(account_id, self.defaults)


def load_plan_config(path: str) -> PlanConfig:
    """Load and validate billing plans from a YAML file.

    Expected layout::

        defaults:
          included_minutes: 500
          overage_rate: 0.15
        accounts:
          acme:
            included_minutes: 2000
            billing_reset_day: 15

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated PlanConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Plan config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if not raw_config:
        raise ValueError("Configuration file is empty")
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'defaults', 'accounts'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    if 'defaults' not in raw_config:
        raise ValueError("Missing required 'defaults' section")

    defaults_data = raw_config['defaults']
    if not isinstance(defaults_data, dict):
        raise ValueError("'defaults' must be a dictionary")

    defaults = _parse_plan(defaults_data, "defaults")

    accounts_data = raw_config.get('accounts') or {}
    if not isinstance(accounts_data, dict):
        raise ValueError("'accounts' must be a dictionary")

    accounts = {}
    for account_id, plan_data in accounts_data.items():
        if not isinstance(plan_data, dict):
            raise ValueError(f"Account '{account_id}' must be a dictionary")
        # Account plans inherit any value they leave out from defaults
        merged = {**_plan_to_dict(defaults), **plan_data}
        accounts[str(account_id)] = _parse_plan(merged, f"accounts.{account_id}")

    logger.debug("Loaded %d account plan(s) from %s", len(accounts), path)
    return PlanConfig(defaults=defaults, accounts=accounts)


def _parse_plan(data: Dict[str, Any], path: str) -> BillingPlan:
    """Parse and validate a single billing plan.

    Args:
        data: Plan configuration data
        path: Path for error messages

    Returns:
        Validated BillingPlan

    Raises:
        ValueError: If configuration is invalid
    """
    unknown_keys = set(data.keys()) - PLAN_KEYS
    if unknown_keys:
        raise ValueError(f"Unknown keys in {path}: {unknown_keys}")

    for key in ('overage_rate', 'monthly_charge', 'price_per_minute'):
        value = data.get(key, 0)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise ValueError(f"'{key}' in {path} must be a number >= 0")

    included = data.get('included_minutes', 0)
    if isinstance(included, bool) or not isinstance(included, int) or included < 0:
        raise ValueError(f"'included_minutes' in {path} must be an integer >= 0")

    reset_day = data.get('billing_reset_day', 1)
    if isinstance(reset_day, bool) or not isinstance(reset_day, int) or not 1 <= reset_day <= 31:
        raise ValueError(f"'billing_reset_day' in {path} must be an integer between 1 and 31")

    return BillingPlan(
        included_minutes=included,
        overage_rate=float(data.get('overage_rate', 0)),
        monthly_charge=float(data.get('monthly_charge', 0)),
        price_per_minute=float(data.get('price_per_minute', 0)),
        billing_reset_day=reset_day
    )


def _plan_to_dict(plan: BillingPlan) -> Dict[str, Any]:
    return {key: getattr(plan, key) for key in PLAN_KEYS}
