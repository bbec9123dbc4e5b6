"""Shared fixtures: one registry and settings object for the whole session."""

from __future__ import annotations

import pytest

from finplan_engine.config import EngineSettings
from finplan_engine.registry import TemplateRegistry


@pytest.fixture(scope="session")
def registry() -> TemplateRegistry:
    return TemplateRegistry.load()


@pytest.fixture(scope="session")
def settings() -> EngineSettings:
    return EngineSettings.load()


@pytest.fixture
def saas_inputs() -> dict:
    return {
        "initial_mrr": 50000,
        "revenue_growth_rate": 0.05,
        "churn_rate": 0.02,
        "gross_margin": 0.8,
    }


@pytest.fixture
def leveraged_inputs(saas_inputs) -> dict:
    """SaaS with term debt, a revolver and inventory, to exercise every schedule."""
    return {
        **saas_inputs,
        "initial_debt": 200000,
        "interest_rate": 0.09,
        "debt_maturity_years": 3,
        "annual_capex": 60000,
        "days_inventory_outstanding": 20,
        "sales_marketing_budget": 0.6,
        "opening_cash": 10000,
        "minimum_cash": 25000,
        "revolver_limit": 500000,
        "revolver_rate": 0.12,
    }


# One valid answer set per template, used by the cross-template tests.
SAMPLE_INPUTS = {
    "saas": {"initial_mrr": 50000},
    "ecommerce": {"starting_customers": 1000, "new_customers_per_month": 150,
                  "price_per_customer": 60, "cogs_per_customer": 25},
    "marketplace": {"transaction_volume": 2000, "average_order_value": 80,
                    "customer_acquisition_cost": 40, "operating_expenses": 8000},
    "services": {"billable_hours": 1600, "hourly_rate": 150, "team_size": 10,
                 "average_salary": 6000, "other_expenses": 4000},
    "hardware": {"units_sold": 300, "unit_price": 400, "unit_cost": 180,
                 "manufacturing_capacity": 1000, "fixed_costs": 15000},
    "manufacturing": {"production_capacity": 10000, "unit_price": 25,
                      "variable_cost_per_unit": 12, "fixed_manufacturing_costs": 30000},
    "real_estate": {"property_value": 1_200_000, "rental_income": 12000,
                    "operating_expenses": 2500, "property_taxes": 14000,
                    "initial_debt": 800_000, "interest_rate": 0.06},
    "financial": {"assets_under_management": 20_000_000, "transaction_volume": 500_000,
                  "operating_expenses": 15000},
    "default": {"initial_revenue": 10000},
}


@pytest.fixture(params=sorted(SAMPLE_INPUTS))
def template_sample(request) -> tuple[str, dict]:
    return request.param, dict(SAMPLE_INPUTS[request.param])
