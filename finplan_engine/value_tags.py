"""Value type tagging — classify every statement column by accounting category.

Each column in a model DataFrame belongs to one ValueType (what it IS) and
one nature: "flow" (summed over a year) or "stock" (year-end balance).
Exporters use the tags to pick number formats and annual roll-ups without
knowing line names.

Primary lookup: the known-column table below.
Fallback: any other column is an operating-expense category (templates
name their own opex lines).

Usage:
    from finplan_engine.value_tags import tag_dataframe, ValueType

    df = tag_dataframe(pd.DataFrame(model.income_statement.columns()))
    # df.attrs["col_tags"]   = {"revenue": ValueType.REVENUE, ...}
    # df.attrs["col_nature"] = {"revenue": "flow", ...}
"""

from __future__ import annotations

from enum import Enum


class ValueType(str, Enum):
    """Accounting category for a computed value."""
    REVENUE      = "revenue"
    EXPENSE      = "expense"       # COGS and opex categories
    DEPRECIATION = "depreciation"
    INTEREST     = "interest"
    TAX          = "tax"
    PROFIT       = "profit"        # gross profit, operating income, net income
    ASSET        = "asset"
    LIABILITY    = "liability"
    EQUITY       = "equity"
    CF_OPS       = "cf_ops"
    CF_INVEST    = "cf_invest"
    CF_FINANCE   = "cf_finance"
    CF_NET       = "cf_net"
    OTHER        = "other"


# ── Known columns ───────────────────────────────────────────────
# column → (ValueType, nature)

_COLUMN_TAGS: dict[str, tuple[ValueType, str]] = {
    # Income statement
    "revenue":                  (ValueType.REVENUE,      "flow"),
    "cost_of_goods_sold":       (ValueType.EXPENSE,      "flow"),
    "gross_profit":             (ValueType.PROFIT,       "flow"),
    "depreciation":             (ValueType.DEPRECIATION, "flow"),
    "total_operating_expenses": (ValueType.EXPENSE,      "flow"),
    "operating_income":         (ValueType.PROFIT,       "flow"),
    "term_interest":            (ValueType.INTEREST,     "flow"),
    "revolver_interest":        (ValueType.INTEREST,     "flow"),
    "interest_expense":         (ValueType.INTEREST,     "flow"),
    "pretax_income":            (ValueType.PROFIT,       "flow"),
    "taxes":                    (ValueType.TAX,          "flow"),
    "loss_carryforward":        (ValueType.TAX,          "stock"),
    "net_income":               (ValueType.PROFIT,       "flow"),
    # Cash flow
    "change_in_working_capital": (ValueType.CF_OPS,      "flow"),
    "operating_cash_flow":      (ValueType.CF_OPS,       "flow"),
    "capital_expenditure":      (ValueType.CF_INVEST,    "flow"),
    "investing_cash_flow":      (ValueType.CF_INVEST,    "flow"),
    "new_debt":                 (ValueType.CF_FINANCE,   "flow"),
    "principal_repayments":     (ValueType.CF_FINANCE,   "flow"),
    "financing_cash_flow":      (ValueType.CF_FINANCE,   "flow"),
    "net_cash_flow":            (ValueType.CF_NET,       "flow"),
    "beginning_cash":           (ValueType.ASSET,        "stock"),
    "ending_cash":              (ValueType.ASSET,        "stock"),
    "interest_paid":            (ValueType.INTEREST,     "flow"),
    # Balance sheet
    "cash":                     (ValueType.ASSET,        "stock"),
    "accounts_receivable":      (ValueType.ASSET,        "stock"),
    "inventory":                (ValueType.ASSET,        "stock"),
    "fixed_assets":             (ValueType.ASSET,        "stock"),
    "accumulated_depreciation": (ValueType.ASSET,        "stock"),
    "total_assets":             (ValueType.ASSET,        "stock"),
    "accounts_payable":         (ValueType.LIABILITY,    "stock"),
    "debt":                     (ValueType.LIABILITY,    "stock"),
    "revolver":                 (ValueType.LIABILITY,    "stock"),
    "total_liabilities":        (ValueType.LIABILITY,    "stock"),
    "common_stock":             (ValueType.EQUITY,       "stock"),
    "retained_earnings":        (ValueType.EQUITY,       "stock"),
    "total_equity":             (ValueType.EQUITY,       "stock"),
    # Schedules
    "beginning":                (ValueType.OTHER,        "stock"),
    "ending":                   (ValueType.OTHER,        "stock"),
    "additions":                (ValueType.CF_INVEST,    "flow"),
    "gross_fixed_assets":       (ValueType.ASSET,        "stock"),
    "interest":                 (ValueType.INTEREST,     "flow"),
    "principal":                (ValueType.CF_FINANCE,   "flow"),
    "payment":                  (ValueType.CF_FINANCE,   "flow"),
    "draws":                    (ValueType.CF_FINANCE,   "flow"),
    "repayments":               (ValueType.CF_FINANCE,   "flow"),
    "net_working_capital":      (ValueType.ASSET,        "stock"),
}


def tag_column(col_name: str) -> tuple[ValueType, str]:
    """Classify a column: known table first, opex-category fallback second."""
    tag = _COLUMN_TAGS.get(col_name)
    if tag is not None:
        return tag
    return ValueType.EXPENSE, "flow"


def tag_dataframe(df: "pd.DataFrame") -> "pd.DataFrame":
    """Attach value type tags and natures to a DataFrame's attrs.

    Non-destructive: returns the same DataFrame with attrs populated.
    Sets:
        df.attrs["col_tags"]   = {col: ValueType, ...}
        df.attrs["col_nature"] = {col: "flow" | "stock", ...}
    """
    tags = {col: tag_column(col) for col in df.columns}
    df.attrs["col_tags"] = {col: vtype for col, (vtype, _) in tags.items()}
    df.attrs["col_nature"] = {col: nature for col, (_, nature) in tags.items()}
    return df


def annual_frame(df: "pd.DataFrame") -> "pd.DataFrame":
    """Roll a tagged monthly frame up to model years.

    Flow columns are summed; stock columns take the year-end value.
    """
    import pandas as pd
    from finplan_engine.periods import annual_closing, annual_totals

    nature = df.attrs.get("col_nature") or {c: tag_column(c)[1] for c in df.columns}
    cols = {
        col: (annual_closing(df[col].tolist()) if nature.get(col) == "stock"
              else annual_totals(df[col].tolist()))
        for col in df.columns
    }
    out = pd.DataFrame(cols)
    out.index = pd.Index([f"Y{i + 1}" for i in range(len(out))], name="year")
    return tag_dataframe(out)
