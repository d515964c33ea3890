"""
Ledger analytics and reconciliation engine.

Month bucketing, carry-forward, health scoring, integrity checks,
insights and smart defaults. Each component reads a window of the
record store; only carry-forward and scoring write back.
"""

from expense_os.engine.bucketing import (
    add_months,
    bucket_end,
    month_key,
    month_range,
    previous_bucket,
)
from expense_os.engine.carry_forward import CarryForwardEngine, apply_carry_forward
from expense_os.engine.insights import InsightsGenerator, generate_insights
from expense_os.engine.integrity import DataIntegrityChecker, run_monthly_health_check
from expense_os.engine.scoring import (
    FinancialHealthScorer,
    score_month,
    upsert_financial_score,
)
from expense_os.engine.smart_defaults import SmartDefaultsSuggester, suggest_defaults

__all__ = [
    "add_months",
    "bucket_end",
    "month_key",
    "month_range",
    "previous_bucket",
    "CarryForwardEngine",
    "apply_carry_forward",
    "FinancialHealthScorer",
    "score_month",
    "upsert_financial_score",
    "DataIntegrityChecker",
    "run_monthly_health_check",
    "InsightsGenerator",
    "generate_insights",
    "SmartDefaultsSuggester",
    "suggest_defaults",
]
