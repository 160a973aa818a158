"""
Billing service layer.

Services:
    SubscriptionOrchestrator: Create/confirm/cancel subscriptions against Stripe
    SubscriptionReconciler: Apply Stripe subscription state to local rows
    PaymentTransactionRecorder: Record charge attempts and their outcomes
    EarningsService: Creator earnings ledger and balances
    PaymentMethodService: Stripe customers and SetupIntents
"""

from billing.services.earnings import (
    EarningResult,
    EarningsService,
    EarningsSummary,
    RecordEarningParams,
)
from billing.services.orchestrator import (
    CreateSubscriptionParams,
    SubscriptionCreationResult,
    SubscriptionOrchestrator,
)
from billing.services.payment_methods import PaymentMethodService
from billing.services.reconciler import ReconcileResult, SubscriptionReconciler
from billing.services.transactions import PaymentTransactionRecorder, RecordResult

__all__ = [
    "CreateSubscriptionParams",
    "EarningResult",
    "EarningsService",
    "EarningsSummary",
    "PaymentMethodService",
    "PaymentTransactionRecorder",
    "RecordEarningParams",
    "RecordResult",
    "ReconcileResult",
    "SubscriptionCreationResult",
    "SubscriptionOrchestrator",
    "SubscriptionReconciler",
]
