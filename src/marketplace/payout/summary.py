"""Provider revenue and available balance.

Always recomputed from order and payout history; there is no stored running
balance to drift. Earnings come from orders that are ``returned`` with their
deposit settled: each item contributes its line total less the commission
frozen at checkout.
"""

from dataclasses import dataclass

from protean.utils.globals import current_domain

from marketplace.order.order import Order
from marketplace.payout.payout import Payout, PayoutStatus
from marketplace.shared.ledger import round_money, sum_money


@dataclass(frozen=True)
class PayoutSummary:
    provider_id: str
    total_earnings: float
    pending_payouts: float
    completed_payouts: float
    available_balance: float
    settled_order_count: int


def earnings_from(orders: list[Order]) -> float:
    return sum_money(item.provider_earning for order in orders for item in order.items)


def summarize(provider_id, orders: list[Order], payouts: list[Payout]) -> PayoutSummary:
    earnings = earnings_from(orders)
    pending = sum_money(p.amount for p in payouts if p.status == PayoutStatus.PENDING.value)
    completed = sum_money(p.amount for p in payouts if p.status == PayoutStatus.COMPLETED.value)
    return PayoutSummary(
        provider_id=str(provider_id),
        total_earnings=earnings,
        pending_payouts=pending,
        completed_payouts=completed,
        available_balance=round_money(earnings - pending - completed),
        settled_order_count=len(orders),
    )


def get_payout_summary(provider_id) -> PayoutSummary:
    orders = current_domain.repository_for(Order).settled_for_provider(provider_id)
    payouts = current_domain.repository_for(Payout).for_provider(provider_id)
    return summarize(provider_id, orders, payouts)
