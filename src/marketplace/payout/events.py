"""Domain events for bank accounts and payouts."""

from protean.fields import Boolean, DateTime, Float, Identifier, String

from marketplace.domain import marketplace


@marketplace.event(part_of="BankAccount")
class BankAccountAdded:
    __version__ = 1

    bank_account_id = Identifier(required=True)
    provider_id = Identifier(required=True)
    is_primary = Boolean(default=False)


@marketplace.event(part_of="Payout")
class PayoutRequested:
    __version__ = 1

    payout_id = Identifier(required=True)
    provider_id = Identifier(required=True)
    bank_account_id = Identifier(required=True)
    amount = Float(required=True)
    requested_at = DateTime(required=True)


@marketplace.event(part_of="Payout")
class PayoutCompleted:
    __version__ = 1

    payout_id = Identifier(required=True)
    provider_id = Identifier(required=True)
    amount = Float(required=True)
    completed_at = DateTime(required=True)


@marketplace.event(part_of="Payout")
class PayoutRejected:
    __version__ = 1

    payout_id = Identifier(required=True)
    provider_id = Identifier(required=True)
    amount = Float(required=True)
    reason = String(required=True, max_length=500)
    rejected_at = DateTime(required=True)
