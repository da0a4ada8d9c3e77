"""Payout entry points used by the API.

Everything that reads or changes a provider's balance runs under that
provider's lock, so the balance check and the payout insert of one request
cannot interleave with another's. Across workers the unique ledger slot on
each payout rejects the loser of such a race with ConcurrentUpdateError.
"""

from protean.utils.globals import current_domain

from marketplace.payout.bank_account import AddBankAccount, BankAccount, SetPrimaryBankAccount
from marketplace.payout.payout import Payout
from marketplace.payout.requests import ProcessPayout, RequestPayout
from marketplace.payout.summary import PayoutSummary, get_payout_summary
from marketplace.utils.locks import locked, provider_key


def payout_summary(provider_id) -> PayoutSummary:
    with locked(provider_key(provider_id)):
        return get_payout_summary(provider_id)


def request_payout(provider_id, amount, bank_account_id=None, notes=None) -> Payout:
    with locked(provider_key(provider_id)):
        payout_id = current_domain.process(
            RequestPayout(
                provider_id=provider_id,
                amount=amount,
                bank_account_id=bank_account_id,
                notes=notes,
            ),
            asynchronous=False,
        )
    return current_domain.repository_for(Payout).get(payout_id)


def process_payout(payout_id, approve, rejection_reason=None, external_reference=None) -> Payout:
    payout = current_domain.repository_for(Payout).get(payout_id)
    with locked(provider_key(payout.provider_id)):
        current_domain.process(
            ProcessPayout(
                payout_id=payout_id,
                approve=approve,
                rejection_reason=rejection_reason,
                external_reference=external_reference,
            ),
            asynchronous=False,
        )
    return current_domain.repository_for(Payout).get(payout_id)


def payout_history(provider_id) -> list[Payout]:
    return current_domain.repository_for(Payout).for_provider(provider_id)


def add_bank_account(provider_id, bank_name, account_number, account_holder, make_primary=False) -> BankAccount:
    with locked(provider_key(provider_id)):
        account_id = current_domain.process(
            AddBankAccount(
                provider_id=provider_id,
                bank_name=bank_name,
                account_number=account_number,
                account_holder=account_holder,
                make_primary=make_primary,
            ),
            asynchronous=False,
        )
    return current_domain.repository_for(BankAccount).get(account_id)


def set_primary_bank_account(provider_id, bank_account_id) -> None:
    with locked(provider_key(provider_id)):
        current_domain.process(
            SetPrimaryBankAccount(provider_id=provider_id, bank_account_id=bank_account_id),
            asynchronous=False,
        )


def bank_accounts(provider_id) -> list[BankAccount]:
    return current_domain.repository_for(BankAccount).for_provider(provider_id)
