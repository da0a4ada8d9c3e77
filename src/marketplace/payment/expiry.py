"""Stale transaction sweep.

Transactions whose callback never arrived stay ``initiated``. Run
periodically (cron, K8s CronJob) through the maintenance endpoint; marks
those older than the threshold as failed. Re-running it is harmless.
"""

import json
from datetime import timedelta

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import DateTime, Integer, Text
from protean.utils.globals import current_domain

from marketplace.domain import marketplace
from marketplace.payment.transaction import FailureReason, Transaction
from marketplace.shared.ledger import utc_now

logger = structlog.get_logger(__name__)

DEFAULT_TTL_MINUTES = 15


@marketplace.command(part_of="Transaction")
class ExpireStaleTransactions:
    older_than_minutes = Integer(default=DEFAULT_TTL_MINUTES, min_value=1)
    as_of = DateTime()  # Optional: defaults to now
    transaction_ids = Text()  # JSON list; when set, only these are considered


def stale_cutoff(older_than_minutes=None, as_of=None):
    return (as_of or utc_now()) - timedelta(minutes=older_than_minutes or DEFAULT_TTL_MINUTES)


@marketplace.command_handler(part_of=Transaction)
class ExpireStaleTransactionsHandler:
    @handle(ExpireStaleTransactions)
    def expire_stale_transactions(self, command):
        cutoff = stale_cutoff(command.older_than_minutes, command.as_of)
        repo = current_domain.repository_for(Transaction)

        expired = 0
        for transaction in self._candidates(repo, command.transaction_ids):
            if not transaction.is_stale(cutoff):
                continue
            transaction.fail(FailureReason.EXPIRED)
            repo.add(transaction)
            expired += 1
            logger.warning(
                "Stale transaction expired",
                transaction_id=str(transaction.id),
                created_at=transaction.created_at.isoformat(),
            )

        logger.info("Stale transaction sweep finished", cutoff=cutoff.isoformat(), expired=expired)
        return expired

    @staticmethod
    def _candidates(repo, transaction_ids):
        if not transaction_ids:
            return repo.initiated()
        candidates = []
        for transaction_id in json.loads(transaction_ids):
            try:
                candidates.append(repo.get(transaction_id))
            except ObjectNotFoundError:
                continue
        return candidates
