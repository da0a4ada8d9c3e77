"""Schema helpers for relational providers.

The memory provider needs no schema. For sqlite/postgresql the repositories
have to be touched once so their SQLAlchemy models get registered on the
provider's metadata before ``create_all`` runs.
"""

from protean.domain import Domain
from sqlalchemy import create_engine

RELATIONAL_PROVIDERS = ("sqlite", "postgresql")


def _relational_providers(domain: Domain):
    for _, provider in domain.providers.items():
        if provider.conn_info["provider"] in RELATIONAL_PROVIDERS:
            yield provider


def _register_models(domain: Domain, provider) -> None:
    records = list(domain.registry.aggregates.items()) + list(domain.registry.entities.items())
    for _, record in records:
        if record.cls.meta_.provider == provider.name:
            domain.repository_for(record.cls)._dao  # noqa: B018


def setup_db(domain: Domain) -> None:
    """Create tables for every relational provider."""
    with domain.domain_context():
        for provider in _relational_providers(domain):
            _register_models(domain, provider)
            engine = create_engine(provider.conn_info["database_uri"])
            provider._metadata.create_all(engine)


def drop_db(domain: Domain) -> None:
    with domain.domain_context():
        for provider in _relational_providers(domain):
            engine = create_engine(provider.conn_info["database_uri"])
            provider._metadata.drop_all(engine)
