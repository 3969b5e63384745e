"""Shared fixtures: an in-memory store seeded with one bank account."""
import pytest

from bankfeeds.models import BankAccount
from bankfeeds.store.memory import InMemoryStore

from tests.factories import make_transaction


@pytest.fixture()
def store():
    return InMemoryStore()


@pytest.fixture()
def account_id(store):
    return store.upsert_account(BankAccount(
        id=None,
        external_account_id='acc-checking',
        institution_name='First Platypus Bank',
        account_name='Plaid Checking',
        account_type='depository',
    ))


@pytest.fixture()
def add_transaction(store, account_id):
    """Insert a transaction and return its id"""
    def _add(**kwargs):
        return store.insert_transaction(make_transaction(account_id, **kwargs))
    return _add
