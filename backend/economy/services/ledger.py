from functools import partial
from typing import Dict, Mapping, Optional

from flask import current_app

from economy.errors import InsufficientResource, InvalidInput, NotFound
from economy.models import ResourceBalance
from economy.resources import ResourceType, is_valid_amount
from .transactions import Step, TransactionCoordinator, balance_key


class ResourceLedger:
    """Per-(realm, player) resource balances with validated debit/credit."""

    def __init__(self, session, coordinator: TransactionCoordinator):
        self.session = session
        self.coordinator = coordinator
        coordinator.register('balance', self._load_locked)

    def _load_locked(self, realm_id, user_id):
        return (ResourceBalance.query
                .filter_by(realm_id=realm_id, user_id=user_id)
                .populate_existing()
                .with_for_update()
                .first())

    def find(self, realm_id, user_id) -> Optional[ResourceBalance]:
        return ResourceBalance.query.filter_by(realm_id=realm_id, user_id=user_id).first()

    def get(self, realm_id, user_id) -> ResourceBalance:
        balance = self.find(realm_id, user_id)
        if balance is None:
            raise NotFound(f"User {user_id} has no resources in realm {realm_id}",
                           realm_id=realm_id, user_id=user_id)
        return balance

    def open_account(self, realm_id, user_id, **amounts) -> ResourceBalance:
        if self.find(realm_id, user_id) is not None:
            raise InvalidInput(f"User {user_id} already has resources in realm {realm_id}")
        balance = ResourceBalance(realm_id=realm_id, user_id=user_id)
        for resource in ResourceType:
            value = amounts.pop(resource.value, 0)
            if not is_valid_amount(value) or value < 0:
                raise InvalidInput(f"Opening {resource.value} must be a non-negative number",
                                   field=resource.value)
            balance.set_amount(resource, value)
        if amounts:
            raise InvalidInput(f"Unknown resource(s): {', '.join(sorted(amounts))}")
        self.session.add(balance)
        self.session.commit()
        return balance

    @staticmethod
    def normalize_deltas(deltas: Mapping) -> Dict[ResourceType, float]:
        """Parse resource keys and truncate non-currency amounts toward zero."""
        normalized: Dict[ResourceType, float] = {}
        for key, amount in deltas.items():
            resource = ResourceType.parse(key)
            if not is_valid_amount(amount):
                raise InvalidInput(f"Delta for {resource.value} must be a number", field=resource.value)
            normalized[resource] = normalized.get(resource, 0) + resource.normalize(amount)
        return normalized

    def apply_to(self, balance: ResourceBalance, deltas: Mapping, party=None) -> None:
        """Apply deltas to a locked balance, or raise without touching it.

        Every resulting field is checked before any field is written.
        """
        normalized = self.normalize_deltas(deltas)
        results = {}
        for resource, delta in normalized.items():
            available = balance.amount_of(resource)
            result = resource.normalize(available + delta)
            if result < 0:
                raise InsufficientResource(resource, required=-delta, available=available, party=party)
            results[resource] = result
        for resource, delta in normalized.items():
            if delta:
                balance.set_amount(resource, results[resource])

    def delta_step(self, realm_id, user_id, deltas: Mapping, party=None) -> Step:
        return Step(balance_key(realm_id, user_id), partial(self.apply_to, deltas=deltas, party=party))

    def apply_delta(self, realm_id, user_id, deltas: Mapping) -> ResourceBalance:
        # Validate key/amount shape before taking any lock
        normalized = self.normalize_deltas(deltas)
        records = self.coordinator.commit([self.delta_step(realm_id, user_id, deltas)])
        shown = {r.value: v for r, v in normalized.items()}
        current_app.logger.info(f"[ledger-delta] realm={realm_id} user={user_id} deltas={shown}")
        return records[balance_key(realm_id, user_id)]
