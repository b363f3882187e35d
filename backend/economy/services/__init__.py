"""Economy domain services: ledger, trade offers and unit progression.

This package holds the transactional game economy and is imported by the
HTTP blueprints and the CLI, keeping transport concerns separate from the
rules. Services receive their collaborators explicitly; ``build_services``
wires them for the current app.
"""

from typing import NamedTuple

from flask import current_app

from economy import db
from .ledger import ResourceLedger
from .membership import RealmMembership
from .progression import UnitProgression, resolve_upgrade_curve
from .trading import TradeOfferBook
from .transactions import TransactionCoordinator


class Services(NamedTuple):
    coordinator: TransactionCoordinator
    ledger: ResourceLedger
    membership: RealmMembership
    trades: TradeOfferBook
    progression: UnitProgression


def build_services(app=None, upgrade_curve=None) -> Services:
    app = app or current_app
    cfg = app.config
    coordinator = TransactionCoordinator(
        db.session,
        app.extensions['record_locks'],
        lock_timeout=float(cfg.get('LOCK_TIMEOUT_SEC', 5)),
    )
    ledger = ResourceLedger(db.session, coordinator)
    membership = RealmMembership()
    curve = upgrade_curve or resolve_upgrade_curve(
        cfg.get('UNIT_UPGRADE_COST_CURVE', 'flat'),
        base_cost=float(cfg.get('UNIT_UPGRADE_BASE_COST', 20)),
    )
    return Services(
        coordinator=coordinator,
        ledger=ledger,
        membership=membership,
        trades=TradeOfferBook(db.session, ledger, coordinator, membership),
        progression=UnitProgression(db.session, ledger, coordinator, upgrade_curve=curve),
    )
