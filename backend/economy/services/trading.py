"""Standing trade offers between players of one realm.

An offer promises ``giving_amount`` of one resource in exchange for
``receiving_amount`` of another, up to ``max_uses`` times. The creator's
balance is checked against the full ``giving_amount * max_uses`` when the
offer is posted but nothing is escrowed, so a later accept can still fail
because the creator has since spent the resource.

Offer lifecycle::

    Active(n) --accept--> Active(n - 1) ... --accept--> Inactive (n == 0)
    Active | Inactive --retract (creator)--> deleted
"""

from typing import Iterator, Mapping, Optional

from flask import current_app

from economy.errors import (
    InsufficientResource,
    InvalidInput,
    NotFound,
    OfferExhausted,
    OfferInactive,
    Unauthorized,
)
from economy.models import TradeOffer
from economy.resources import MAX_AMOUNT, ResourceType, as_whole_number, is_valid_amount
from .ledger import ResourceLedger
from .membership import RealmMembership
from .transactions import Step, TransactionCoordinator, offer_key


def _parse_side(side: Mapping, label: str):
    """Read a ``{'resource': ..., 'amount': ...}`` leg of an offer."""
    if not isinstance(side, Mapping):
        raise InvalidInput(f"{label} must be an object with resource and amount", field=label)
    resource = ResourceType.parse(side.get('resource'))
    amount = side.get('amount')
    if not is_valid_amount(amount) or amount <= 0:
        raise InvalidInput(f"{label} amount must be a positive number", field=f"{label}_amount")
    return resource, float(amount)


def ensure_usable(offer: TradeOffer) -> None:
    if (offer.uses_remaining or 0) <= 0:
        raise OfferExhausted("This trade offer has no uses remaining", offer_id=offer.id)
    if not offer.is_active:
        raise OfferInactive("This trade offer is no longer active", offer_id=offer.id)


class TradeOfferBook:

    def __init__(self, session, ledger: ResourceLedger, coordinator: TransactionCoordinator,
                 membership: Optional[RealmMembership] = None):
        self.session = session
        self.ledger = ledger
        self.coordinator = coordinator
        self.membership = membership or RealmMembership()
        coordinator.register('offer', self._load_locked)

    def _load_locked(self, offer_id):
        return TradeOffer.query.filter_by(id=offer_id).populate_existing().with_for_update().first()

    def get(self, offer_id) -> TradeOffer:
        offer = self.session.get(TradeOffer, offer_id)
        if offer is None:
            raise NotFound("Trade offer not found", offer_id=offer_id)
        return offer

    def create(self, creator_id, realm_id, giving: Mapping, receiving: Mapping, max_uses) -> TradeOffer:
        giving_type, giving_amount = _parse_side(giving, 'giving')
        receiving_type, receiving_amount = _parse_side(receiving, 'receiving')
        if giving_type is receiving_type:
            raise InvalidInput("Cannot offer and request the same resource", resource=giving_type.value)
        uses = as_whole_number(max_uses)
        if uses is None or not 1 <= uses <= MAX_AMOUNT:
            raise InvalidInput(f"max_uses must be an integer between 1 and {MAX_AMOUNT}", field='max_uses')

        self.membership.get_realm(realm_id)
        if not self.membership.is_member(creator_id, realm_id):
            raise Unauthorized("You must be a member of this realm to create trade offers",
                               realm_id=realm_id)

        balance = self.ledger.get(realm_id, creator_id)
        total_needed = giving_amount * uses
        available = balance.amount_of(giving_type)
        if available < total_needed:
            raise InsufficientResource(giving_type, required=total_needed, available=available)

        offer = TradeOffer(
            creator_id=creator_id,
            realm_id=realm_id,
            giving_resource=giving_type.value,
            giving_amount=giving_amount,
            receiving_resource=receiving_type.value,
            receiving_amount=receiving_amount,
            max_uses=uses,
            uses_remaining=uses,
            is_active=True,
        )
        self.session.add(offer)
        self.session.commit()
        current_app.logger.info(
            f"[trade-create] offer={offer.id} realm={realm_id} creator={creator_id} "
            f"{giving_amount:g} {giving_type.value} for {receiving_amount:g} {receiving_type.value} x{uses}"
        )
        return offer

    def list_active(self, realm_id) -> Iterator[TradeOffer]:
        """Yield the realm's usable offers, newest first.

        Each call runs a fresh query, so iterating again picks up offers
        created or consumed since the last pass.
        """
        query = (TradeOffer.query
                 .filter(TradeOffer.realm_id == realm_id,
                         TradeOffer.is_active.is_(True),
                         TradeOffer.uses_remaining > 0)
                 .order_by(TradeOffer.created_at.desc(), TradeOffer.id.desc()))
        for offer in query:
            yield offer

    def accept(self, offer_id, acceptor_id) -> TradeOffer:
        offer = self.get(offer_id)
        ensure_usable(offer)
        if offer.creator_id == acceptor_id:
            raise InvalidInput("You cannot accept your own trade offer", offer_id=offer.id)
        if not self.membership.is_member(acceptor_id, offer.realm_id):
            raise Unauthorized("You must be a member of this realm to accept trade offers",
                               realm_id=offer.realm_id)

        realm_id, creator_id = offer.realm_id, offer.creator_id
        giving, receiving = offer.giving_type, offer.receiving_type
        giving_amount, receiving_amount = offer.giving_amount, offer.receiving_amount

        acceptor_balance = self.ledger.get(realm_id, acceptor_id)
        held = acceptor_balance.amount_of(receiving)
        if held < receiving_amount:
            raise InsufficientResource(receiving, required=receiving_amount, available=held, party='acceptor')
        creator_balance = self.ledger.get(realm_id, creator_id)
        held = creator_balance.amount_of(giving)
        if held < giving_amount:
            raise InsufficientResource(giving, required=giving_amount, available=held, party='creator')

        def consume_use(locked):
            ensure_usable(locked)
            locked.uses_remaining -= 1
            if locked.uses_remaining <= 0:
                locked.uses_remaining = 0
                locked.is_active = False

        records = self.coordinator.commit([
            Step(offer_key(offer.id), consume_use),
            self.ledger.delta_step(realm_id, acceptor_id,
                                   {receiving: -receiving_amount, giving: giving_amount},
                                   party='acceptor'),
            self.ledger.delta_step(realm_id, creator_id,
                                   {giving: -giving_amount, receiving: receiving_amount},
                                   party='creator'),
        ])
        accepted = records[offer_key(offer.id)]
        current_app.logger.info(
            f"[trade-accept] offer={accepted.id} realm={realm_id} creator={creator_id} "
            f"acceptor={acceptor_id} uses_remaining={accepted.uses_remaining}"
        )
        return accepted

    def retract(self, offer_id, caller_id) -> None:
        offer = self.get(offer_id)
        if offer.creator_id != caller_id:
            raise Unauthorized("You can only retract your own trade offers", offer_id=offer.id)

        def delete(locked):
            self.session.delete(locked)

        # Lock the offer so a retract never interleaves with an in-flight accept
        self.coordinator.commit([Step(offer_key(offer.id), delete)])
        current_app.logger.info(f"[trade-retract] offer={offer_id} creator={caller_id}")
