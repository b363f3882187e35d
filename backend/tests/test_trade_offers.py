import pytest

from economy import db
from economy.errors import (
    InsufficientResource,
    InvalidInput,
    NotFound,
    OfferExhausted,
    OfferInactive,
    Unauthorized,
)
from economy.models import ResourceBalance, TradeOffer
from economy.resources import ResourceType


def _offer(services, world, giving=('wood', 10), receiving=('currency', 5), max_uses=2, creator=None):
    return services.trades.create(
        creator or world.alice,
        world.realm_id,
        {'resource': giving[0], 'amount': giving[1]},
        {'resource': receiving[0], 'amount': receiving[1]},
        max_uses,
    )


def _balance(world, user_id):
    db.session.expire_all()
    return ResourceBalance.query.filter_by(realm_id=world.realm_id, user_id=user_id).one()


def _totals(world, *user_ids):
    balances = [_balance(world, uid) for uid in user_ids]
    return {r: sum(b.amount_of(r) for b in balances) for r in ResourceType}


class TestCreate:

    def test_create_starts_active_with_all_uses(self, services, world):
        offer = _offer(services, world, max_uses=3)
        assert offer.is_active is True
        assert offer.uses_remaining == 3
        assert offer.giving_type is ResourceType.WOOD
        assert offer.receiving_type is ResourceType.CURRENCY

    def test_create_does_not_escrow(self, services, world):
        _offer(services, world, giving=('wood', 50), max_uses=2)
        assert _balance(world, world.alice).wood == 100

    def test_create_checks_amount_times_uses(self, services, world):
        with pytest.raises(InsufficientResource) as excinfo:
            _offer(services, world, giving=('wood', 34), max_uses=3)
        assert excinfo.value.required == 102
        assert excinfo.value.available == 100
        assert TradeOffer.query.count() == 0

    @pytest.mark.parametrize('giving,receiving,max_uses', [
        (('wood', 10), ('wood', 5), 1),
        (('wood', 0), ('currency', 5), 1),
        (('wood', 10), ('currency', -1), 1),
        (('wood', 10), ('currency', 5), 0),
        (('wood', 10), ('currency', 5), 1.5),
        (('wood', 10), ('currency', 5), None),
        (('gold', 10), ('currency', 5), 1),
        (('wood', '10'), ('currency', 5), 1),
        (('wood', 10**400), ('currency', 5), 1),
        (('wood', 10), ('currency', 10**400), 1),
        (('wood', 10), ('currency', 1e300), 1),
        (('wood', 1), ('currency', 5), 10**400),
        (('wood', 1), ('currency', 5), 2**31),
    ])
    def test_create_rejects_invalid_input(self, services, world, giving, receiving, max_uses):
        with pytest.raises(InvalidInput):
            _offer(services, world, giving=giving, receiving=receiving, max_uses=max_uses)
        assert TradeOffer.query.count() == 0

    def test_create_accepts_integral_float_uses(self, services, world):
        assert _offer(services, world, max_uses=2.0).max_uses == 2

    def test_create_at_the_use_bound_checks_the_balance(self, services, world):
        with pytest.raises(InsufficientResource):
            _offer(services, world, giving=('wood', 1), max_uses=2**31 - 1)

    def test_create_requires_membership(self, services, world):
        with pytest.raises(Unauthorized):
            _offer(services, world, creator=world.carol)

    def test_create_in_missing_realm(self, services, world):
        with pytest.raises(NotFound):
            services.trades.create(world.alice, 777, {'resource': 'wood', 'amount': 1},
                                   {'resource': 'food', 'amount': 1}, 1)


class TestList:

    def test_lists_usable_offers_newest_first(self, services, world):
        first = _offer(services, world, max_uses=1)
        second = _offer(services, world, giving=('stone', 5), max_uses=1)
        third = _offer(services, world, giving=('metal', 5), max_uses=1)
        services.trades.accept(second.id, world.bob)

        ids = [o.id for o in services.trades.list_active(world.realm_id)]
        assert ids == [third.id, first.id]

    def test_listing_is_restartable(self, services, world):
        _offer(services, world)
        assert len(list(services.trades.list_active(world.realm_id))) == 1
        _offer(services, world, giving=('stone', 1))
        assert len(list(services.trades.list_active(world.realm_id))) == 2

    def test_other_realms_are_not_listed(self, services, world):
        _offer(services, world)
        assert list(services.trades.list_active(world.realm_id + 1)) == []


class TestAccept:

    def test_scenario_two_uses(self, services, world):
        offer = _offer(services, world, giving=('wood', 10), receiving=('currency', 5), max_uses=2)

        accepted = services.trades.accept(offer.id, world.bob)
        assert accepted.uses_remaining == 1
        assert accepted.is_active is True
        bob = _balance(world, world.bob)
        alice = _balance(world, world.alice)
        assert (bob.currency, bob.wood) == (45, 10)
        assert (alice.currency, alice.wood) == (1005, 90)

        accepted = services.trades.accept(offer.id, world.dave)
        assert accepted.uses_remaining == 0
        assert accepted.is_active is False
        with pytest.raises(OfferExhausted):
            services.trades.accept(offer.id, world.bob)

    def test_exhausted_offer_leaves_listing(self, services, world):
        offer = _offer(services, world, max_uses=1)
        services.trades.accept(offer.id, world.bob)
        offer = db.session.get(TradeOffer, offer.id)
        assert (offer.uses_remaining, offer.is_active) == (0, False)
        assert list(services.trades.list_active(world.realm_id)) == []

    def test_accept_conserves_every_resource(self, services, world):
        offers = [
            _offer(services, world, giving=('wood', 10), receiving=('currency', 5), max_uses=3),
            _offer(services, world, giving=('stone', 3), receiving=('currency', 2.5), max_uses=3),
            _offer(services, world, giving=('currency', 7.25), receiving=('wood', 2), max_uses=3),
        ]
        before = _totals(world, world.alice, world.bob)
        services.trades.accept(offers[0].id, world.bob)
        services.trades.accept(offers[1].id, world.bob)
        services.trades.accept(offers[2].id, world.bob)
        services.trades.accept(offers[0].id, world.bob)
        assert _totals(world, world.alice, world.bob) == before
        for user_id in (world.alice, world.bob):
            assert all(v >= 0 for v in _balance(world, user_id).snapshot().values())

    def test_fractional_goods_are_truncated_on_both_sides(self, services, world):
        offer = _offer(services, world, giving=('wood', 2.5), receiving=('currency', 1), max_uses=1)
        services.trades.accept(offer.id, world.bob)
        assert _balance(world, world.bob).wood == 2
        assert _balance(world, world.alice).wood == 98

    def test_cannot_accept_own_offer(self, services, world):
        offer = _offer(services, world)
        with pytest.raises(InvalidInput):
            services.trades.accept(offer.id, world.alice)

    def test_non_member_cannot_accept(self, services, world):
        offer = _offer(services, world)
        with pytest.raises(Unauthorized):
            services.trades.accept(offer.id, world.carol)

    def test_missing_offer(self, services, world):
        with pytest.raises(NotFound):
            services.trades.accept(404, world.bob)

    def test_inactive_offer(self, services, world):
        offer = _offer(services, world)
        offer.is_active = False
        db.session.commit()
        with pytest.raises(OfferInactive):
            services.trades.accept(offer.id, world.bob)

    def test_acceptor_short_of_payment(self, services, world):
        offer = _offer(services, world, receiving=('currency', 60))
        with pytest.raises(InsufficientResource) as excinfo:
            services.trades.accept(offer.id, world.bob)
        err = excinfo.value
        assert err.party == 'acceptor'
        assert (err.required, err.available, err.shortfall) == (60, 50, 10)
        assert db.session.get(TradeOffer, offer.id).uses_remaining == 2

    def test_creator_spent_goods_after_posting(self, services, world):
        offer = _offer(services, world, giving=('wood', 40), max_uses=2)
        services.ledger.apply_delta(world.realm_id, world.alice, {'wood': -70})

        with pytest.raises(InsufficientResource) as excinfo:
            services.trades.accept(offer.id, world.bob)
        assert excinfo.value.party == 'creator'
        assert 'Creator' in excinfo.value.message
        db.session.expire_all()
        assert db.session.get(TradeOffer, offer.id).uses_remaining == 2
        assert _balance(world, world.bob).currency == 50

    def test_validation_order_reports_exhaustion_before_self_accept(self, services, world):
        offer = _offer(services, world, max_uses=1)
        services.trades.accept(offer.id, world.bob)
        with pytest.raises(OfferExhausted):
            services.trades.accept(offer.id, world.alice)


class TestRetract:

    def test_creator_retracts(self, services, world):
        offer = _offer(services, world)
        offer_id = offer.id
        before = _balance(world, world.alice).to_dict()
        services.trades.retract(offer_id, world.alice)
        db.session.expire_all()
        assert db.session.get(TradeOffer, offer_id) is None
        assert _balance(world, world.alice).to_dict() == before
        with pytest.raises(NotFound):
            services.trades.accept(offer_id, world.bob)

    def test_creator_can_retract_exhausted_offer(self, services, world):
        offer = _offer(services, world, max_uses=1)
        offer_id = offer.id
        services.trades.accept(offer_id, world.bob)
        services.trades.retract(offer_id, world.alice)
        assert db.session.get(TradeOffer, offer_id) is None

    def test_only_creator_may_retract(self, services, world):
        offer = _offer(services, world)
        with pytest.raises(Unauthorized):
            services.trades.retract(offer.id, world.bob)
        assert db.session.get(TradeOffer, offer.id) is not None

    def test_retract_missing_offer(self, services, world):
        offer = _offer(services, world)
        offer_id = offer.id
        services.trades.retract(offer_id, world.alice)
        with pytest.raises(NotFound):
            services.trades.retract(offer_id, world.alice)
