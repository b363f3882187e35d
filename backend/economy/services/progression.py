"""Unit recruitment and tier upgrades.

The cost tables and curves here are pure functions; ``UnitProgression``
combines them with the ledger so that paying for units and receiving them
happen in one transaction.
"""

from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable, Dict

from flask import current_app
from sqlalchemy import func

from economy.errors import CapacityExceeded, InvalidInput, NotFound, Unauthorized
from economy.models import Army, ArmyUnit, City, DEFAULT_UNIT_TIER, MAX_UNIT_TIER
from economy.resources import ResourceType, as_whole_number
from .ledger import ResourceLedger
from .transactions import Step, TransactionCoordinator, army_key, balance_key, unit_key


class UnitType(str, Enum):
    MILITIA_AT_ARMS = 'Militia-At-Arms'
    PIKE_MEN = 'Pike Men'
    SWORDSMEN = 'Swordsmen'
    MATCHLOCKS = 'Matchlocks'
    FLINTLOCKS = 'Flintlocks'
    LIGHT_CAVALRY = 'Light Calvary'
    DRAGOONS = 'Dragoons'
    HEAVY_CAVALRY = 'Heavy Calvary'
    BANNER_GUARD = 'Banner Guard'
    LIGHT_ARTILLERY = 'Light Artilery'
    MEDIUM_ARTILLERY = 'Medium Artilery'
    HEAVY_ARTILLERY = 'Heavy Artilery'

    @classmethod
    def parse(cls, value):
        """Accept the display value ('Pike Men') or the member name ('pike_men')."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value)
            except ValueError:
                member = cls.__members__.get(value.strip().upper().replace(' ', '_').replace('-', '_'))
                if member is not None:
                    return member
        raise InvalidInput(f"Unknown unit type: {value!r}", field='unit_type')


_COST_COLUMNS = (
    ResourceType.CURRENCY, ResourceType.WOOD, ResourceType.STONE,
    ResourceType.METAL, ResourceType.FOOD, ResourceType.LIVESTOCK,
)

# Per-unit recruit price: currency, wood, stone, metal, food, livestock
_RECRUIT_PRICES = {
    UnitType.MILITIA_AT_ARMS: (50, 3, 3, 0, 0, 0),
    UnitType.PIKE_MEN: (100, 8, 2, 0, 0, 0),
    UnitType.SWORDSMEN: (150, 3, 0, 6, 0, 0),
    UnitType.MATCHLOCKS: (100, 4, 0, 4, 0, 0),
    UnitType.FLINTLOCKS: (150, 4, 2, 6, 0, 0),
    UnitType.LIGHT_CAVALRY: (150, 3, 0, 6, 0, 4),
    UnitType.DRAGOONS: (150, 4, 2, 6, 0, 4),
    UnitType.HEAVY_CAVALRY: (300, 3, 0, 10, 0, 4),
    UnitType.BANNER_GUARD: (500, 3, 0, 12, 0, 4),
    UnitType.LIGHT_ARTILLERY: (150, 10, 5, 5, 0, 0),
    UnitType.MEDIUM_ARTILLERY: (300, 10, 5, 8, 0, 1),
    UnitType.HEAVY_ARTILLERY: (500, 10, 5, 12, 0, 2),
}

RECRUIT_COSTS: Dict[UnitType, Dict[ResourceType, int]] = {
    unit: dict(zip(_COST_COLUMNS, prices)) for unit, prices in _RECRUIT_PRICES.items()
}


def require_quantity(quantity) -> int:
    whole = as_whole_number(quantity)
    if whole is None or whole < 1:
        raise InvalidInput(f"Quantity must be a positive integer, got {quantity!r}", field='quantity')
    return whole


def recruit_cost(unit_type, quantity) -> Dict[ResourceType, int]:
    unit_type = UnitType.parse(unit_type)
    quantity = require_quantity(quantity)
    return {resource: amount * quantity for resource, amount in RECRUIT_COSTS[unit_type].items()}


def check_population_cap(current_unit_count: int, cap: int, quantity: int) -> None:
    if current_unit_count + quantity > cap:
        raise CapacityExceeded(
            f"Population cap reached: {current_unit_count} of {cap} units fielded, "
            f"cannot add {quantity} more",
            current=current_unit_count, cap=cap, requested=quantity,
            remaining=max(0, cap - current_unit_count),
        )


def _check_target_tier(next_tier) -> int:
    tier = as_whole_number(next_tier)
    if tier is None or not DEFAULT_UNIT_TIER <= tier <= MAX_UNIT_TIER:
        raise InvalidInput(f"Upgrade target tier must be between {DEFAULT_UNIT_TIER} and {MAX_UNIT_TIER}",
                           tier=next_tier)
    return tier


def flat_upgrade_cost(next_tier, base_cost=20.0) -> float:
    """Same price for every tier step."""
    _check_target_tier(next_tier)
    return float(base_cost)


def tiered_upgrade_cost(next_tier, base_cost=20.0) -> float:
    """Doubles per tier: base cost buys tier 3, tier 5 costs four times that."""
    tier = _check_target_tier(next_tier)
    return float(base_cost) * 2 ** (tier - 3)


UPGRADE_COST_CURVES = {
    'flat': flat_upgrade_cost,
    'tiered': tiered_upgrade_cost,
}


def resolve_upgrade_curve(curve, base_cost=20.0) -> Callable[[int], float]:
    """Turn a curve name or a callable into a ``next_tier -> cost`` function."""
    if callable(curve):
        return curve
    try:
        return partial(UPGRADE_COST_CURVES[curve], base_cost=base_cost)
    except KeyError:
        raise ValueError(f"Unknown upgrade cost curve {curve!r}; "
                         f"expected one of {sorted(UPGRADE_COST_CURVES)}") from None


@dataclass
class RecruitResult:
    unit: ArmyUnit
    cost: Dict[ResourceType, int]


@dataclass
class UpgradeResult:
    unit: ArmyUnit
    previous_tier: int
    new_tier: int
    cost: float


class UnitProgression:

    def __init__(self, session, ledger: ResourceLedger, coordinator: TransactionCoordinator,
                 upgrade_curve=None):
        self.session = session
        self.ledger = ledger
        self.coordinator = coordinator
        self.upgrade_curve = resolve_upgrade_curve(upgrade_curve or 'flat')
        coordinator.register('army', self._load_army_locked)
        coordinator.register('unit', self._load_unit_locked)

    def _load_army_locked(self, army_id):
        return Army.query.filter_by(id=army_id).populate_existing().with_for_update().first()

    def _load_unit_locked(self, unit_id):
        return ArmyUnit.query.filter_by(id=unit_id).populate_existing().with_for_update().first()

    def upgrade_cost(self, next_tier) -> float:
        tier = _check_target_tier(next_tier)
        return float(self.upgrade_curve(tier))

    def population_cap(self, realm_id, owner_id) -> int:
        cities = City.query.filter_by(realm_id=realm_id, owner_id=owner_id).all()
        return sum(city.population_cap for city in cities)

    def unit_count(self, realm_id, owner_id) -> int:
        total = (self.session.query(func.coalesce(func.sum(ArmyUnit.quantity), 0))
                 .join(Army, ArmyUnit.army_id == Army.id)
                 .filter(Army.realm_id == realm_id, Army.owner_id == owner_id)
                 .scalar())
        return int(total or 0)

    def owned_army(self, owner_id, army_id) -> Army:
        army = self.session.get(Army, army_id)
        if army is None:
            raise NotFound(f"Army {army_id} not found", army_id=army_id)
        if army.owner_id != owner_id:
            raise Unauthorized("You do not command this army", army_id=army_id)
        if army.realm_id is None:
            raise InvalidInput("Army is not in a realm", army_id=army_id)
        return army

    def recruit(self, owner_id, army_id, unit_type, quantity) -> RecruitResult:
        unit_type = UnitType.parse(unit_type)
        quantity = require_quantity(quantity)
        army = self.owned_army(owner_id, army_id)
        realm_id = army.realm_id
        cost = recruit_cost(unit_type, quantity)

        cap = self.population_cap(realm_id, owner_id)
        check_population_cap(self.unit_count(realm_id, owner_id), cap, quantity)

        created = []

        def enforce_cap(_balance):
            # Every recruit by this owner holds the owner's balance lock, so the
            # count cannot change between this check and the commit.
            check_population_cap(self.unit_count(realm_id, owner_id), cap, quantity)

        def add_units(locked_army):
            unit = ArmyUnit(army_id=locked_army.id, unit_type=unit_type.value,
                            tier=DEFAULT_UNIT_TIER, quantity=quantity)
            self.session.add(unit)
            created.append(unit)

        debit = {resource: -amount for resource, amount in cost.items() if amount}
        self.coordinator.commit([
            Step(balance_key(realm_id, owner_id), enforce_cap),
            self.ledger.delta_step(realm_id, owner_id, debit),
            Step(army_key(army.id), add_units),
        ])
        unit = created[0]
        current_app.logger.info(
            f"[recruit] realm={realm_id} owner={owner_id} army={army.id} unit={unit.id} "
            f"type={unit_type.value} quantity={quantity}"
        )
        return RecruitResult(unit=unit, cost=cost)

    def upgrade(self, owner_id, army_id, unit_id) -> UpgradeResult:
        army = self.owned_army(owner_id, army_id)
        unit = ArmyUnit.query.filter_by(id=unit_id, army_id=army.id).first()
        if unit is None:
            raise NotFound(f"Unit {unit_id} not found", unit_id=unit_id)
        if (unit.tier or DEFAULT_UNIT_TIER) >= MAX_UNIT_TIER:
            raise CapacityExceeded(f"Unit is already at maximum tier ({MAX_UNIT_TIER})",
                                   unit_id=unit.id, tier=unit.tier)
        realm_id = army.realm_id
        plan = {}

        def advance_tier(locked_unit):
            current = locked_unit.tier or DEFAULT_UNIT_TIER
            if current >= MAX_UNIT_TIER:
                raise CapacityExceeded(f"Unit is already at maximum tier ({MAX_UNIT_TIER})",
                                       unit_id=locked_unit.id, tier=current)
            plan['previous_tier'] = current
            plan['new_tier'] = current + 1
            plan['cost'] = self.upgrade_cost(current + 1)
            locked_unit.tier = current + 1

        def pay(balance):
            self.ledger.apply_to(balance, {ResourceType.CURRENCY: -plan['cost']})

        records = self.coordinator.commit([
            Step(unit_key(unit.id), advance_tier),
            Step(balance_key(realm_id, owner_id), pay),
        ])
        current_app.logger.info(
            f"[upgrade] realm={realm_id} owner={owner_id} unit={unit.id} "
            f"tier {plan['previous_tier']} -> {plan['new_tier']} cost={plan['cost']:g}"
        )
        return UpgradeResult(unit=records[unit_key(unit.id)], **plan)
