from datetime import datetime, timezone

from economy import db, bcrypt
from flask_login import UserMixin
from economy.resources import ResourceType

# City upgrade tier -> units that city adds to its owner's population cap
CITY_POPULATION_CAP = {1: 2, 2: 3, 3: 7, 4: 10, 5: 15}

DEFAULT_UNIT_TIER = 2
MAX_UNIT_TIER = 5


def _utcnow():
    return datetime.now(timezone.utc)


class User(UserMixin, db.Model):
    __tablename__ = 'user'
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(256), nullable=False)

    def set_password(self, password):
        self.password_hash = bcrypt.generate_password_hash(password).decode('utf-8')

    def check_password(self, password):
        return bcrypt.check_password_hash(self.password_hash, password)

    def to_dict(self):
        return {
            'id': self.id,
            'username': self.username,
        }


class Realm(db.Model):
    __tablename__ = 'realm'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    members = db.relationship('RealmMember', backref='realm', lazy='dynamic')

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'owner_id': self.owner_id}


class RealmMember(db.Model):
    __tablename__ = 'realm_member'
    __table_args__ = (db.UniqueConstraint('realm_id', 'user_id', name='uq_realm_member'),)
    id = db.Column(db.Integer, primary_key=True)
    realm_id = db.Column(db.Integer, db.ForeignKey('realm.id'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)


# Explicit per-type accessors and mutators, keyed by ResourceType
_BALANCE_FIELDS = {
    ResourceType.CURRENCY: (lambda b: b.currency, lambda b, v: setattr(b, 'currency', v)),
    ResourceType.WOOD: (lambda b: b.wood, lambda b, v: setattr(b, 'wood', v)),
    ResourceType.STONE: (lambda b: b.stone, lambda b, v: setattr(b, 'stone', v)),
    ResourceType.METAL: (lambda b: b.metal, lambda b, v: setattr(b, 'metal', v)),
    ResourceType.FOOD: (lambda b: b.food, lambda b, v: setattr(b, 'food', v)),
    ResourceType.LIVESTOCK: (lambda b: b.livestock, lambda b, v: setattr(b, 'livestock', v)),
}


class ResourceBalance(db.Model):
    __tablename__ = 'resource_balance'
    __table_args__ = (
        db.UniqueConstraint('realm_id', 'user_id', name='uq_resource_balance_realm_user'),
        db.CheckConstraint('currency >= 0', name='ck_balance_currency'),
        db.CheckConstraint('wood >= 0', name='ck_balance_wood'),
        db.CheckConstraint('stone >= 0', name='ck_balance_stone'),
        db.CheckConstraint('metal >= 0', name='ck_balance_metal'),
        db.CheckConstraint('food >= 0', name='ck_balance_food'),
        db.CheckConstraint('livestock >= 0', name='ck_balance_livestock'),
    )
    id = db.Column(db.Integer, primary_key=True)
    realm_id = db.Column(db.Integer, db.ForeignKey('realm.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    currency = db.Column(db.Float, nullable=False, default=0.0)
    wood = db.Column(db.Integer, nullable=False, default=0)
    stone = db.Column(db.Integer, nullable=False, default=0)
    metal = db.Column(db.Integer, nullable=False, default=0)
    food = db.Column(db.Integer, nullable=False, default=0)
    livestock = db.Column(db.Integer, nullable=False, default=0)

    def amount_of(self, resource: ResourceType):
        getter, _ = _BALANCE_FIELDS[resource]
        return getter(self) or 0

    def set_amount(self, resource: ResourceType, value) -> None:
        _, setter = _BALANCE_FIELDS[resource]
        setter(self, resource.normalize(value))

    def snapshot(self):
        return {r: self.amount_of(r) for r in ResourceType}

    def to_dict(self):
        payload = {'realm_id': self.realm_id, 'user_id': self.user_id}
        payload.update({r.value: self.amount_of(r) for r in ResourceType})
        return payload


class TradeOffer(db.Model):
    __tablename__ = 'trade_offer'
    __table_args__ = (
        db.CheckConstraint('giving_amount > 0', name='ck_offer_giving_amount'),
        db.CheckConstraint('receiving_amount > 0', name='ck_offer_receiving_amount'),
        db.CheckConstraint('max_uses >= 1', name='ck_offer_max_uses'),
        db.CheckConstraint('uses_remaining >= 0 AND uses_remaining <= max_uses', name='ck_offer_uses_remaining'),
    )
    id = db.Column(db.Integer, primary_key=True)
    creator_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    realm_id = db.Column(db.Integer, db.ForeignKey('realm.id'), nullable=False, index=True)
    giving_resource = db.Column(db.String(16), nullable=False)
    giving_amount = db.Column(db.Float, nullable=False)
    receiving_resource = db.Column(db.String(16), nullable=False)
    receiving_amount = db.Column(db.Float, nullable=False)
    max_uses = db.Column(db.Integer, nullable=False, default=1)
    uses_remaining = db.Column(db.Integer, nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    creator = db.relationship('User')

    @property
    def giving_type(self) -> ResourceType:
        return ResourceType(self.giving_resource)

    @property
    def receiving_type(self) -> ResourceType:
        return ResourceType(self.receiving_resource)

    @property
    def is_usable(self) -> bool:
        return bool(self.is_active) and (self.uses_remaining or 0) > 0

    def to_dict(self):
        return {
            'id': self.id,
            'creator_id': self.creator_id,
            'creator': self.creator.to_dict() if self.creator else None,
            'realm_id': self.realm_id,
            'giving_resource': self.giving_resource,
            'giving_amount': self.giving_amount,
            'receiving_resource': self.receiving_resource,
            'receiving_amount': self.receiving_amount,
            'max_uses': self.max_uses,
            'uses_remaining': self.uses_remaining,
            'is_active': self.is_active,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class Army(db.Model):
    __tablename__ = 'army'
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    realm_id = db.Column(db.Integer, db.ForeignKey('realm.id'), nullable=True, index=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    units = db.relationship('ArmyUnit', back_populates='army', order_by='ArmyUnit.id')

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'realm_id': self.realm_id,
            'owner_id': self.owner_id,
            'units': [u.to_dict() for u in self.units],
        }


class ArmyUnit(db.Model):
    __tablename__ = 'army_unit'
    __table_args__ = (
        db.CheckConstraint('tier >= 2 AND tier <= 5', name='ck_unit_tier'),
        db.CheckConstraint('quantity >= 1', name='ck_unit_quantity'),
    )
    id = db.Column(db.Integer, primary_key=True)
    army_id = db.Column(db.Integer, db.ForeignKey('army.id'), nullable=False, index=True)
    unit_type = db.Column(db.String(32), nullable=False)
    tier = db.Column(db.Integer, nullable=False, default=DEFAULT_UNIT_TIER)
    quantity = db.Column(db.Integer, nullable=False, default=1)
    army = db.relationship('Army', back_populates='units')

    def to_dict(self):
        return {
            'id': self.id,
            'army_id': self.army_id,
            'unit_type': self.unit_type,
            'tier': self.tier,
            'quantity': self.quantity,
        }


class City(db.Model):
    __tablename__ = 'city'
    __table_args__ = (
        db.CheckConstraint('upgrade_tier >= 1 AND upgrade_tier <= 5', name='ck_city_tier'),
    )
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(64), nullable=False)
    realm_id = db.Column(db.Integer, db.ForeignKey('realm.id'), nullable=False, index=True)
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    upgrade_tier = db.Column(db.Integer, nullable=False, default=1)

    @property
    def population_cap(self) -> int:
        return CITY_POPULATION_CAP.get(self.upgrade_tier, 0)

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'realm_id': self.realm_id,
            'owner_id': self.owner_id,
            'upgrade_tier': self.upgrade_tier,
            'population_cap': self.population_cap,
        }
