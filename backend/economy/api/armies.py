from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from economy import db
from economy.errors import InvalidInput, Unauthorized
from economy.models import Army
from economy.resources import MAX_AMOUNT
from economy.services import build_services
from economy.socketio_events import notify_realm


armies = Blueprint('armies', __name__)


@armies.route('', methods=['GET'])
@login_required
def list_armies():
    realm_id = request.args.get('realm_id', type=int)
    query = Army.query.filter_by(owner_id=current_user.id)
    if realm_id is not None:
        query = query.filter_by(realm_id=realm_id)
    return jsonify({'armies': [army.to_dict() for army in query.order_by(Army.id).all()]})


@armies.route('', methods=['POST'])
@login_required
def create_army():
    data = request.get_json(silent=True) or {}
    name = (data.get('name') or '').strip()
    realm_id = data.get('realm_id')
    if not name:
        raise InvalidInput('Army name is required', field='name')
    if not isinstance(realm_id, int) or isinstance(realm_id, bool) or not 1 <= realm_id <= MAX_AMOUNT:
        raise InvalidInput('realm_id is required', field='realm_id')

    membership = build_services().membership
    membership.get_realm(realm_id)
    if not membership.is_member(current_user.id, realm_id):
        raise Unauthorized('You must be a member of this realm to raise an army', realm_id=realm_id)

    army = Army(name=name, realm_id=realm_id, owner_id=current_user.id)
    db.session.add(army)
    db.session.commit()
    return jsonify({'army': army.to_dict()}), 201


@armies.route('/<int:army_id>/units', methods=['POST'])
@login_required
def recruit_units(army_id):
    data = request.get_json(silent=True) or {}
    progression = build_services().progression
    result = progression.recruit(current_user.id, army_id, data.get('unit_type'), data.get('quantity'))
    realm_id = result.unit.army.realm_id
    notify_realm(realm_id, 'resources_update', {'user_ids': [current_user.id]})
    return jsonify({
        'success': True,
        'message': 'Units recruited',
        'unit': result.unit.to_dict(),
        'cost': {resource.value: amount for resource, amount in result.cost.items()},
    }), 201


@armies.route('/<int:army_id>/units/<int:unit_id>/upgrade', methods=['POST'])
@login_required
def upgrade_unit(army_id, unit_id):
    progression = build_services().progression
    result = progression.upgrade(current_user.id, army_id, unit_id)
    notify_realm(result.unit.army.realm_id, 'resources_update', {'user_ids': [current_user.id]})
    return jsonify({
        'success': True,
        'message': f"{result.unit.unit_type} has been upgraded to tier {result.new_tier}!",
        'unit': result.unit.to_dict(),
        'cost': result.cost,
    })
