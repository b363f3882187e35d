from flask import Blueprint, jsonify, request
from flask_login import login_required, current_user

from economy.errors import InvalidInput, Unauthorized
from economy.resources import MAX_AMOUNT
from economy.services import build_services
from economy.socketio_events import notify_realm


trade_offers = Blueprint('trade_offers', __name__)


def _require_realm_id(value):
    # Query strings carry digits; JSON bodies must carry a real integer
    if isinstance(value, str) and value.strip().isdigit():
        value = int(value)
    if isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= MAX_AMOUNT:
        return value
    raise InvalidInput('realm_id must be an integer', field='realm_id')


@trade_offers.route('', methods=['GET'])
@login_required
def list_trade_offers():
    realm_id = _require_realm_id(request.args.get('realm_id'))
    services = build_services()
    services.membership.get_realm(realm_id)
    if not services.membership.is_member(current_user.id, realm_id):
        raise Unauthorized('You must be a member of this realm to view its trade offers', realm_id=realm_id)
    offers = [offer.to_dict() for offer in services.trades.list_active(realm_id)]
    return jsonify({'offers': offers})


@trade_offers.route('', methods=['POST'])
@login_required
def create_trade_offer():
    data = request.get_json(silent=True) or {}
    realm_id = _require_realm_id(data.get('realm_id'))
    services = build_services()
    offer = services.trades.create(
        current_user.id,
        realm_id,
        giving={'resource': data.get('giving_resource'), 'amount': data.get('giving_amount')},
        receiving={'resource': data.get('receiving_resource'), 'amount': data.get('receiving_amount')},
        max_uses=data.get('max_uses'),
    )
    payload = offer.to_dict()
    notify_realm(realm_id, 'trade_offers_update', {'offer_id': offer.id, 'action': 'created'})
    return jsonify({'offer': payload}), 201


@trade_offers.route('/<int:offer_id>/accept', methods=['POST'])
@login_required
def accept_trade_offer(offer_id):
    services = build_services()
    offer = services.trades.accept(offer_id, current_user.id)
    payload = offer.to_dict()
    notify_realm(offer.realm_id, 'trade_offers_update', {'offer_id': offer.id, 'action': 'accepted'})
    notify_realm(offer.realm_id, 'resources_update', {'user_ids': [offer.creator_id, current_user.id]})
    return jsonify({
        'success': True,
        'message': 'Trade completed successfully',
        'offer': payload,
    })


@trade_offers.route('/<int:offer_id>/retract', methods=['POST'])
@login_required
def retract_trade_offer(offer_id):
    services = build_services()
    realm_id = services.trades.get(offer_id).realm_id
    services.trades.retract(offer_id, current_user.id)
    notify_realm(realm_id, 'trade_offers_update', {'offer_id': offer_id, 'action': 'retracted'})
    return jsonify({'success': True, 'message': 'Trade offer retracted successfully'})
