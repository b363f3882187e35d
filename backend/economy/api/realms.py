from flask import Blueprint, jsonify
from flask_login import login_required, current_user

from economy.errors import Unauthorized
from economy.services import build_services


realms = Blueprint('realms', __name__)


def _member_services(realm_id):
    services = build_services()
    services.membership.get_realm(realm_id)
    if not services.membership.is_member(current_user.id, realm_id):
        raise Unauthorized('You are not a member of this realm', realm_id=realm_id)
    return services


@realms.route('/<int:realm_id>/resources', methods=['GET'])
@login_required
def get_resources(realm_id):
    services = _member_services(realm_id)
    balance = services.ledger.get(realm_id, current_user.id)
    return jsonify({'resources': balance.to_dict()})


@realms.route('/<int:realm_id>/population', methods=['GET'])
@login_required
def get_population(realm_id):
    progression = _member_services(realm_id).progression
    cap = progression.population_cap(realm_id, current_user.id)
    units = progression.unit_count(realm_id, current_user.id)
    return jsonify({
        'population_cap': cap,
        'unit_count': units,
        'remaining': max(0, cap - units),
        'at_cap': units >= cap,
    })
