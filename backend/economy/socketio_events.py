from flask_login import current_user
from flask_socketio import join_room, leave_room, emit
from economy import socketio
from economy.resources import MAX_AMOUNT
from economy.services.membership import RealmMembership


def realm_room(realm_id) -> str:
    return f"realm:{realm_id}"


def notify_realm(realm_id, event: str, payload: dict) -> None:
    """Broadcast a committed change to every client watching the realm."""
    data = {'realm_id': realm_id}
    data.update(payload)
    socketio.emit(event, data, to=realm_room(realm_id), namespace='/ws')


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_realm(data):
    realm_id = (data or {}).get('realm_id')
    if realm_id is None:
        emit('error', {'message': 'realm_id is required'})
        return
    if isinstance(realm_id, bool) or not isinstance(realm_id, int) or not 1 <= realm_id <= MAX_AMOUNT:
        emit('error', {'message': 'realm_id must be an integer'})
        return
    if not current_user.is_authenticated or not RealmMembership().is_member(current_user.id, realm_id):
        emit('error', {'message': 'You are not a member of this realm', 'realm_id': realm_id})
        return
    room = realm_room(realm_id)
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_realm(data):
    realm_id = (data or {}).get('realm_id')
    if realm_id is None:
        emit('error', {'message': 'realm_id is required'})
        return
    room = realm_room(realm_id)
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        socketio.on_event('connect', handle_connect, namespace=namespace)
        socketio.on_event('join_realm', handle_join_realm, namespace=namespace)
        socketio.on_event('leave_realm', handle_leave_realm, namespace=namespace)
        socketio.on_event('ping', handle_ping, namespace=namespace)
