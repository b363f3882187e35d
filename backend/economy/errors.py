"""Error taxonomy for ledger, trade and progression operations.

Every failure a caller can react to is an ``EconomyError``. The HTTP layer
turns them into ``{'error': message, 'code': code, ...details}`` responses, so
services raise and never build responses themselves.
"""

from flask import current_app, jsonify


class EconomyError(Exception):
    status_code = 400
    code = 'economy_error'

    def __init__(self, message, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self):
        payload = {'error': self.message, 'code': self.code}
        payload.update(self.details)
        return payload


class NotFound(EconomyError):
    status_code = 404
    code = 'not_found'


class Unauthorized(EconomyError):
    status_code = 403
    code = 'unauthorized'


class InvalidInput(EconomyError):
    code = 'invalid_input'


class InsufficientResource(EconomyError):
    code = 'insufficient_resource'

    def __init__(self, resource, required, available, party=None, message=None):
        shortfall = required - available
        if message is None:
            who = 'Creator has' if party == 'creator' else 'You have'
            message = (f"Insufficient {resource.value}. {who} {available:g} "
                       f"but {required:g} is needed (short by {shortfall:g})")
        details = {
            'resource': resource.value,
            'required': required,
            'available': available,
            'shortfall': shortfall,
        }
        if party:
            details['party'] = party
        super().__init__(message, **details)
        self.resource = resource
        self.required = required
        self.available = available
        self.shortfall = shortfall
        self.party = party


class CapacityExceeded(EconomyError):
    code = 'capacity_exceeded'


class OfferInactive(EconomyError):
    code = 'offer_inactive'


class OfferExhausted(EconomyError):
    code = 'offer_exhausted'


class LockTimeout(EconomyError):
    status_code = 503
    code = 'lock_timeout'


class TransactionAborted(EconomyError):
    status_code = 503
    code = 'transaction_aborted'


def register_error_handlers(flask_app):
    @flask_app.errorhandler(EconomyError)
    def handle_economy_error(exc):
        if exc.status_code >= 500:
            current_app.logger.warning(f"[economy-error] {exc.code}: {exc.message}")
        else:
            current_app.logger.info(f"[economy-rejected] {exc.code}: {exc.message}")
        return jsonify(exc.to_dict()), exc.status_code
