from economy import db
from economy.errors import NotFound
from economy.models import Realm, RealmMember


class RealmMembership:
    """Answers who belongs to a realm. The owner always counts as a member."""

    def get_realm(self, realm_id) -> Realm:
        realm = db.session.get(Realm, realm_id)
        if realm is None:
            raise NotFound(f"Realm {realm_id} not found", realm_id=realm_id)
        return realm

    def is_owner(self, user_id, realm_id) -> bool:
        realm = db.session.get(Realm, realm_id)
        return realm is not None and realm.owner_id == user_id

    def is_member(self, user_id, realm_id) -> bool:
        if self.is_owner(user_id, realm_id):
            return True
        return RealmMember.query.filter_by(realm_id=realm_id, user_id=user_id).first() is not None
