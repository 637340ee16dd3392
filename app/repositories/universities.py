"""
University reference data and notification contacts.

Any signed-in user can read universities; only admins can change them.
"""

from app.auth import ADMIN_ONLY, guarded
from app.errors import Conflict, NotFound, ValidationError
from app.extensions import db
from app.models import Student, University, UniversityContact, User
from app.repositories.base import Repository, transaction
from app.utils.validation import optional_text, require_text, validate_email, validate_university_name

MAX_CONTACTS = 2
DUPLICATE_UNIVERSITY_MESSAGE = "A university with this name already exists."


def parse_contacts(raw_contacts):
    """
    Validate submitted contacts and normalize the primary flag.

    At most two contacts; when any are given exactly one is primary (the
    first flagged one, or the first contact if none is flagged).
    """
    if raw_contacts is None:
        return []
    if not isinstance(raw_contacts, list):
        raise ValidationError("contacts must be a list.")
    if len(raw_contacts) > MAX_CONTACTS:
        raise ValidationError(f"A university can have at most {MAX_CONTACTS} contacts.")

    contacts = []
    for raw in raw_contacts:
        if not isinstance(raw, dict):
            raise ValidationError("Each contact must be an object.")
        contacts.append({
            "name": require_text(raw, 'name', 100),
            "email": validate_email(raw.get('email'), 'contact email'),
            "phone": optional_text(raw, 'phone', 50),
            "is_primary": bool(raw.get('is_primary')),
        })

    primary_index = next((i for i, c in enumerate(contacts) if c["is_primary"]), 0)
    for i, contact in enumerate(contacts):
        contact["is_primary"] = i == primary_index
    return contacts


def serialize_contact(contact):
    return {
        "id": contact.id,
        "name": contact.name,
        "email": contact.email,
        "phone": contact.phone,
        "is_primary": contact.is_primary,
    }


def serialize_university(university, include_contacts=False):
    from app.utils.helpers import format_utc_iso

    data = {
        "id": university.id,
        "name": university.name,
        "created_at": format_utc_iso(university.created_at),
    }
    if include_contacts:
        data["contacts"] = [serialize_contact(c) for c in university.contacts]
    return data


class UniversityRepository(Repository):

    def _name_taken(self, name, exclude_id=None):
        query = University.query.filter(db.func.lower(University.name) == name.lower())
        if exclude_id is not None:
            query = query.filter(University.id != exclude_id)
        return db.session.query(query.exists()).scalar()

    @guarded()
    def list(self):
        return University.query.order_by(University.name).all()

    @guarded()
    def get(self, university_id):
        university = db.session.get(University, university_id)
        if university is None:
            raise NotFound("University not found.")
        return university

    @guarded(*ADMIN_ONLY)
    def create(self, data):
        name = validate_university_name(data.get('name'))
        contacts = parse_contacts(data.get('contacts'))
        if self._name_taken(name):
            raise Conflict(DUPLICATE_UNIVERSITY_MESSAGE)

        university = University(name=name)
        with transaction(DUPLICATE_UNIVERSITY_MESSAGE):
            db.session.add(university)
            for contact in contacts:
                university.contacts.append(UniversityContact(**contact))
        return university

    @guarded(*ADMIN_ONLY)
    def update(self, university_id, data):
        """Rename a university and, when ``contacts`` is given, replace its contacts."""
        university = self.get(university_id)
        changed = []
        with transaction(DUPLICATE_UNIVERSITY_MESSAGE):
            if 'name' in data:
                name = validate_university_name(data.get('name'))
                if name != university.name:
                    if self._name_taken(name, exclude_id=university.id):
                        raise Conflict(DUPLICATE_UNIVERSITY_MESSAGE)
                    university.name = name
                    changed.append('name')
            if 'contacts' in data:
                contacts = parse_contacts(data.get('contacts'))
                university.contacts.clear()
                db.session.flush()
                for contact in contacts:
                    university.contacts.append(UniversityContact(**contact))
                changed.append('contacts')
        return university, changed

    @guarded(*ADMIN_ONLY)
    def delete(self, university_id):
        """
        Delete a university and its contacts.

        Blocked while any user account or student record references it;
        student records are kept even after soft deletion.
        """
        university = self.get(university_id)

        user_count = User.query.filter_by(university_id=university.id).count()
        if user_count:
            raise Conflict(
                f"Cannot delete a university with {user_count} linked user account(s). "
                "Reassign or delete them first."
            )
        active_students = Student.query.filter(
            Student.university_id == university.id,
            Student.deleted_at.is_(None),
        ).count()
        if active_students:
            raise Conflict(
                f"Cannot delete a university with {active_students} registered student(s)."
            )
        if Student.query.filter_by(university_id=university.id).count():
            raise Conflict("Cannot delete a university that still has archived student records.")

        with transaction():
            db.session.delete(university)
        return university
