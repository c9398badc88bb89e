import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from db_models import Contact, LinkPrecedence


def _now() -> str:
    # fixed-width UTC text
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _oldest_first(rows) -> List[Contact]:
    # sorted on parsed timestamps: stored text may mix ISO and CURRENT_TIMESTAMP formats
    contacts = [Contact.model_validate(dict(row)) for row in rows]
    return sorted(contacts, key=lambda c: (c.createdAt, c.id))


class ContactStore:
    """Contact row access over one open connection.

    The store never commits; the caller owns the transaction.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def find_contacts(self, email: Optional[str] = None, phone: Optional[str] = None) -> List[Contact]:
        conditions = []
        params = []
        if email is not None:
            conditions.append("email = ?")
            params.append(email)
        if phone is not None:
            conditions.append("phoneNumber = ?")
            params.append(phone)
        if not conditions:
            return []

        query = f"""
            SELECT * FROM Contact
            WHERE deletedAt IS NULL
            AND ({' OR '.join(conditions)})
        """
        rows = self.conn.execute(query, params).fetchall()
        return _oldest_first(rows)

    def get_contact(self, contact_id: int) -> Optional[Contact]:
        row = self.conn.execute(
            "SELECT * FROM Contact WHERE id = ? AND deletedAt IS NULL", (contact_id,)
        ).fetchone()
        if row is None:
            return None
        return Contact.model_validate(dict(row))

    def get_secondaries(self, primary_id: int) -> List[Contact]:
        rows = self.conn.execute("""
            SELECT * FROM Contact
            WHERE linkedId = ? AND linkPrecedence = 'secondary' AND deletedAt IS NULL
        """, (primary_id,)).fetchall()
        return _oldest_first(rows)

    def create_contact(
        self,
        email: Optional[str] = None,
        phone: Optional[str] = None,
        linked_id: Optional[int] = None,
        precedence: LinkPrecedence = LinkPrecedence.PRIMARY,
    ) -> Contact:
        now = _now()
        cursor = self.conn.execute("""
            INSERT INTO Contact (phoneNumber, email, linkedId, linkPrecedence, createdAt, updatedAt)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (phone, email, linked_id, precedence.value, now, now))
        return self.get_contact(cursor.lastrowid)

    def update_to_secondary(self, contact_id: int, primary_id: int):
        self.conn.execute("""
            UPDATE Contact
            SET linkedId = ?, linkPrecedence = 'secondary', updatedAt = ?
            WHERE id = ?
        """, (primary_id, _now(), contact_id))

    def relink_secondaries(self, old_primary_id: int, new_primary_id: int) -> int:
        """Point every row linked to ``old_primary_id`` at ``new_primary_id``.

        Tombstoned rows are moved too, so no row is left referencing a
        demoted contact.
        """
        cursor = self.conn.execute("""
            UPDATE Contact
            SET linkedId = ?, updatedAt = ?
            WHERE linkedId = ? AND id != ?
        """, (new_primary_id, _now(), old_primary_id, new_primary_id))
        return cursor.rowcount

    def list_contacts(self) -> List[Contact]:
        rows = self.conn.execute("""
            SELECT * FROM Contact
            WHERE deletedAt IS NULL
        """).fetchall()
        contacts = [Contact.model_validate(dict(row)) for row in rows]
        return sorted(contacts, key=lambda c: (not c.is_primary, c.createdAt, c.id))

    def clear_contacts(self) -> int:
        cursor = self.conn.execute("DELETE FROM Contact")
        return cursor.rowcount
