"""
Custom database types.
"""
import uuid
from sqlalchemy import TypeDecorator, String


class CanonicalUUID(TypeDecorator):
    """
    UUID stored as its canonical 36 character lowercase string.

    Vendor identifiers arrive as strings in whatever case the sender chose;
    normalizing them on the way in keeps unique constraints meaningful.
    """
    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        """Convert UUID or UUID string to its canonical form when saving."""
        if value is None:
            return value
        if isinstance(value, uuid.UUID):
            return str(value)
        return str(uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        """Convert the stored string to UUID when retrieving from database."""
        if value is None:
            return value
        if not isinstance(value, uuid.UUID):
            return uuid.UUID(value)
        return value
