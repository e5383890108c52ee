"""
User and family model module.

These tables are owned by the account service; the ledger only reads them to
resolve family heads and app account tokens.
"""
from sqlalchemy import Column, String, ForeignKey
from sqlalchemy.orm import relationship

from app.models.base import BaseModel


class User(BaseModel):
    """
    User model for storing user information.
    """
    __tablename__ = "users"

    user_id = Column(String(64), primary_key=True)
    user_email = Column(String(320), index=True)
    # UUID the app attaches to purchases as appAccountToken
    user_app_account_token = Column(String(36), unique=True, index=True)

    # One-to-many relationship with transactions
    transactions = relationship("Transaction", back_populates="user")

    def __repr__(self):
        return f"<User {self.user_id}>"


class Family(BaseModel):
    """
    Family model. `user_id` is the family head, the only member allowed to
    hold the family's subscription.
    """
    __tablename__ = "families"

    family_id = Column(String(64), primary_key=True)
    user_id = Column(String(64), ForeignKey("users.user_id"), nullable=False, index=True)

    members = relationship("FamilyMember", back_populates="family")

    def __repr__(self):
        return f"<Family {self.family_id} head={self.user_id}>"


class FamilyMember(BaseModel):
    """
    Membership of a user in a family. A user belongs to at most one family.
    """
    __tablename__ = "family_members"

    user_id = Column(String(64), ForeignKey("users.user_id"), primary_key=True)
    family_id = Column(String(64), ForeignKey("families.family_id"), nullable=False, index=True)

    family = relationship("Family", back_populates="members")

    def __repr__(self):
        return f"<FamilyMember {self.user_id} of {self.family_id}>"
