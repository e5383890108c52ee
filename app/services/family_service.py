"""
Family lookup service module.

Read-only queries over the family tables maintained by the account service.
"""
import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.models.user import Family, FamilyMember

logger = logging.getLogger(__name__)


def get_family_head_user_id(db: Session, user_id: str) -> Optional[str]:
    """
    Resolve the head of the family a user belongs to.

    Args:
        db: Database session
        user_id: The userId of any member of the family

    Returns:
        Optional[str]: userId of the family's head, None if the user has no family
    """
    family = (
        db.query(Family)
        .join(FamilyMember, FamilyMember.family_id == Family.family_id)
        .filter(FamilyMember.user_id == user_id)
        .first()
    )
    if family is None:
        logger.debug(f"No family found for user {user_id}")
        return None
    return family.user_id
