"""Repositories for users and their memberships."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from therapport.models.membership import Membership
from therapport.models.user import User

from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[User]):
    def __init__(self, db: Session):
        super().__init__(db, User)

    def get_by_email(self, email: str) -> Optional[User]:
        return self.find_one_by(email=email.strip().lower())


class MembershipRepository(BaseRepository[Membership]):
    def __init__(self, db: Session):
        super().__init__(db, Membership)

    def get_by_user_id(self, user_id: str, for_update: bool = False) -> Optional[Membership]:
        query = self.db.query(Membership).filter(Membership.user_id == user_id)
        if for_update:
            query = self._for_update(query)
        return query.first()

    def get_by_stripe_customer_id(self, customer_id: str) -> Optional[Membership]:
        return self.find_one_by(stripe_customer_id=customer_id)

    def get_by_stripe_subscription_id(self, subscription_id: str) -> Optional[Membership]:
        return self.find_one_by(stripe_subscription_id=subscription_id)
