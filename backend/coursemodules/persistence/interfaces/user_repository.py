"""Abstract repository interface for site accounts."""
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Optional

from coursemodules.domain.account.models import User


class UserRepository(ABC):

    @abstractmethod
    def get_by_id(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    def get_by_username(self, username: str) -> Optional[User]:
        ...

    @abstractmethod
    def insert(self, user: User) -> User:
        """Persist a new account. Raises RepositoryError when the username is taken."""
        ...
