"""Abstract repository interface for module items and per-user item progress."""
from __future__ import annotations
from abc import abstractmethod
from datetime import datetime
from typing import Optional

from coursemodules.domain.course_module.models import ModuleItem
from coursemodules.domain.course_module.ordering import ItemProgressSource


class ItemRepository(ItemProgressSource):

    @abstractmethod
    def add_item(self, module_id: int, title: str, required: bool) -> ModuleItem:
        """Append an item at the end of the module."""
        ...

    @abstractmethod
    def get_item(self, module_id: int, item_id: int) -> Optional[ModuleItem]:
        ...

    @abstractmethod
    def record_start(self, item_id: int, user_id: str, at: datetime) -> None:
        """Mark the item started; an earlier start is kept."""
        ...

    @abstractmethod
    def record_completion(self, item_id: int, user_id: str, at: datetime) -> None:
        """Mark the item completed; an earlier completion is kept."""
        ...
