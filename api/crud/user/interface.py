from __future__ import annotations
from abc import ABC, abstractmethod

class UserInterface(ABC):
    @abstractmethod
    async def register_user():
        pass

    @abstractmethod
    async def get_user():
        pass

    @abstractmethod
    async def get_user_by_email():
        pass
