"""Collaborator contracts the engine consumes (menu, orders, bills, table release)."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List

from domain.bill import BillReceipt, FinalizedBill
from domain.session import AuthContext


class LoungeGateway(ABC):
    """Unified gateway so the HTTP client and the in-memory prototype share the same API.

    Every call takes the caller's AuthContext and raises
    AuthenticationMissingError before touching the network when it has no
    token. Transport failures raise CollaboratorError.
    """

    @abstractmethod
    async def fetch_menu_items(self, auth: AuthContext) -> List[Dict[str, Any]]:
        raise NotImplementedError

    @abstractmethod
    async def fetch_table(self, auth: AuthContext, table_id: str) -> Dict[str, Any]:
        raise NotImplementedError

    @abstractmethod
    async def fetch_session_orders(self, auth: AuthContext, session_id: str) -> Dict[str, Any]:
        """``{"consolidatedItems": [{id, name, price, quantity, category}, ...]}``"""
        raise NotImplementedError

    @abstractmethod
    async def create_bill(self, auth: AuthContext, bill: FinalizedBill) -> BillReceipt:
        raise NotImplementedError

    @abstractmethod
    async def stop_session(self, auth: AuthContext, session_id: str) -> None:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None
