"""
ToolService - buying gang tools.

Any member may buy a tool for their gang out of their own wallet. Lockpicks
are permanent and can be owned once; breach charges stack up to
`gangs.tools.max_breach_charges`.
"""

from __future__ import annotations

from typing import Any, Dict, List

from turfwar.core.database.service import DatabaseService
from turfwar.core.logging.logger import LogContext
from turfwar.database.models.enums import ToolId
from turfwar.modules.gang import tools
from turfwar.modules.gang.gang_base_service import GangBaseService
from turfwar.modules.shared.exceptions import InsufficientResourcesError, PreconditionFailedError


class ToolService(GangBaseService):
    def price(self, tool_id: ToolId) -> int:
        entry = tools.get_tool(tool_id)
        return int(self.get_config(f"gangs.tools.prices.{tool_id.value}", entry.price))

    @property
    def max_breach_charges(self) -> int:
        return int(self.get_config("gangs.tools.max_breach_charges", 1))

    def catalog(self) -> List[Dict[str, Any]]:
        return [
            {**entry.to_dict(), "price": self.price(entry.tool_id)}
            for entry in tools.TOOL_CATALOG.values()
        ]

    async def buy_tool(self, user_id: int, tool: ToolId | str) -> Dict[str, Any]:
        """
        Buy a tool for the caller's gang.

        Raises:
            NotFoundError: Unknown tool name
            PreconditionFailedError: No gang, kidnapped, already owned
            InsufficientResourcesError: Balance too low
        """
        entry = tools.get_tool(tool)
        async with LogContext(user_id=user_id, command="buy_tool"):
            result = await self.run_with_retry(
                lambda: self._buy(user_id, entry.tool_id),
                operation_name="gang.buy_tool",
                user_id=user_id,
                tool=entry.tool_id.value,
            )
            await self.emit_event("tool.purchased", result)
            return result

    async def _buy(self, user_id: int, tool_id: ToolId) -> Dict[str, Any]:
        async with DatabaseService.get_transaction() as session:
            now = self._now()
            actor = await self._load_active_actor(session, user_id, "buy", now)
            gang = await self._require_gang(session, actor, "buy")

            price = self.price(tool_id)
            balance = await self._wallet.get_balance(session, actor)
            if balance < price:
                raise InsufficientResourcesError("balance", price, balance)

            tools.grant(gang, tool_id, self.max_breach_charges)
            balance = await self._wallet.debit(session, actor, price)

            self.log_operation("buy_tool", user_id=user_id, gang_id=gang.id, tool=tool_id.value)
            return {
                "gang_id": gang.id,
                "user_id": user_id,
                "tool": tool_id.value,
                "price": price,
                "balance": balance,
                "inventory": tools.inventory(gang),
            }

    async def get_inventory(self, user_id: int) -> Dict[str, Any]:
        async with DatabaseService.get_session() as session:
            member = await self._members.find_by_user(session, user_id)
            if member is None or member.gang_id is None:
                raise PreconditionFailedError("tools", "you are not in a gang")
            gang = await self._require_gang(session, member, "tools", lock=False)
            return {"gang_id": gang.id, "inventory": tools.inventory(gang)}
