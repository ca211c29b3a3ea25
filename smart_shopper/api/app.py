"""
Dashboard API for Smart Shopper.

JSON endpoints over the per-user shopping agent plus the Gemini proxy.
The user is selected by the ``X-User-Id`` header.
"""

import asyncio
import threading
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set

from fastapi import Depends, FastAPI, File, Header, HTTPException, UploadFile
from pydantic import BaseModel

from .. import __version__
from ..config import get_config_manager
from ..database import DatabaseManager, create_database_manager
from ..services import GeminiClient, InventoryItemNotFound, ShoppingAgent
from ..utils import get_logger
from .proxy import router as proxy_router

logger = get_logger("api")

ClientFactory = Callable[[str], GeminiClient]


class ManualItemRequest(BaseModel):
    name: Optional[str] = None
    quantity: Any = None
    cost: Any = None
    vendor: Optional[str] = None


class ConfigPatch(BaseModel):
    spend_cap_monthly: Optional[float] = None
    current_month_spend: Optional[float] = None
    vendor_allowlist: Optional[List[str]] = None


class AgentRegistry:
    """Lazily created shopping agents, one per user id."""

    def __init__(
        self,
        db_manager: DatabaseManager,
        client_factory: Optional[ClientFactory] = None,
        **agent_kwargs: Any,
    ) -> None:
        self.db_manager = db_manager
        self.client_factory = client_factory or (lambda user_id: GeminiClient())
        self.agent_kwargs = agent_kwargs
        self._agents: Dict[str, ShoppingAgent] = {}
        self._start_locks: Dict[str, threading.Lock] = {}
        self._started: Set[str] = set()
        self._lock = threading.Lock()

    def get(self, user_id: str) -> ShoppingAgent:
        """
        Return the user's agent, starting it on first use.

        Only callers for the same user wait on the initial seed and
        forecast; the registry lock covers the lookup alone.
        """
        with self._lock:
            agent = self._agents.get(user_id)
            if agent is None:
                agent = ShoppingAgent(
                    self.db_manager,
                    user_id,
                    client=self.client_factory(user_id),
                    **self.agent_kwargs,
                )
                self._agents[user_id] = agent
                self._start_locks[user_id] = threading.Lock()
            start_lock = self._start_locks[user_id]

        with start_lock:
            if user_id not in self._started:
                logger.info(f"Starting shopping agent for {user_id}")
                agent.start()
                self._started.add(user_id)
        return agent

    def close(self) -> None:
        with self._lock:
            for agent in self._agents.values():
                agent.stop()
            self._agents.clear()
            self._start_locks.clear()
            self._started.clear()


def create_app(
    db_manager: Optional[DatabaseManager] = None,
    client_factory: Optional[ClientFactory] = None,
    **agent_kwargs: Any,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        db_manager: Document store (created from ``database.path`` if omitted)
        client_factory: Builds the prediction client for a user id
        **agent_kwargs: Extra ShoppingAgent arguments (price_fn, sleep)

    Returns:
        Configured FastAPI app
    """
    config = get_config_manager()
    if db_manager is None:
        db_manager = create_database_manager(config.get("database.path", "data/smart_shopper.db"))

    registry = AgentRegistry(db_manager, client_factory, **agent_kwargs)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        registry.close()
        db_manager.close()

    app = FastAPI(
        title="Smart Shopper API",
        description="Autonomous household replenishment agent",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.registry = registry
    app.include_router(proxy_router)

    def get_agent(x_user_id: Optional[str] = Header(None)) -> ShoppingAgent:
        user_id = x_user_id or config.get("agent.default_user_id", "local-user")
        return registry.get(user_id)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "version": __version__,
            "timestamp": datetime.now().isoformat(),
        }

    @app.get("/api/state")
    async def get_state(agent: ShoppingAgent = Depends(get_agent)) -> Dict:
        return agent.state()

    @app.get("/api/audit")
    async def get_audit_log(agent: ShoppingAgent = Depends(get_agent)) -> Dict:
        return {"entries": [entry.model_dump(mode="json") for entry in agent.audit_log]}

    @app.post("/api/receipts")
    async def upload_receipt(
        file: UploadFile = File(...),
        agent: ShoppingAgent = Depends(get_agent),
    ) -> Dict:
        """
        Upload a receipt image and apply the extracted purchases.

        Returns:
            Number of items processed and the updated state
        """
        data = await file.read()
        processed = await asyncio.to_thread(
            agent.process_receipt_image, data, file.content_type or "", file.filename
        )
        return {"items_processed": processed, "state": agent.state()}

    @app.post("/api/items")
    async def add_item(body: ManualItemRequest, agent: ShoppingAgent = Depends(get_agent)) -> Dict:
        added = await asyncio.to_thread(
            agent.add_item_manually, body.name, body.quantity, body.cost, body.vendor
        )
        return {"ok": added, "state": agent.state()}

    @app.put("/api/inventory/{item_id}")
    async def edit_item(
        item_id: str,
        body: Dict[str, Any],
        agent: ShoppingAgent = Depends(get_agent),
    ) -> Dict:
        try:
            item = await asyncio.to_thread(agent.update_item, {**body, "id": item_id})
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return {"item": item.model_dump(mode="json"), "state": agent.state()}

    @app.post("/api/inventory/delete-request/cancel")
    async def cancel_delete(agent: ShoppingAgent = Depends(get_agent)) -> Dict:
        agent.cancel_delete()
        return agent.state()

    @app.post("/api/inventory/{item_id}/increment")
    async def increment_item(item_id: str, agent: ShoppingAgent = Depends(get_agent)) -> Dict:
        try:
            item = await asyncio.to_thread(agent.increment_item, item_id)
        except InventoryItemNotFound:
            raise HTTPException(status_code=404, detail=f"Inventory item {item_id} not found")
        return {"item": item.model_dump(mode="json"), "state": agent.state()}

    @app.post("/api/inventory/{item_id}/decrement")
    async def decrement_item(item_id: str, agent: ShoppingAgent = Depends(get_agent)) -> Dict:
        try:
            item = await asyncio.to_thread(agent.decrement_item, item_id)
        except InventoryItemNotFound:
            raise HTTPException(status_code=404, detail=f"Inventory item {item_id} not found")
        return {"item": item.model_dump(mode="json"), "state": agent.state()}

    @app.post("/api/inventory/{item_id}/delete-request")
    async def request_delete(item_id: str, agent: ShoppingAgent = Depends(get_agent)) -> Dict:
        agent.request_delete(item_id)
        return agent.state()

    @app.delete("/api/inventory/{item_id}")
    async def delete_item(item_id: str, agent: ShoppingAgent = Depends(get_agent)) -> Dict:
        try:
            await asyncio.to_thread(agent.inventory_service.get_item, item_id)
        except InventoryItemNotFound:
            agent.cancel_delete()
            raise HTTPException(status_code=404, detail=f"Inventory item {item_id} not found")
        deleted = await asyncio.to_thread(agent.delete_item, item_id)
        return {"deleted": deleted, "state": agent.state()}

    @app.post("/api/forecast")
    async def run_forecast(agent: ShoppingAgent = Depends(get_agent)) -> Dict:
        await asyncio.to_thread(agent.run_forecasting)
        return agent.state()

    @app.post("/api/cart/checkout")
    async def checkout(agent: ShoppingAgent = Depends(get_agent)) -> Dict:
        purchased = await asyncio.to_thread(agent.checkout)
        return {"ok": purchased, "state": agent.state()}

    @app.delete("/api/cart")
    async def dismiss_cart(agent: ShoppingAgent = Depends(get_agent)) -> Dict:
        agent.dismiss_cart()
        return agent.state()

    @app.patch("/api/config")
    async def update_config(body: ConfigPatch, agent: ShoppingAgent = Depends(get_agent)) -> Dict:
        fields = body.model_dump(exclude_none=True)
        if not fields:
            raise HTTPException(status_code=422, detail="No config fields supplied")
        try:
            config_doc = await asyncio.to_thread(agent.update_config, **fields)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return config_doc.model_dump(mode="json")

    @app.post("/api/config/vendors/{vendor}/toggle")
    async def toggle_vendor(vendor: str, agent: ShoppingAgent = Depends(get_agent)) -> Dict:
        try:
            config_doc = await asyncio.to_thread(agent.toggle_vendor, vendor)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return config_doc.model_dump(mode="json")

    return app
