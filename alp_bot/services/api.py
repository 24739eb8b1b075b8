"""Backend API for the n8n webhook service.

ExpenseBackend is the interface every page talks to. HttpBackend calls the
real webhooks; InMemoryBackend (demo_backend.py) serves demo data when no
backend URL is configured.
"""

from __future__ import annotations

import base64
import logging
from abc import ABC, abstractmethod
from urllib.parse import quote

import httpx

from config import Settings
from alp_bot.expenses.models import ObjectStatus

logger = logging.getLogger(__name__)

ENDPOINTS = {
    # Users
    "USERS_LIST": "/users",
    "USERS_GET": "/users/{id}",
    "USERS_BALANCE": "/users/{id}/balance",
    # Transactions (funding)
    "TRANSACTIONS_LIST": "/transactions",
    "TRANSACTIONS_CREATE": "/transactions",
    "TRANSACTIONS_GET": "/transactions/{id}",
    # Invoices
    "INVOICES_LIST": "/invoices",
    "INVOICES_CREATE": "/invoices",
    "INVOICES_GET": "/invoices/{id}",
    "INVOICES_DELETE": "/invoices/{id}",
    # Objects (construction sites)
    "OBJECTS_LIST": "/objects",
    "OBJECTS_CREATE": "/objects",
    "OBJECTS_GET": "/objects/{id}",
    "OBJECTS_UPDATE": "/objects/{id}",
    "OBJECTS_ARCHIVE": "/objects/{id}/archive",
    # Inventory (tools)
    "INVENTORY_LIST": "/inventory",
    "INVENTORY_CREATE": "/inventory",
    "INVENTORY_GET": "/inventory/{id}",
    "INVENTORY_UPDATE": "/inventory/{id}",
    "INVENTORY_TRANSFER": "/inventory/{id}/transfer",
    # Bank statements
    "BANK_UPLOAD": "/bank/upload",
    "BANK_TRANSACTIONS": "/bank/transactions",
    # Reports
    "REPORTS_OBJECT_SUMMARY": "/reports/object/{id}",
    "REPORTS_OVERVIEW": "/reports/overview",
}

GENERIC_ERROR_MESSAGE = "Request failed"
NO_CONNECTION_MESSAGE = "No connection to the server"


class APIError(Exception):
    """Backend request failed. status is 0 when the server was unreachable."""

    def __init__(self, message: str, status: int = 0, data=None):
        super().__init__(message)
        self.message = message
        self.status = status
        self.data = data if data is not None else {}


class ExpenseBackend(ABC):
    """Everything the bot reads from or writes to the backend."""

    # Objects

    @abstractmethod
    async def list_cost_objects(self, include_archived: bool = False) -> list[dict]:
        ...

    async def list_active_cost_objects(self) -> list[dict]:
        objects = await self.list_cost_objects()
        return [o for o in objects if o.get("status") == ObjectStatus.ACTIVE.value]

    @abstractmethod
    async def get_cost_object(self, object_id) -> dict:
        ...

    @abstractmethod
    async def create_cost_object(self, data: dict) -> dict:
        ...

    @abstractmethod
    async def update_cost_object(self, object_id, data: dict) -> dict:
        ...

    @abstractmethod
    async def archive_cost_object(self, object_id) -> dict:
        ...

    # Invoices

    @abstractmethod
    async def list_invoices(self, filters: dict | None = None) -> list[dict]:
        ...

    @abstractmethod
    async def get_invoice(self, invoice_id) -> dict:
        ...

    @abstractmethod
    async def create_invoice(self, payload: dict) -> dict:
        ...

    @abstractmethod
    async def delete_invoice(self, invoice_id) -> dict:
        ...

    # Users and reports

    @abstractmethod
    async def list_users(self) -> list[dict]:
        ...

    @abstractmethod
    async def get_user_balance(self, user_id) -> dict:
        ...

    @abstractmethod
    async def get_object_report(self, object_id) -> dict:
        ...

    @abstractmethod
    async def get_overview_report(self) -> dict:
        ...

    # Transactions

    @abstractmethod
    async def list_transactions(self, filters: dict | None = None) -> list[dict]:
        ...

    @abstractmethod
    async def create_transaction(self, data: dict) -> dict:
        ...

    # Inventory

    @abstractmethod
    async def list_tools(self, filters: dict | None = None) -> list[dict]:
        ...

    @abstractmethod
    async def get_tool(self, tool_id) -> dict:
        ...

    @abstractmethod
    async def create_tool(self, data: dict) -> dict:
        ...

    @abstractmethod
    async def update_tool(self, tool_id, data: dict) -> dict:
        ...

    @abstractmethod
    async def transfer_tool(self, tool_id, to_user_id) -> dict:
        """Hand a tool to a technician, or back to storage when to_user_id is None."""
        ...

    # Bank statements

    @abstractmethod
    async def upload_bank_statement(self, content: bytes, filename: str) -> dict:
        """Parse a statement. Returns {"transactions": [{date, description, reference, amount}]}."""
        ...

    @abstractmethod
    async def list_bank_transactions(self, filters: dict | None = None) -> list[dict]:
        ...

    async def aclose(self):
        pass


class HttpBackend(ExpenseBackend):
    """Talks JSON to the webhook backend over HTTP."""

    def __init__(self, base_url: str, token: str = "", timeout: float = 30.0,
                 client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> HttpBackend:
        return cls(settings.api_base_url, settings.api_token, settings.request_timeout)

    def build_url(self, endpoint: str, params: dict | None = None) -> str:
        """Full URL with {placeholders} filled in (URL-encoded)."""
        url = self.base_url + endpoint
        for key, value in (params or {}).items():
            url = url.replace(f"{{{key}}}", quote(str(value), safe=""))
        return url

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def request(self, endpoint: str, method: str = "GET", params: dict | None = None,
                      body: dict | None = None, query: dict | None = None):
        url = self.build_url(endpoint, params)
        query = {k: _query_value(v) for k, v in (query or {}).items() if v not in (None, "")}

        try:
            resp = await self._client.request(
                method,
                url,
                headers=self._headers(),
                params=query or None,
                json=body if body is not None and method != "GET" else None,
            )
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {type(e).__name__}: {e}")
            raise APIError(NO_CONNECTION_MESSAGE, 0, {"originalError": str(e)}) from e

        content_type = resp.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                data = resp.json()
            except ValueError:
                data = resp.text
        else:
            data = resp.text

        if resp.is_error:
            message = data.get("message") if isinstance(data, dict) else None
            logger.warning(f"{method} {url} -> {resp.status_code}: {message or GENERIC_ERROR_MESSAGE}")
            raise APIError(message or GENERIC_ERROR_MESSAGE, resp.status_code, data)

        logger.debug(f"{method} {url} -> {resp.status_code}")
        return data

    # Objects

    async def list_cost_objects(self, include_archived: bool = False) -> list[dict]:
        return await self.request(ENDPOINTS["OBJECTS_LIST"], query={"includeArchived": include_archived})

    async def get_cost_object(self, object_id) -> dict:
        return await self.request(ENDPOINTS["OBJECTS_GET"], params={"id": object_id})

    async def create_cost_object(self, data: dict) -> dict:
        return await self.request(ENDPOINTS["OBJECTS_CREATE"], method="POST", body=data)

    async def update_cost_object(self, object_id, data: dict) -> dict:
        return await self.request(ENDPOINTS["OBJECTS_UPDATE"], method="PUT", params={"id": object_id}, body=data)

    async def archive_cost_object(self, object_id) -> dict:
        return await self.request(ENDPOINTS["OBJECTS_ARCHIVE"], method="POST", params={"id": object_id})

    # Invoices

    async def list_invoices(self, filters: dict | None = None) -> list[dict]:
        return await self.request(ENDPOINTS["INVOICES_LIST"], query=filters)

    async def get_invoice(self, invoice_id) -> dict:
        return await self.request(ENDPOINTS["INVOICES_GET"], params={"id": invoice_id})

    async def create_invoice(self, payload: dict) -> dict:
        return await self.request(ENDPOINTS["INVOICES_CREATE"], method="POST", body=payload)

    async def delete_invoice(self, invoice_id) -> dict:
        return await self.request(ENDPOINTS["INVOICES_DELETE"], method="DELETE", params={"id": invoice_id})

    # Users and reports

    async def list_users(self) -> list[dict]:
        return await self.request(ENDPOINTS["USERS_LIST"])

    async def get_user_balance(self, user_id) -> dict:
        return await self.request(ENDPOINTS["USERS_BALANCE"], params={"id": user_id})

    async def get_object_report(self, object_id) -> dict:
        return await self.request(ENDPOINTS["REPORTS_OBJECT_SUMMARY"], params={"id": object_id})

    async def get_overview_report(self) -> dict:
        return await self.request(ENDPOINTS["REPORTS_OVERVIEW"])

    # Transactions

    async def list_transactions(self, filters: dict | None = None) -> list[dict]:
        return await self.request(ENDPOINTS["TRANSACTIONS_LIST"], query=filters)

    async def create_transaction(self, data: dict) -> dict:
        return await self.request(ENDPOINTS["TRANSACTIONS_CREATE"], method="POST", body=data)

    # Inventory

    async def list_tools(self, filters: dict | None = None) -> list[dict]:
        return await self.request(ENDPOINTS["INVENTORY_LIST"], query=filters)

    async def get_tool(self, tool_id) -> dict:
        return await self.request(ENDPOINTS["INVENTORY_GET"], params={"id": tool_id})

    async def create_tool(self, data: dict) -> dict:
        return await self.request(ENDPOINTS["INVENTORY_CREATE"], method="POST", body=data)

    async def update_tool(self, tool_id, data: dict) -> dict:
        return await self.request(ENDPOINTS["INVENTORY_UPDATE"], method="PUT", params={"id": tool_id}, body=data)

    async def transfer_tool(self, tool_id, to_user_id) -> dict:
        return await self.request(ENDPOINTS["INVENTORY_TRANSFER"], method="POST", params={"id": tool_id},
                                  body={"toUserId": to_user_id})

    # Bank statements

    async def upload_bank_statement(self, content: bytes, filename: str) -> dict:
        body = {"file": base64.standard_b64encode(content).decode("utf-8"), "filename": filename}
        return await self.request(ENDPOINTS["BANK_UPLOAD"], method="POST", body=body)

    async def list_bank_transactions(self, filters: dict | None = None) -> list[dict]:
        return await self.request(ENDPOINTS["BANK_TRANSACTIONS"], query=filters)

    async def aclose(self):
        await self._client.aclose()


def _query_value(value):
    # URLSearchParams style: booleans as "true"/"false"
    if isinstance(value, bool):
        return "true" if value else "false"
    return value
