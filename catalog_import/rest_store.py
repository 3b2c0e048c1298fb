"""
REST Store Module
Catalog store backed by a PostgREST API, with optional routing of writes
through the admin batch-operation endpoint.
"""

from typing import Any, Dict, List, Optional, Tuple

import httpx
from loguru import logger

from .exceptions import AdminAPIError, StoreError
from .models import IMAGES, PRODUCTS, VARIATIONS
from .store import CatalogStore

# (table, action) pairs the admin endpoint knows how to perform
ADMIN_OPERATIONS = {
    (PRODUCTS, 'insert'): 'create_product',
    (PRODUCTS, 'update'): 'update_product',
    (VARIATIONS, 'insert'): 'create_variation',
    (IMAGES, 'insert'): 'create_product_image',
}


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(payload, dict):
        return str(payload.get('error') or payload.get('message') or payload)
    return str(payload)


class AdminAPIClient:
    """Client for the admin endpoint that accepts ``{operation, data}`` requests."""

    def __init__(self, url: str, client: httpx.AsyncClient, api_key: Optional[str] = None):
        """
        Initialize the admin client.

        Args:
            url: Full URL of the batch-operation endpoint
            client: Shared HTTP client
            api_key: Optional bearer token
        """
        self.url = url
        self.client = client
        self.headers = {'Content-Type': 'application/json'}
        if api_key:
            self.headers['Authorization'] = f"Bearer {api_key}"

    async def execute(self, operation: str, data: Dict[str, Any]) -> str:
        """
        Run one admin operation.

        Args:
            operation: Operation name (create_product, update_product...)
            data: Operation payload

        Returns:
            Id of the created or updated entity

        Raises:
            AdminAPIError: if the endpoint answers with an error payload
        """
        try:
            response = await self.client.post(
                self.url,
                json={'operation': operation, 'data': data},
                headers=self.headers,
            )
        except httpx.HTTPError as e:
            raise AdminAPIError(operation, f"request failed: {e}") from e

        if response.status_code >= 400:
            raise AdminAPIError(operation, _error_message(response), response.status_code)

        try:
            payload = response.json()
        except ValueError as e:
            raise AdminAPIError(operation, 'response was not JSON', response.status_code) from e
        if not isinstance(payload, dict):
            raise AdminAPIError(operation, f"unexpected response: {str(payload)[:100]}", response.status_code)
        if payload.get('error'):
            raise AdminAPIError(operation, str(payload['error']), response.status_code)
        if 'id' not in payload:
            raise AdminAPIError(operation, 'response carried no id', response.status_code)
        logger.debug(f"Admin operation {operation} returned id {payload['id']}")
        return str(payload['id'])


class RestCatalogStore(CatalogStore):
    """Catalog store talking to a PostgREST endpoint (``<url>/rest/v1``)."""

    def __init__(
        self,
        url: str,
        api_key: str,
        admin_api_url: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Initialize the REST store.

        Args:
            url: Project URL of the hosted backend
            api_key: Service-role key sent as ``apikey`` and bearer token
            admin_api_url: When set, product, variation, option and image
                writes go through this admin endpoint instead
            timeout: HTTP timeout in seconds
            client: Optional pre-built HTTP client (tests pass a mock transport)
        """
        self.base_url = f"{url.rstrip('/')}/rest/v1"
        self.headers = {
            'apikey': api_key,
            'Authorization': f"Bearer {api_key}",
            'Content-Type': 'application/json',
        }
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.admin = AdminAPIClient(admin_api_url, self.client, api_key) if admin_api_url else None

    async def close(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def _filters(self, filters: Dict[str, Any]) -> Dict[str, str]:
        params = {}
        for column, value in filters.items():
            if value is None:
                params[column] = 'is.null'
            elif isinstance(value, bool):
                params[column] = f"eq.{str(value).lower()}"
            else:
                params[column] = f"eq.{value}"
        return params

    async def _request(
        self,
        method: str,
        table: str,
        params: Optional[Dict[str, str]] = None,
        json: Any = None,
        prefer: Optional[str] = None,
    ) -> Any:
        headers = dict(self.headers)
        if prefer:
            headers['Prefer'] = prefer
        try:
            response = await self.client.request(
                method,
                f"{self.base_url}/{table}",
                params=params,
                json=json,
                headers=headers,
            )
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {table} failed: {e}") from e

        if response.status_code >= 400:
            raise StoreError(
                f"{method} {table} failed: {_error_message(response)}",
                status_code=response.status_code,
            )
        if not response.content:
            return None
        return response.json()

    async def find_one(self, table: str, **filters: Any) -> Optional[Dict[str, Any]]:
        params = self._filters(filters)
        params['limit'] = '1'
        rows = await self._request('GET', table, params=params)
        return rows[0] if rows else None

    async def select(self, table: str, **filters: Any) -> List[Dict[str, Any]]:
        params = self._filters(filters)
        params['order'] = 'id'
        return await self._request('GET', table, params=params) or []

    async def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        operation = ADMIN_OPERATIONS.get((table, 'insert'))
        if self.admin and operation:
            row_id = await self.admin.execute(operation, row)
            return dict(row, id=row_id)

        rows = await self._request('POST', table, json=row, prefer='return=representation')
        if not rows:
            raise StoreError(f"Insert into {table} returned no row")
        return rows[0]

    async def update(self, table: str, row_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        operation = ADMIN_OPERATIONS.get((table, 'update'))
        if self.admin and operation:
            await self.admin.execute(operation, dict(changes, id=row_id))
            return dict(changes, id=row_id)

        rows = await self._request(
            'PATCH',
            table,
            params={'id': f"eq.{row_id}"},
            json=changes,
            prefer='return=representation',
        )
        if not rows:
            raise StoreError(f"No {table} row with id {row_id}", status_code=404)
        return rows[0]

    async def delete(self, table: str, row_id: str) -> None:
        await self._request('DELETE', table, params={'id': f"eq.{row_id}"})

    async def ensure_lookup(
        self,
        table: str,
        name: str,
        defaults: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Dict[str, Any], bool]:
        # Relies on a unique constraint on name; a conflicting insert returns no row
        rows = await self._request(
            'POST',
            table,
            params={'on_conflict': 'name'},
            json=dict(defaults or {}, name=name),
            prefer='resolution=ignore-duplicates,return=representation',
        )
        if rows:
            return rows[0], True

        existing = await self.find_one(table, name=name)
        if existing is None:
            raise StoreError(f"Lookup '{name}' in {table} was neither created nor found")
        return existing, False
