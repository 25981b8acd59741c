# erp_bridge/erp/erp_client.py
# =============================
# Monitor ERP REST client
# - Session header auth, one re-login and one retry on 401
# - OData paging ($top/$skip), stop on a short page
# =============================

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from erp_bridge import config
from erp_bridge.erp.session_store import SessionManager, SessionStore
from erp_bridge.exceptions import AuthenticationError, RemoteError, TransportError

logger = logging.getLogger(__name__)

AUTH_FAILURE_STATUS = 401

BASE_HEADERS = {
    "Accept": "application/json",
    "Content-Type": "application/json",
    "Cache-Control": "no-cache",
}


def _body_of(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text


class ERPClient:
    """
    Session-managed client for the Monitor ERP REST API.

    Usage:
        async with ERPClient() as erp:
            parts = await erp.fetch_all("Inventory/Parts", filter="Status eq 4")
    """

    def __init__(
        self,
        base_url: str = config.ERP_URL,
        company: str = config.ERP_COMPANY,
        username: str = config.ERP_USER,
        password: str = config.ERP_PASSWORD,
        store: Optional[SessionStore] = None,
        timeout: float = config.ERP_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        page_size: int = config.ERP_PAGE_SIZE,
    ):
        self.base_url = base_url.rstrip("/")
        self.company = company
        self.username = username
        self.password = password
        self.page_size = page_size
        self.session = SessionManager(store or SessionStore(config.SESSION_STORE_FILE), self._authenticate)
        self._http = httpx.AsyncClient(
            base_url=f"{self.base_url}/{self.company}",
            headers=BASE_HEADERS,
            timeout=timeout,
            verify=config.ERP_VERIFY_TLS,
            transport=transport,
        )

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()

    async def aclose(self):
        await self._http.aclose()

    # ------------------------
    # Session
    # ------------------------
    async def _authenticate(self) -> str:
        payload = {
            "Username": self.username,
            "Password": self.password,
            "ForceRelogin": True,
        }
        try:
            resp = await self._http.post("/login", json=payload)
        except httpx.RequestError as e:
            raise TransportError(f"ERP login transport failure: {e}") from e

        if resp.status_code >= 300:
            body = _body_of(resp)
            logger.error("ERP login failed. Status: %s, Body: %s", resp.status_code, body)
            raise AuthenticationError("ERP login rejected", resp.status_code, body)

        body = _body_of(resp)
        data = body if isinstance(body, dict) else {}
        if data.get("MfaToken"):
            raise AuthenticationError("ERP login requires MFA, which is not supported", resp.status_code, body)

        # header is authoritative, body field is only a fallback
        token = resp.headers.get(config.ERP_SESSION_HEADER) or data.get("SessionId")
        if not token:
            raise AuthenticationError("ERP login response carried no session token", resp.status_code, body)

        logger.info("🔑 ERP login ok (session %s…)", str(token)[:8])
        return token

    async def get_session(self) -> str:
        return await self.session.get_or_refresh()

    async def login(self) -> str:
        """Always authenticates again, regardless of what is cached."""
        return await self.session.refresh()

    # ------------------------
    # Requests
    # ------------------------
    async def with_auth_retry(self, fn: Callable[[str], Awaitable[httpx.Response]]) -> httpx.Response:
        """
        Run `fn(token)`; on an auth failure re-login once and retry once.
        A second auth failure is raised, never retried.
        """
        token = await self.get_session()
        resp = await fn(token)
        if resp.status_code != AUTH_FAILURE_STATUS:
            return resp

        logger.info("ERP session rejected, logging in again")
        token = await self.session.refresh(stale=token)
        resp = await fn(token)
        if resp.status_code == AUTH_FAILURE_STATUS:
            raise AuthenticationError(
                "ERP rejected the session after re-login", resp.status_code, _body_of(resp)
            )
        return resp

    async def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        async def send(token: str) -> httpx.Response:
            try:
                return await self._http.request(
                    method,
                    f"/{path.lstrip('/')}",
                    params=params,
                    json=json,
                    headers={config.ERP_SESSION_HEADER: token},
                )
            except httpx.RequestError as e:
                raise TransportError(f"{method} {path} failed: {e}") from e

        resp = await self.with_auth_retry(send)
        if resp.status_code >= 300:
            body = _body_of(resp)
            raise RemoteError(f"{method} {path} -> {resp.status_code}", resp.status_code, body)
        if not resp.content:
            return None
        return _body_of(resp)

    async def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await self.request("GET", path, params=params)

    # ------------------------
    # Pagination
    # ------------------------
    async def fetch_page(
        self,
        resource: str,
        skip: int,
        top: int,
        filter: Optional[str] = None,
        select: Optional[str] = None,
        expand: Optional[str] = None,
        orderby: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"$top": top, "$skip": skip}
        if filter:
            params["$filter"] = filter
        if select:
            params["$select"] = select
        if expand:
            params["$expand"] = expand
        if orderby:
            params["$orderby"] = orderby

        data = await self.get(f"api/v1/{resource}", params=params)
        if not isinstance(data, list):
            raise RemoteError(f"ERP returned unexpected data format for {resource}", body=data)
        return data

    async def fetch_all(
        self,
        resource: str,
        top: Optional[int] = None,
        **query: Optional[str],
    ) -> List[Dict[str, Any]]:
        """Loop pages until one comes back shorter than `top`."""
        top = top or self.page_size
        records: List[Dict[str, Any]] = []
        skip = 0
        while True:
            page = await self.fetch_page(resource, skip, top, **query)
            records.extend(page)
            if len(page) < top:
                break
            skip += top
        return records
