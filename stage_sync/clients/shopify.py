# stage_sync/clients/shopify.py
from typing import Optional

import requests

from ..config import API_VERSION
from ..errors import UpstreamApiError
from ..utils.logger import debug

DEFAULT_TYPE = "single_line_text_field"
PAGE_LIMIT = 250


def admin_base(domain: str, api_version: str = API_VERSION) -> str:
    return f"https://{domain}/admin/api/{api_version}"


def rest_headers(token: str) -> dict:
    return {"Content-Type": "application/json", "X-Shopify-Access-Token": token}


def graphql(domain: str, token: str, query: str, variables=None,
            api_version: str = API_VERSION, timeout: float = 30):
    url = f"{admin_base(domain, api_version)}/graphql.json"
    r = requests.post(url, headers=rest_headers(token),
                      json={"query": query, "variables": variables or {}}, timeout=timeout)
    r.raise_for_status()
    return r.json()


def find_metafield(metafields: list[dict], namespace: str, key: str) -> Optional[dict]:
    for m in metafields or []:
        if m.get("namespace") == namespace and m.get("key") == key:
            return m
    return None


class MetafieldClient:
    """
    Order metafields over the Admin REST API.

    Owns the HTTP session and credentials. No caching and no retries: any
    non-2xx or transport failure raises UpstreamApiError. Listing follows
    the Link header so orders with more than one page are read in full.
    """

    def __init__(self, domain: str, token: str, api_version: str = API_VERSION,
                 timeout: float = 20, session: Optional[requests.Session] = None):
        self.base = admin_base(domain, api_version)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(rest_headers(token))

    def _send(self, method: str, url: str, payload: Optional[dict] = None,
              params: Optional[dict] = None) -> tuple[dict, requests.Response]:
        try:
            r = self.session.request(method, url, json=payload, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise UpstreamApiError(None, f"{method} {url}: {e}") from e
        debug(f"[shopify] {method} {url} -> {r.status_code}")
        if not 200 <= r.status_code < 300:
            raise UpstreamApiError(r.status_code, r.text)
        try:
            return (r.json() if r.content else {}), r
        except ValueError as e:
            raise UpstreamApiError(r.status_code, f"invalid JSON: {r.text[:200]}") from e

    def _request(self, method: str, path: str, payload: Optional[dict] = None) -> dict:
        data, _ = self._send(method, f"{self.base}/{path}", payload)
        return data

    def list(self, owner_type: str, owner_id: int | str) -> list[dict]:
        url = f"{self.base}/{owner_type}/{owner_id}/metafields.json"
        params = {"limit": PAGE_LIMIT}
        out: list[dict] = []
        while url:
            data, r = self._send("GET", url, params=params)
            out.extend(data.get("metafields") or [])
            url = ((r.links or {}).get("next") or {}).get("url")
            # the next-page url already carries limit and page_info
            params = None
        return out

    def create(self, owner_type: str, owner_id: int | str, namespace: str, key: str,
               value: str, type_: str = DEFAULT_TYPE) -> dict:
        payload = {"metafield": {"namespace": namespace, "key": key, "value": value, "type": type_}}
        data = self._request("POST", f"{owner_type}/{owner_id}/metafields.json", payload)
        return data.get("metafield") or {}

    def update(self, metafield_id: int | str, value: str) -> dict:
        payload = {"metafield": {"id": metafield_id, "value": value}}
        data = self._request("PUT", f"metafields/{metafield_id}.json", payload)
        return data.get("metafield") or {}


def upsert_metafield(client, owner_type: str, owner_id: int | str, namespace: str, key: str,
                     value: str, type_: str = DEFAULT_TYPE, existing: Optional[list[dict]] = None) -> dict:
    """
    Update the (namespace, key) metafield if it exists, else create it.

    `existing` should be a listing of the owner's metafields taken right
    before the write; when omitted the owner is listed first. Never creates
    without a lookup, so (owner, namespace, key) stays unique.
    """
    if existing is None:
        existing = client.list(owner_type, owner_id)
    current = find_metafield(existing, namespace, key)
    if current and current.get("id"):
        return client.update(current["id"], value)
    return client.create(owner_type, owner_id, namespace, key, value, type_)
