"""
Sanity Client
=============
Thin HTTP client for the parts of the Sanity API the migration depends on.

API References:
  - Query:    GET  /v{version}/data/query/{dataset}?query=...
  - Mutate:   POST /v{version}/data/mutate/{dataset}   (one transaction per call)
  - Assets:   POST /v{version}/assets/{images|files}/{dataset}?filename=...
"""

from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING, Any

import requests

from audiofast_migration.errors import SanityError
from audiofast_migration.logging_config import get_logger

if TYPE_CHECKING:
    from audiofast_migration.config import SanityConfig

logger = get_logger(__name__)

# Rate-limit defaults
DEFAULT_RETRY_AFTER = 5
MAX_RETRY_AFTER = 120
MAX_RETRIES = 5

ASSET_KINDS = {"image": "images", "file": "files"}


def retry_after_seconds(value: str | None, now: datetime | None = None) -> int:
    """
    Seconds to wait for a ``Retry-After`` header.

    Accepts both delta-seconds and an HTTP-date; anything unparseable falls
    back to ``DEFAULT_RETRY_AFTER``. The result is clamped to
    ``[0, MAX_RETRY_AFTER]``.
    """
    if not value or not value.strip():
        return DEFAULT_RETRY_AFTER
    text = value.strip()
    if text.isdigit():
        return min(int(text), MAX_RETRY_AFTER)
    try:
        when = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError):
        return DEFAULT_RETRY_AFTER
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    delta = (when - (now or datetime.now(tz=timezone.utc))).total_seconds()
    return max(0, min(int(delta), MAX_RETRY_AFTER))


class SanityClient:
    """
    Document query, transaction commit and asset upload against one dataset.

    TLS verification is always on for this connection.
    """

    def __init__(
        self,
        project_id: str,
        dataset: str,
        *,
        token: str = "",
        api_version: str = "2024-01-01",
        timeout: int = 120,
        session: requests.Session | None = None,
    ) -> None:
        self.project_id = project_id
        self.dataset = dataset
        self.token = token
        self.api_version = api_version.lstrip("v")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.base_url = f"https://{project_id}.api.sanity.io/v{self.api_version}"

    @classmethod
    def from_config(cls, cfg: SanityConfig, session: requests.Session | None = None) -> SanityClient:
        return cls(
            cfg.project_id,
            cfg.dataset,
            token=cfg.token,
            api_version=cfg.api_version,
            timeout=cfg.timeout,
            session=session,
        )

    # ------------------------------------------------------------------
    # HTTP plumbing
    # ------------------------------------------------------------------

    def _headers(self, content_type: str | None = "application/json") -> dict[str, str]:
        headers: dict[str, str] = {}
        if content_type:
            headers["Content-Type"] = content_type
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _api_call(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, str] | None = None,
        json_body: dict | None = None,
        data: bytes | None = None,
        content_type: str | None = "application/json",
        retries: int = MAX_RETRIES,
    ) -> requests.Response:
        """Make an API call with retry-after handling for 429s."""
        for attempt in range(1, retries + 1):
            try:
                resp = self.session.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    data=data,
                    headers=self._headers(content_type),
                    timeout=self.timeout,
                )
            except requests.RequestException as e:
                raise SanityError(f"{method} {url} failed: {e}") from e
            if resp.status_code == 429:
                retry_after = retry_after_seconds(resp.headers.get("Retry-After"))
                logger.warning("rate_limited", retry_after=retry_after, attempt=attempt, url=url)
                time.sleep(retry_after)
                continue
            return resp
        # Return last response even if still 429
        return resp  # type: ignore[possibly-undefined]

    @staticmethod
    def _check(resp: requests.Response, action: str) -> dict[str, Any]:
        if not 200 <= resp.status_code < 300:
            detail = resp.text[:500]
            logger.error("sanity_request_failed", action=action, status=resp.status_code, body=detail)
            raise SanityError(f"{action} failed: HTTP {resp.status_code}: {detail}", status_code=resp.status_code)
        try:
            return resp.json()
        except ValueError as e:
            raise SanityError(f"{action} returned invalid JSON", status_code=resp.status_code) from e

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def query(self, groq: str, params: dict[str, Any] | None = None) -> Any:
        """Run a GROQ query and return its ``result``."""
        query_params = {"query": groq}
        for name, value in (params or {}).items():
            query_params[f"${name}"] = json.dumps(value)
        resp = self._api_call("GET", f"{self.base_url}/data/query/{self.dataset}", params=query_params)
        return self._check(resp, "query").get("result")

    def ids_matching(self, doc_type: str, prefix: str) -> set[str]:
        """IDs of published documents of *doc_type* whose ``_id`` starts with *prefix*."""
        result = self.query(
            "*[_type == $type && string::startsWith(_id, $prefix)]._id",
            {"type": doc_type, "prefix": prefix},
        )
        ids = set(result or [])
        logger.debug("existing_ids_loaded", type=doc_type, prefix=prefix, count=len(ids))
        return ids

    def ids_with_field(self, doc_type: str, prefix: str, field: str) -> set[str]:
        """Like :meth:`ids_matching`, restricted to documents where *field* is set."""
        result = self.query(
            f"*[_type == $type && string::startsWith(_id, $prefix) && defined({field})]._id",
            {"type": doc_type, "prefix": prefix},
        )
        return set(result or [])

    def commit(self, mutations: list[dict[str, Any]]) -> dict[str, Any]:
        """Commit *mutations* as one transaction; all succeed or none do."""
        if not mutations:
            return {"results": []}
        resp = self._api_call(
            "POST",
            f"{self.base_url}/data/mutate/{self.dataset}",
            params={"returnIds": "true", "visibility": "sync"},
            json_body={"mutations": mutations},
        )
        body = self._check(resp, "mutate")
        logger.debug("transaction_committed", transaction_id=body.get("transactionId"), mutations=len(mutations))
        return body

    def create_or_replace(self, documents: list[dict[str, Any]]) -> dict[str, Any]:
        return self.commit([{"createOrReplace": doc} for doc in documents])

    def delete(self, ids: list[str]) -> dict[str, Any]:
        return self.commit([{"delete": {"id": doc_id}} for doc_id in ids])

    def patch_set(self, patches: list[dict[str, Any]]) -> dict[str, Any]:
        """Set fields on existing documents; each item is ``{"_id": ..., <field>: <value>, ...}``."""
        mutations = []
        for item in patches:
            fields = {k: v for k, v in item.items() if k != "_id"}
            mutations.append({"patch": {"id": item["_id"], "set": fields}})
        return self.commit(mutations)

    def unset(self, ids: list[str], fields: list[str]) -> dict[str, Any]:
        return self.commit([{"patch": {"id": doc_id, "unset": list(fields)}} for doc_id in ids])

    # ------------------------------------------------------------------
    # Assets
    # ------------------------------------------------------------------

    def upload_asset(self, kind: str, data: bytes, filename: str, content_type: str) -> str:
        """Upload binary data and return the new asset document ID."""
        if kind not in ASSET_KINDS:
            raise ValueError(f"unknown asset kind: {kind}")
        resp = self._api_call(
            "POST",
            f"{self.base_url}/assets/{ASSET_KINDS[kind]}/{self.dataset}",
            params={"filename": filename},
            data=data,
            content_type=content_type,
        )
        body = self._check(resp, f"upload {kind}")
        asset_id = (body.get("document") or {}).get("_id")
        if not asset_id:
            raise SanityError(f"upload {kind} returned no asset id", status_code=resp.status_code)
        return asset_id
