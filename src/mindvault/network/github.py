"""
Blob store backed by a GitHub repository through the REST contents API.

Blob content travels base64-encoded; the version tag is the git blob SHA the
API reports, and updates carry it as ``sha`` so GitHub rejects stale writes.

Status mapping:
  404            -> absent blob (get) / not found (delete)
  409, 422       -> ConflictError (stale or missing ``sha``)
  401, 403       -> PermissionDeniedError
  anything else  -> TransportError (never retried here)
"""

import base64
import logging
from typing import List, Optional

import httpx

from mindvault.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    TransportError,
)
from mindvault.core.storage import BlobRecord, BlobStore

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://api.github.com"
REQUEST_TIMEOUT_SEC = 30


class GitHubBlobStore(BlobStore):
    """Versioned blob store over ``/repos/{owner}/{repo}/contents``.

    Usage::

        store = GitHubBlobStore("octo", "vault", token="ghp_...")
        record = store.get_blob("vault-index.json")
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        token: Optional[str] = None,
        api_url: str = DEFAULT_API_URL,
        branch: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.owner = owner
        self.repo = repo
        self.branch = branch
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._has_token = bool(token)
        self._client = client or httpx.Client(
            base_url=api_url.rstrip("/"),
            headers=headers,
            timeout=REQUEST_TIMEOUT_SEC,
        )
        if client is not None:
            self._client.headers.update(headers)

    @property
    def has_credential(self) -> bool:
        return self._has_token

    def close(self) -> None:
        self._client.close()

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _contents_url(self, path: str) -> str:
        return f"/repos/{self.owner}/{self.repo}/contents/{path.lstrip('/')}"

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        try:
            return self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"{method} {url} failed: {exc}") from exc

    def _raise_for_status(self, resp: httpx.Response, path: str) -> None:
        status = resp.status_code
        if status < 400:
            return
        if status in (401, 403):
            raise PermissionDeniedError(f"Invalid token or insufficient permissions for {path}")
        if status in (409, 422):
            raise ConflictError(f"version tag for {path} is stale ({status})")
        if status == 404:
            raise NotFoundError(path)
        raise TransportError(f"GitHub answered {status} for {path}")

    def _json(self, resp: httpx.Response, path: str):
        try:
            return resp.json()
        except ValueError as exc:
            raise TransportError(f"GitHub sent a malformed reply for {path}") from exc

    def _ref_params(self) -> dict:
        return {"ref": self.branch} if self.branch else {}

    # ------------------------------------------------------------------
    # BlobStore interface
    # ------------------------------------------------------------------

    def get_blob(self, path: str) -> Optional[BlobRecord]:
        resp = self._request("GET", self._contents_url(path), params=self._ref_params())
        if resp.status_code == 404:
            return None
        self._raise_for_status(resp, path)
        data = self._json(resp, path)
        if not isinstance(data, dict) or data.get("type") != "file" or "sha" not in data:
            raise TransportError(f"{path} is not a file")
        try:
            content = base64.b64decode(data.get("content", ""))
        except ValueError as exc:
            raise TransportError(f"undecodable content for {path}") from exc
        return BlobRecord(content=content, version_tag=data["sha"])

    def put_blob(self, path, content, version_tag=None, message=""):
        body = {
            "message": message or f"Update {path}",
            "content": base64.b64encode(content).decode("ascii"),
        }
        if version_tag:
            body["sha"] = version_tag
        if self.branch:
            body["branch"] = self.branch
        resp = self._request("PUT", self._contents_url(path), json=body)
        self._raise_for_status(resp, path)
        try:
            new_tag = self._json(resp, path)["content"]["sha"]
        except (KeyError, TypeError) as exc:
            raise TransportError(f"GitHub did not report a version tag for {path}") from exc
        logger.debug("wrote %s (%s)", path, new_tag)
        return new_tag

    def delete_blob(self, path, version_tag, message=""):
        body = {"message": message or f"Delete {path}", "sha": version_tag}
        if self.branch:
            body["branch"] = self.branch
        resp = self._request("DELETE", self._contents_url(path), json=body)
        self._raise_for_status(resp, path)

    def list_blobs(self, prefix: str = "") -> List[str]:
        # The contents API lists one directory; vault blobs are one level deep.
        directory = prefix.rsplit("/", 1)[0] if "/" in prefix else ""
        resp = self._request("GET", self._contents_url(directory), params=self._ref_params())
        if resp.status_code == 404:
            return []
        self._raise_for_status(resp, directory or "/")
        entries = self._json(resp, directory or "/")
        if not isinstance(entries, list):
            return []
        return sorted(
            e["path"] for e in entries if e.get("type") == "file" and e["path"].startswith(prefix)
        )

    def validate_credential(self) -> bool:
        """Check the token by reading repository metadata.

        A token that can read but not push is rejected as well.
        """
        resp = self._request("GET", f"/repos/{self.owner}/{self.repo}")
        if resp.status_code == 200:
            data = self._json(resp, f"{self.owner}/{self.repo}")
            permissions = data.get("permissions") if isinstance(data, dict) else None
            if isinstance(permissions, dict) and not permissions.get("push", True):
                return False
            return True
        if resp.status_code in (401, 403, 404):
            return False
        raise TransportError(f"GitHub answered {resp.status_code} while validating token")
