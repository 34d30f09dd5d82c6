"""
kubo (ipfs) rpc client

thin wrapper over the http api. every call is a POST to /api/v0/<cmd>
with its own timeout; failures surface as IpfsApiError.
"""
import json
import logging
from typing import BinaryIO, Dict, Optional, Union

import requests

from upload_service.core.config import Settings

logger = logging.getLogger(__name__)


class IpfsApiError(Exception):
    """raised when the ipfs api times out, is unreachable or answers non-2xx"""
    pass


class IpfsClient:
    def __init__(self, settings: Settings):
        self.api_url = settings.IPFS_API_URL.rstrip("/")
        self.stat_timeout = settings.IPFS_STAT_TIMEOUT
        self.list_timeout = settings.IPFS_LIST_TIMEOUT
        self.object_timeout = settings.IPFS_OBJECT_TIMEOUT
        self.gc_timeout = settings.IPFS_GC_TIMEOUT
        self.add_timeout = settings.IPFS_ADD_TIMEOUT

    def _post(self, command: str, timeout: float, params: Optional[dict] = None, **kwargs) -> requests.Response:
        url = f"{self.api_url}/api/v0/{command}"
        try:
            response = requests.post(url, params=params, timeout=timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise IpfsApiError(f"ipfs {command} timed out after {timeout}s") from e
        except requests.exceptions.RequestException as e:
            raise IpfsApiError(f"ipfs {command} unreachable: {e}") from e

        if not response.ok:
            # kubo reports errors as {"Message": ..., "Code": ..., "Type": "error"}
            message = response.text.strip()
            try:
                message = response.json().get("Message", message)
            except (ValueError, AttributeError):
                pass
            raise IpfsApiError(f"ipfs {command} failed ({response.status_code}): {message}")
        return response

    def _post_json(self, command: str, timeout: float, params: Optional[dict] = None) -> dict:
        response = self._post(command, timeout, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise IpfsApiError(f"ipfs {command} returned a non-json body: {response.text[:200]!r}") from e

    def repo_stat(self) -> dict:
        data = self._post_json("repo/stat", self.stat_timeout, params={"human": "false"})
        return {
            "repoSize": int(data.get("RepoSize", 0)),
            "storageMax": int(data.get("StorageMax", 0)),
            "numObjects": int(data.get("NumObjects", 0)),
            "repoPath": data.get("RepoPath"),
            "version": data.get("Version"),
        }

    def pin_ls(self) -> Dict[str, str]:
        """recursive pins as {cid: pin type}"""
        data = self._post_json("pin/ls", self.list_timeout, params={"type": "recursive"})
        keys = data.get("Keys") or {}
        return {cid: (info or {}).get("Type", "recursive") for cid, info in keys.items()}

    def object_stat(self, cid: str) -> dict:
        return self._post_json("object/stat", self.object_timeout, params={"arg": cid})

    def pin_rm(self, cid: str) -> None:
        self._post("pin/rm", self.stat_timeout, params={"arg": cid})

    def repo_gc(self) -> int:
        """run gc to completion; returns the number of removed blocks reported"""
        response = self._post("repo/gc", self.gc_timeout)
        removed = 0
        # streamed as newline-delimited json, one object per removed key
        for line in response.text.splitlines():
            if not line.strip():
                continue
            try:
                entry = json.loads(line)
            except ValueError:
                continue
            if entry.get("Error"):
                raise IpfsApiError(f"ipfs repo/gc reported: {entry['Error']}")
            removed += 1
        return removed

    def add(self, fileobj: Union[bytes, BinaryIO], filename: str, pin: bool = True) -> str:
        """add content and return its cid"""
        response = self._post(
            "add",
            self.add_timeout,
            params={"pin": "true" if pin else "false", "cid-version": "0"},
            files={"file": (filename, fileobj)},
        )
        # add may stream progress lines; the last one carries the root hash
        lines = [line for line in response.text.splitlines() if line.strip()]
        if not lines:
            raise IpfsApiError("ipfs add returned an empty response")
        try:
            return json.loads(lines[-1])["Hash"]
        except (ValueError, KeyError) as e:
            raise IpfsApiError(f"ipfs add returned no hash: {lines[-1][:200]!r}") from e

    def version(self) -> dict:
        return self._post_json("version", self.stat_timeout)
