"""Cloud provider hooks used during provisioning: DNS lookup and on-up callback."""

import logging
import os
from abc import ABC, abstractmethod

import httpx

from hostinit.errors import CloudProviderError
from hostinit.host.types import Host

logger = logging.getLogger(__name__)

API_TIMEOUT = 60


class CloudManager(ABC):
    """The two provider operations provisioning needs."""

    @abstractmethod
    async def get_dns_name(self, host: Host) -> str:
        """Return the public DNS name (or address) of the instance, '' if unknown."""

    @abstractmethod
    async def on_up(self, host: Host) -> None:
        """Called once the instance is reachable, before bootstrapping."""


class StaticCloudManager(CloudManager):
    """Hosts whose addresses are known up front (e.g. from the hosts file)."""

    def __init__(self, dns_names=None):
        self.dns_names = dict(dns_names or {})

    async def get_dns_name(self, host: Host) -> str:
        return self.dns_names.get(host.id, "")

    async def on_up(self, host: Host) -> None:
        return None


class HttpCloudManager(CloudManager):
    """Provider reached over a small REST API.

    GET  {api_url}/api/v1/instances/{id}        -> {"data": {"dns_name": ...}}
    POST {api_url}/api/v1/instances/{id}/on-up  -> tags the instance as up
    """

    def __init__(self, api_url, api_key=None, dry_run=False):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key if api_key is not None else os.environ.get("HOSTINIT_CLOUD_API_KEY", "")
        self.dry_run = dry_run

    async def _api_request(self, method, path, data=None):
        """Make an authenticated provider API request.

        Returns:
            Parsed JSON ``data`` dict, or ``None`` in dry-run mode.
        """
        url = f"{self.api_url}{path}"
        if self.dry_run:
            logger.info(f"[dry-run] {method} {url}")
            return None

        headers = {"X-API-Key": self.api_key, "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient() as client:
                resp = await client.request(method, url, json=data, headers=headers, timeout=API_TIMEOUT)
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CloudProviderError(f"{method} {url} failed: {e}", operation="cloud api") from e
        return body.get("data", body)

    async def get_dns_name(self, host: Host) -> str:
        info = await self._api_request("GET", f"/api/v1/instances/{host.id}")
        if info is None:
            return f"{host.id}.dry-run"
        return info.get("dns_name") or info.get("host_address") or ""

    async def on_up(self, host: Host) -> None:
        await self._api_request("POST", f"/api/v1/instances/{host.id}/on-up", {"distro": host.distro.id})


def make_cloud_manager(settings, dry_run=False) -> CloudManager:
    """HttpCloudManager when a provider API is configured, else StaticCloudManager."""
    if settings.cloud_api_url:
        return HttpCloudManager(settings.cloud_api_url, dry_run=dry_run)
    return StaticCloudManager()
