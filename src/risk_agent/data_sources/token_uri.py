"""
Off-chain NFT metadata fetcher.

Resolves the document a ``tokenURI`` points at:

- ``ipfs://`` / ``ipfs://ipfs/`` and ``ar://`` are rewritten to the
  configured HTTP gateways
- ``data:application/json`` URIs (base64 or percent-encoded) are decoded
  locally without a network call
- ERC-1155 ``{id}`` placeholders are substituted with the hex token ID

A dead or slow metadata host is an ordinary property of the NFT, not an
error: timeouts, network failures and HTTP errors are reported as
``UNAVAILABLE`` so the metadata chain falls through to the indexers.
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Optional
from urllib.parse import unquote, urlparse

from ..utils import resolve_uri
from ._base import BaseProviderClient
from ._http import ProviderResponse, ProviderStatus

logger = logging.getLogger(__name__)

_LOCAL_HOSTS = frozenset({"localhost", "127.0.0.1", "0.0.0.0", "::1"})


def decode_data_uri(uri: str) -> Any:
    """Decode a ``data:`` URI holding JSON.  Raises ``ValueError`` on failure."""
    header, sep, body = uri.partition(",")
    if not sep:
        raise ValueError("data URI without payload")
    if header.lower().endswith(";base64"):
        try:
            raw = base64.b64decode(body, validate=False)
        except (binascii.Error, ValueError) as exc:
            raise ValueError(f"bad base64 payload: {exc}") from exc
        text = raw.decode("utf-8", errors="replace")
    else:
        text = unquote(body)
    return json.loads(text)


def is_local_uri(uri: str) -> bool:
    try:
        host = urlparse(uri).hostname
    except ValueError:
        return False
    return bool(host) and host.lower() in _LOCAL_HOSTS


class MetadataFetcher(BaseProviderClient):
    """Fetches and decodes token metadata documents."""

    name = "uri"
    requires_key = False

    def __init__(
        self,
        *,
        ipfs_gateway: str,
        arweave_gateway: str,
        timeout: float = 15.0,
    ) -> None:
        super().__init__(timeout=timeout)
        self._ipfs_gateway = ipfs_gateway
        self._arweave_gateway = arweave_gateway

    async def fetch(self, token_uri: Optional[str], token_id: Optional[str] = None) -> ProviderResponse:
        """Payload: ``{"uri": token_uri, "document": dict}``."""
        if not token_uri or not token_uri.strip():
            return ProviderResponse.unavailable(self.name, "no token URI")
        uri = token_uri.strip()
        if token_id is not None and "{id}" in uri:
            uri = uri.replace("{id}", format(int(token_id), "064x"))

        if uri.lower().startswith("data:"):
            try:
                document = decode_data_uri(uri)
            except ValueError as exc:
                logger.debug("uri: undecodable data URI: %s", exc)
                return ProviderResponse.failure(self.name, ProviderStatus.MALFORMED, str(exc))
            return self._document(token_uri, document)

        url = resolve_uri(uri, ipfs_gateway=self._ipfs_gateway, arweave_gateway=self._arweave_gateway)
        if not url.lower().startswith(("http://", "https://")):
            return ProviderResponse.unavailable(self.name, "unsupported URI scheme")
        if is_local_uri(url):
            return ProviderResponse.unavailable(self.name, "metadata hosted on localhost")

        resp = await self._get(url)
        if resp.ok:
            return self._document(token_uri, resp.payload)
        if resp.status is ProviderStatus.MALFORMED:
            return resp
        return ProviderResponse.unavailable(self.name, f"{resp.status.value}: {resp.detail}")

    def _document(self, token_uri: str, document: Any) -> ProviderResponse:
        if not isinstance(document, dict):
            return ProviderResponse.failure(self.name, ProviderStatus.MALFORMED, "metadata is not an object")
        return ProviderResponse.success(self.name, {"uri": token_uri, "document": document})
