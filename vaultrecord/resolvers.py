"""
Locator Resolvers

A resolver turns an opaque locator into ciphertext bytes. It is a
plain callable:

    resolver(locator: str) -> bytes

Anything callable works with Record; these are the stock ones.
Every failure surfaces as ResolutionError so callers can tell
"could not fetch" apart from "fetched, but wrong".
"""

from pathlib import Path
from typing import Optional, Union

import requests

from .config import ResolverConfig
from .errors import ResolutionError
from .observability import get_logger

logger = get_logger(__name__)


class IpfsResolver:
    """
    Fetch ciphertext from an IPFS node's HTTP API (`cat`).

    Usage:
        resolver = IpfsResolver.from_config(ResolverConfig.from_env())
        record.decrypt_data(private_key, resolver)
    """

    def __init__(
        self,
        api_url: str = "http://127.0.0.1:5001/api/v0",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ):
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()

    @classmethod
    def from_config(cls, config: ResolverConfig) -> "IpfsResolver":
        return cls(api_url=config.ipfs_api_url, timeout=config.timeout)

    def __call__(self, locator: str) -> bytes:
        url = f"{self._api_url}/cat"
        try:
            response = self._session.post(url, params={"arg": locator}, timeout=self._timeout)
        except requests.exceptions.RequestException as e:
            raise ResolutionError(f"IPFS fetch of {locator} failed: {e}") from e

        if response.status_code != 200:
            raise ResolutionError(
                f"IPFS fetch of {locator} failed: HTTP {response.status_code}"
            )

        logger.debug("Resolved locator", locator=locator, size=len(response.content))
        return response.content


class DirectoryResolver:
    """
    Read ciphertext from files named by locator under a root directory.

    Handy for tests, air-gapped verification, and exported bundles.
    Locators that would escape the root are refused.
    """

    def __init__(self, root: Union[str, Path]):
        self._root = Path(root).resolve()

    def __call__(self, locator: str) -> bytes:
        path = (self._root / locator.lstrip("/")).resolve()
        if not path.is_relative_to(self._root):
            raise ResolutionError(f"Locator {locator} escapes {self._root}")

        try:
            return path.read_bytes()
        except OSError as e:
            raise ResolutionError(f"Could not read {locator}: {e}") from e
