"""
RMM Agent Remediator: HTTP(S) client for fetching manifests and downloading installers.
Copyright (C) 2003-2026 ITRS Group Ltd. All rights reserved
"""

from __future__ import annotations

import contextlib
import logging
from http.client import HTTPException
from pathlib import Path
from typing import TYPE_CHECKING
from urllib.parse import urljoin

from geventhttpclient import HTTPClient
from geventhttpclient.url import URL

from .objects import HttpError

if TYPE_CHECKING:
    from typing import Iterator

    from geventhttpclient.response import HTTPSocketPoolResponse

    from .config import HttpConfig

REDIRECT_STATUS_CODES = (301, 302, 303, 307, 308)

logger = logging.getLogger(__name__)


class HttpTransfer:
    """
    Blocking HTTP(S) GET transfers. A new client is used per request and closed afterwards,
    redirects are followed up to the configured limit and any non-2xx response is an HttpError.
    """

    BLOCK_SIZE = 65536

    def __init__(self, config: HttpConfig):
        self._config = config
        self._headers = {'User-Agent': config.user_agent}

    def fetch(self, url: str) -> bytes:
        """Returns the body of the response to a GET request"""
        with self._open(url) as response:
            body = response.read()
        logger.debug("Fetched %d bytes from '%s'", len(body), url)
        return body

    def download(self, url: str, destination: Path) -> Path:
        """Streams the body of the response to a GET request into destination"""
        destination = Path(destination)
        size = 0
        with self._open(url) as response:
            try:
                with destination.open('wb') as f_out:
                    while True:
                        block = response.read(self.BLOCK_SIZE)
                        if not block:
                            break
                        f_out.write(block)
                        size += len(block)
            except OSError as ex:
                raise HttpError(f"Failed to download '{url}' to '{destination}': {ex}") from ex
        logger.info("Downloaded %d bytes from '%s' to '%s'", size, url, destination)
        return destination

    @contextlib.contextmanager
    def _open(self, url: str) -> Iterator[HTTPSocketPoolResponse]:
        current_url = url
        for _ in range(self._config.max_redirects + 1):
            client = self._connect(current_url)
            try:
                try:
                    parsed = URL(current_url)
                    logger.debug("GET '%s'", current_url)
                    response = client.get(parsed.request_uri)
                except (OSError, HTTPException) as ex:
                    raise HttpError(f"Failed to GET '{current_url}': {ex}") from ex

                status = response.status_code
                if status in REDIRECT_STATUS_CODES:
                    location = response.get('location')
                    response.release()
                    if not location:
                        raise HttpError(f"GET '{current_url}' returned {status} without a location")
                    logger.debug("'%s' redirected (%d) to '%s'", current_url, status, location)
                    current_url = urljoin(current_url, location)
                    continue
                if not 200 <= status < 300:
                    response.release()
                    raise HttpError(f"GET '{current_url}' returned HTTP status {status}")

                try:
                    yield response
                except (OSError, HTTPException) as ex:
                    raise HttpError(f"Failed reading response from '{current_url}': {ex}") from ex
                finally:
                    response.release()
                return
            finally:
                client.close()
        raise HttpError(f"GET '{url}' exceeded {self._config.max_redirects} redirects")

    def _connect(self, url: str) -> HTTPClient:
        try:
            return HTTPClient.from_url(
                url,
                headers=self._headers,
                connection_timeout=self._config.connection_timeout,
                network_timeout=self._config.network_timeout,
                insecure=not self._config.check_server_cert,
            )
        except (OSError, HTTPException, ValueError) as ex:
            raise HttpError(f"Invalid or unreachable URL '{url}': {ex}") from ex
