import threading

import httpx

from fiscal_indexer.config.settings import Settings
from fiscal_indexer.logging.logger import Log
from fiscal_indexer.repository.exceptions import RepositoryConnectionError

PLATFORM_PATH = "/DocuWare/Platform/"


class ConnectionProvider:
    """Owns the one authenticated DocuWare HTTP session of the process.

    The session is opened on first use and reused until ``close()``.
    Creation is serialised, so concurrent first callers log on only once.
    """

    def __init__(self, settings: Settings, transport: httpx.BaseTransport | None = None) -> None:
        self._settings = settings
        self._transport = transport
        self._client: httpx.Client | None = None
        self._lock = threading.Lock()

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def get_client(self) -> httpx.Client:
        client = self._client
        if client is not None:
            return client
        with self._lock:
            if self._client is None:
                self._client = self._connect()
            return self._client

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None
                Log.info("DocuWare connection closed")

    def _connect(self) -> httpx.Client:
        base_url = self._settings.docuware_uri.rstrip("/") + PLATFORM_PATH
        Log.info(f"Connecting to DocuWare at {base_url}")
        client = httpx.Client(
            base_url=base_url,
            headers={"Accept": "application/json"},
            timeout=self._settings.docuware_timeout_seconds,
            transport=self._transport,
            follow_redirects=True,
        )
        try:
            response = client.post(
                "Account/Logon",
                data={
                    "UserName": self._settings.docuware_username,
                    "Password": self._settings.docuware_password,
                    "Organization": self._settings.docuware_organization,
                    "RememberMe": "false",
                    "RedirectToMyselfInCaseOfError": "false",
                },
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            client.close()
            raise RepositoryConnectionError(f"DocuWare logon failed: {exc}") from exc
        Log.info("DocuWare connection established")
        return client
