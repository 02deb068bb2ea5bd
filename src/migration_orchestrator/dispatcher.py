"""Dispatching batches to the batch processor workflow."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Final

import requests

from .exceptions import DispatchError

if TYPE_CHECKING:
    from .models import Batch

logger: logging.Logger = logging.getLogger(__name__)

DISPATCH_EVENT_TYPE: Final[str] = "migration-batch"
DEFAULT_API_URL: Final[str] = "https://api.github.com"
_REQUEST_TIMEOUT_SECONDS: Final[int] = 30


def _sanitize_error(error: str, token: str | None) -> str:
    """Remove the token from an error message to prevent leakage."""
    if token:
        return error.replace(token, "***TOKEN***")
    return error


class RepositoryDispatcher:
    """Starts batches through the ``repository_dispatch`` REST endpoint.

    The endpoint answers ``204 No Content`` and never tells which run it
    created; the batch id in the payload is what the run name is built from.
    """

    def __init__(
        self,
        repo_full_name: str,
        token: str,
        *,
        api_url: str = DEFAULT_API_URL,
        orchestrator_run_id: int | None = None,
        session: requests.Session | None = None,
    ) -> None:
        self.repo_full_name: str = repo_full_name
        self.api_url: str = api_url.rstrip("/")
        self.orchestrator_run_id: int | None = orchestrator_run_id
        self._token: str = token
        self._session: requests.Session = session or requests.Session()

    @property
    def dispatch_url(self) -> str:
        return f"{self.api_url}/repos/{self.repo_full_name}/dispatches"

    def build_payload(self, batch: Batch) -> dict[str, Any]:
        return {
            "event_type": DISPATCH_EVENT_TYPE,
            "client_payload": {
                "batch": batch.to_payload(),
                "orchestrator_run_id": self.orchestrator_run_id,
            },
        }

    def dispatch(self, batch: Batch) -> None:
        """Dispatch one batch.

        Raises:
            DispatchError: On network errors or non-2xx responses
        """
        logger.info(f"Dispatching batch {batch.number} with ID {batch.correlation_token}")
        headers = {
            "Authorization": f"token {self._token}",
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": "migration-orchestrator",
        }
        try:
            response = self._session.post(
                self.dispatch_url,
                json=self.build_payload(batch),
                headers=headers,
                timeout=_REQUEST_TIMEOUT_SECONDS,
            )
        except requests.RequestException as e:
            raise DispatchError(None, _sanitize_error(str(e), self._token)) from e

        if not 200 <= response.status_code < 300:
            raise DispatchError(response.status_code, _sanitize_error(response.text, self._token))

        logger.info(f"Successfully dispatched batch {batch.number} with ID {batch.correlation_token}")
