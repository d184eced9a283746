# billflow/notifications/messaging.py
import logging
from typing import Any, Dict, List, Optional

import httpx

from billflow.common.exceptions import MessagingError

logger = logging.getLogger(__name__)

LINE_MESSAGING_API_URL = "https://api.line.me/v2/bot/message/push"


class LineMessagingClient:
    """Pushes messages to a single LINE user through the Messaging API."""

    def __init__(
        self,
        access_token: str,
        api_url: str = LINE_MESSAGING_API_URL,
        http_client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ):
        self.access_token = access_token
        self.api_url = api_url
        self._http_client = http_client
        self._timeout = timeout

    def _get_http_client(self) -> httpx.Client:
        if self._http_client is None:
            self._http_client = httpx.Client(timeout=self._timeout)
        return self._http_client

    def close(self) -> None:
        if self._http_client is not None:
            self._http_client.close()
            self._http_client = None

    def push(self, to: str, messages: List[Dict[str, Any]]) -> None:
        """Send ``messages`` to ``to``. Raises MessagingError unless LINE answers 2xx."""
        try:
            response = self._get_http_client().post(
                self.api_url,
                json={"to": to, "messages": messages},
                headers={
                    "Content-Type": "application/json",
                    "Authorization": f"Bearer {self.access_token}",
                },
            )
        except httpx.HTTPError as e:
            raise MessagingError(f"LINE push request failed: {e}") from e

        if not response.is_success:
            raise MessagingError(
                f"LINE push returned status {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        logger.debug(f"LINE push to {to} accepted ({response.status_code})")
