"""Minimal Discord REST client (bot token) for channel messages."""

import logging
from typing import Any, Dict, Optional

import requests

from tickertape.errors import NotificationDeliveryError
from tickertape.notify.render import RenderedMessage
from tickertape.retry import retry_with_backoff

logger = logging.getLogger(__name__)


class TransientDiscordError(Exception):
    """Rate limit or server-side failure worth retrying"""
    pass


_RETRYABLE = (TransientDiscordError, requests.exceptions.ConnectionError, requests.exceptions.Timeout)


class DiscordClient:
    def __init__(
        self,
        token: str,
        api_base: str = "https://discord.com/api/v10",
        timeout: float = 15.0,
        session: Optional[requests.Session] = None,
    ):
        self.api_base = api_base.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({
            'Authorization': f'Bot {token}',
            'User-Agent': 'DiscordBot (https://github.com/tickertape, 1.0)',
        })

    def _check(self, response: requests.Response) -> None:
        status = response.status_code
        if status == 429 or status >= 500:
            raise TransientDiscordError(f"Discord HTTP {status}: {response.text[:200]}")
        if status == 401:
            raise NotificationDeliveryError("Discord rejected the bot token (401)")
        if status == 403:
            raise NotificationDeliveryError("Discord bot lacks permission for this channel (403)")
        if status == 404:
            raise NotificationDeliveryError("Discord channel not found (404)")
        if status >= 400:
            raise NotificationDeliveryError(f"Discord bad request ({status}): {response.text[:200]}")

    @retry_with_backoff(max_retries=3, base_delay=2.0, retry_on=_RETRYABLE)
    def _post(self, path: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        response = self.session.post(f"{self.api_base}{path}", json=payload, timeout=self.timeout)
        self._check(response)
        return response.json() if response.content else {}

    def send_message(self, channel_id: str, message: RenderedMessage) -> Dict[str, Any]:
        """Post `message` to `channel_id`; NotificationDeliveryError on final failure."""
        try:
            result = self._post(f"/channels/{channel_id}/messages", message.to_payload())
        except _RETRYABLE as e:
            raise NotificationDeliveryError(f"Discord delivery to {channel_id} failed: {e}") from e
        except requests.exceptions.RequestException as e:
            raise NotificationDeliveryError(f"Discord delivery to {channel_id} failed: {e}") from e
        logger.debug(f"Discord message sent to {channel_id}")
        return result

    def verify_session(self) -> Dict[str, Any]:
        """Check the token works (GET /users/@me). Raises NotificationDeliveryError."""
        try:
            response = self.session.get(f"{self.api_base}/users/@me", timeout=self.timeout)
            self._check(response)
        except (TransientDiscordError, requests.exceptions.RequestException) as e:
            raise NotificationDeliveryError(f"Could not establish Discord session: {e}") from e
        me = response.json()
        logger.info(f"Discord session established as {me.get('username', '?')}")
        return me
