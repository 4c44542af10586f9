"""Centralized HTTP client for the Webex REST API.

Builds authenticated requests from the auth facade, surfaces non-2xx
responses with the raw error body attached, and retries once when the
token was rotated by a background refresh while a request was in flight.
"""

import logging

import requests

from webex_mcp.auth import WebexAuth
from webex_mcp.errors import UpstreamHttpError, WebexMCPError

logger = logging.getLogger(__name__)


def _clean_params(params: dict | None) -> dict:
    """Drop unset query parameters."""
    return {k: v for k, v in (params or {}).items() if v is not None and v != ""}


class WebexClient:
    """HTTP client for the Webex messaging API."""

    def __init__(
        self,
        auth: WebexAuth,
        session: requests.Session | None = None,
        timeout: int = 30,
    ):
        self.auth = auth
        self.timeout = timeout
        self._session = session or requests.Session()

    # ------------------------------------------------------------------
    # Core request method
    # ------------------------------------------------------------------

    def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict | None = None,
        json: dict | None = None,
    ) -> dict:
        """Send a request and return the parsed JSON body ({} when empty).

        On 401 the request is retried once if the facade now holds a
        different token than the one that was rejected.

        Raises:
            UpstreamHttpError: Non-2xx response (raw body in ``details``).
            WebexMCPError: Transport failure.
        """
        url = self.auth.url(endpoint)

        for attempt in range(2):
            token = self.auth.get_token()
            headers = self.auth.json_headers() if json is not None else self.auth.headers()
            try:
                resp = self._session.request(
                    method,
                    url,
                    params=_clean_params(params),
                    json=json,
                    headers=headers,
                    timeout=self.timeout,
                )
            except requests.exceptions.RequestException as exc:
                raise WebexMCPError(f"Request failed: {exc}", details={"url": url}) from exc

            if resp.status_code == 401 and attempt == 0 and self.auth.get_token() != token:
                logger.info("Token rotated during request, retrying %s %s", method, endpoint)
                continue

            return self._handle_response(resp, url)

        # Should not reach here, but just in case
        raise UpstreamHttpError(401, "Unauthorized", url)

    @staticmethod
    def _handle_response(resp: requests.Response, url: str) -> dict:
        if not resp.ok:
            try:
                body = resp.json()
            except ValueError:
                body = resp.text
            logger.warning("Webex API error %s for %s", resp.status_code, url)
            raise UpstreamHttpError(resp.status_code, body, url)

        if resp.status_code == 204 or not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as exc:
            raise WebexMCPError(
                f"Unexpected non-JSON response (HTTP {resp.status_code})",
                details={"url": url, "body": resp.text[:300]},
            ) from exc

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    def list_messages(
        self,
        room_id: str,
        *,
        parent_id: str | None = None,
        mentioned_people: str | None = None,
        before: str | None = None,
        before_message: str | None = None,
        max: int | None = None,
    ) -> dict:
        """GET /messages. Items are returned newest first."""
        return self.request(
            "GET",
            "/messages",
            params={
                "roomId": room_id,
                "parentId": parent_id,
                "mentionedPeople": mentioned_people,
                "before": before,
                "beforeMessage": before_message,
                "max": max,
            },
        )

    def get_message(self, message_id: str) -> dict:
        return self.request("GET", f"/messages/{message_id}")

    def create_message(
        self,
        *,
        room_id: str | None = None,
        to_person_email: str | None = None,
        text: str | None = None,
        markdown: str | None = None,
        parent_id: str | None = None,
    ) -> dict:
        payload = {
            "roomId": room_id,
            "toPersonEmail": to_person_email,
            "text": text,
            "markdown": markdown,
            "parentId": parent_id,
        }
        return self.request("POST", "/messages", json=_clean_params(payload))

    def delete_message(self, message_id: str) -> dict:
        return self.request("DELETE", f"/messages/{message_id}")

    # ------------------------------------------------------------------
    # Rooms / people
    # ------------------------------------------------------------------

    def list_rooms(
        self,
        *,
        team_id: str | None = None,
        room_type: str | None = None,
        sort_by: str | None = None,
        max: int | None = None,
    ) -> dict:
        return self.request(
            "GET",
            "/rooms",
            params={"teamId": team_id, "type": room_type, "sortBy": sort_by, "max": max},
        )

    def get_room(self, room_id: str) -> dict:
        return self.request("GET", f"/rooms/{room_id}")

    def get_me(self) -> dict:
        return self.request("GET", "/people/me")
