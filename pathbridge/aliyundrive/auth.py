# aliyundrive/auth.py
import base64
import json
import logging

import httpx

from ..config import RefreshOptions
from ..exceptions import ApiError, ConsistencyError, RequestFailedError
from .constants import ACCESS_TOKEN_URI
from .utils import SingleFlight


def token_subject(token: str) -> str:
    """Reads the ``sub`` claim of a JWT without verifying its signature."""
    parts = token.split(".")
    if len(parts) != 3:
        raise ConsistencyError("not a jwt token because of invalid segments")
    payload = parts[1] + "=" * (-len(parts[1]) % 4)
    try:
        data = json.loads(base64.urlsafe_b64decode(payload))
    except ValueError as e:
        raise ConsistencyError("failed to decode jwt token") from e
    sub = data.get("sub") if isinstance(data, dict) else None
    if not sub:
        raise ConsistencyError("failed to decode jwt token")
    return sub


class TokenManager:
    """
    Holds the bearer credentials of one provider and renews them on demand.
    Concurrent refresh requests share a single in-flight exchange.
    """

    def __init__(self, options: RefreshOptions, http: httpx.AsyncClient, api_url: str):
        self.options = options
        self.http = http
        self.api_url = api_url
        self.access_token = ""
        self.refresh_token = options.token
        self._refresh = SingleFlight()

    async def ensure_access_token(self) -> str:
        if not self.access_token:
            await self.refresh()
        return self.access_token

    async def refresh(self):
        await self._refresh.run(self._exchange)

    async def _exchange(self):
        if self.options.mode == "online":
            access_token, refresh_token = await self._refresh_online()
        else:
            access_token, refresh_token = await self._refresh_local()
        self.refresh_token = refresh_token
        self.access_token = access_token
        logging.info(f"AliyunDrive access token refreshed ({self.options.mode} mode).")

    async def _refresh_online(self):
        driver_txt = "alicloud_tv" if self.options.type == "alipanTV" else "alicloud_qr"
        params = {
            "refresh_ui": self.refresh_token,
            "server_use": "true",
            "driver_txt": driver_txt,
        }
        try:
            resp = await self.http.get(self.options.endpoint, params=params)
        except httpx.HTTPError as e:
            raise RequestFailedError(f"failed to request {self.options.endpoint}: {e}") from e
        if resp.is_error:
            raise RequestFailedError(
                f"failed to request {self.options.endpoint}", status_code=resp.status_code
            )
        try:
            data = resp.json()
        except ValueError as e:
            raise ConsistencyError("invalid JSON returned from online refresh API") from e
        if not isinstance(data, dict):
            raise ConsistencyError("invalid JSON returned from online refresh API")

        if not data.get("refresh_token") or not data.get("access_token"):
            if data.get("text"):
                raise ConsistencyError(f"failed to refresh token: {data['text']}")
            raise ConsistencyError("empty token returned from online API")
        return data["access_token"], data["refresh_token"]

    async def _refresh_local(self):
        url = f"{self.api_url}{ACCESS_TOKEN_URI}"
        body = {
            "client_id": self.options.client_id,
            "client_secret": self.options.client_secret,
            "grant_type": "refresh_token",
            "refresh_token": self.refresh_token,
        }
        try:
            resp = await self.http.post(url, json=body)
        except httpx.HTTPError as e:
            raise RequestFailedError(f"failed to request {url}: {e}") from e
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if not isinstance(data, dict):
            data = {}
        if data.get("code"):
            raise ApiError(data["code"], data.get("message"))
        if resp.is_error:
            raise RequestFailedError(f"failed to request {url}", status_code=resp.status_code)
        if not data.get("refresh_token") or not data.get("access_token"):
            raise ConsistencyError("failed to refresh token: missing token")

        # A rotated refresh token must still belong to the same account.
        if token_subject(self.refresh_token) != token_subject(data["refresh_token"]):
            raise ConsistencyError("failed to refresh token: sub not match")
        return data["access_token"], data["refresh_token"]
