# aliyundrive/client.py
import logging
from typing import Any, Dict, Optional

import httpx

from ..config import AliyunDriveOptions
from ..exceptions import ApiError, ConsistencyError, RequestFailedError
from .auth import TokenManager
from .constants import GET_DRIVE_INFO_URI, TOKEN_ERROR_CODES, UNKNOWN_ACCOUNT
from .limiter import AccountLimiter, LimiterRegistry, LimiterType
from .types import DriveInfo
from .utils import SingleFlight


class AliyunDriveClient:
    """
    Transport for the AliyunDrive open API.

    Every call waits for a valid access token and its rate-limiter slot, then
    POSTs JSON with bearer auth. A 401 or a token error code triggers exactly one
    refresh-and-retry; any second failure is surfaced to the caller.
    """

    def __init__(
        self,
        options: AliyunDriveOptions,
        http: httpx.AsyncClient,
        limiters: LimiterRegistry,
    ):
        self.options = options
        self.http = http
        self.tokens = TokenManager(options.refresh, http, options.api_url)
        self.limiters = limiters
        self.account_id = UNKNOWN_ACCOUNT
        self.limiter: AccountLimiter = limiters.acquire(UNKNOWN_ACCOUNT)
        self.drive_id = ""
        self._init = SingleFlight()

    async def ensure_ready(self):
        """Resolves the drive id (and the account limiter) once per client."""
        if self.drive_id:
            return
        await self._init.run(self._initialize)

    async def _initialize(self):
        await self.tokens.ensure_access_token()
        info = DriveInfo.model_validate(
            await self.request(LimiterType.OTHER, GET_DRIVE_INFO_URI)
        )
        drive_id = (
            getattr(info, f"{self.options.drive_type}_drive_id")
            or info.default_drive_id
            or info.resource_drive_id
            or info.backup_drive_id
        )
        if not drive_id:
            raise ConsistencyError("Failed to resolve drive id")
        self.drive_id = drive_id
        logging.info(f"AliyunDrive drive '{drive_id}' ({self.options.drive_type}) is ready.")

        if info.user_id and info.user_id != self.account_id:
            self._migrate_limiter(info.user_id)

    def _migrate_limiter(self, account_id: str):
        previous = self.account_id
        self.limiter = self.limiters.acquire(account_id)
        self.account_id = account_id
        self.limiters.release(previous)
        logging.debug(f"Rate limiter moved from account '{previous}' to '{account_id}'")

    def release(self):
        self.limiters.release(self.account_id)

    async def request(
        self,
        kind: LimiterType,
        uri: str,
        body: Optional[Dict[str, Any]] = None,
        retry: bool = False,
    ) -> Dict[str, Any]:
        token = await self.tokens.ensure_access_token()
        await self.limiter.wait(kind)

        url = f"{self.options.api_url}{uri}"
        try:
            resp = await self.http.post(
                url, json=body, headers={"Authorization": f"Bearer {token}"}
            )
        except httpx.HTTPError as e:
            raise RequestFailedError(f"failed to request {url}: {e}") from e

        data: Dict[str, Any] = {}
        if resp.content:
            try:
                data = resp.json()
            except ValueError as e:
                if not resp.is_error:
                    raise RequestFailedError(f"Invalid JSON response from {uri}") from e
            if not isinstance(data, dict):
                data = {}
        code = data.get("code")

        if resp.is_error and not code:
            if not retry and resp.status_code == 401:
                logging.warning(f"{uri} returned 401, refreshing access token and retrying.")
                await self.tokens.refresh()
                return await self.request(kind, uri, body, retry=True)
            raise RequestFailedError(
                f"Request to {uri} failed with status {resp.status_code}",
                status_code=resp.status_code,
            )

        if code:
            if not retry and code in TOKEN_ERROR_CODES:
                logging.warning(f"{uri} returned {code}, refreshing access token and retrying.")
                await self.tokens.refresh()
                return await self.request(kind, uri, body, retry=True)
            raise ApiError(code, data.get("message"))

        return data
