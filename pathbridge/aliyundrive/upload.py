# aliyundrive/upload.py
import base64
import hashlib
import logging
import math
from datetime import datetime, timezone
from typing import Optional

import httpx

from ..exceptions import ApiError, ConsistencyError, RequestFailedError
from ..storage.base import ProgressCallback
from ..storage.dto import Progress
from .client import AliyunDriveClient
from .constants import (
    BASE_PART_SIZE,
    COMPLETE_URI,
    CREATE_URI,
    INTERNAL_UPLOAD_HOST,
    PRE_HASH_SIZE,
    PROOF_CODE_LENGTH,
    PUBLIC_UPLOAD_HOST,
    RAPID_UPLOAD_MIN_SIZE,
)
from .limiter import LimiterType
from .types import CreateResponse

GB = 1024 * 1024 * 1024
TB = 1024 * GB

# (exclusive lower bound on the total size, part size), largest first.
PART_SIZE_BANDS = (
    (1 * TB, 5 * GB),
    (768 * GB, 109_951_163),
    (512 * GB, 82_463_373),
    (384 * GB, 54_975_582),
    (256 * GB, 41_231_687),
    (128 * GB, 27_487_791),
)


def get_part_size(size: int) -> int:
    """Picks a part size that keeps the part count under the server's limit."""
    for threshold, part_size in PART_SIZE_BANDS:
        if size > threshold:
            return part_size
    return BASE_PART_SIZE


def count_parts(size: int, part_size: int) -> int:
    if part_size <= 0:
        return 0
    return math.ceil(size / part_size)


def calc_proof_code(access_token: str, data: bytes) -> str:
    """
    Proves possession of ``data``: base64 of up to 8 bytes starting at an offset
    derived from the md5 of the current access token.
    """
    if not data:
        return ""
    digest = hashlib.md5(access_token.encode()).hexdigest()[:16]
    index = int(digest, 16) % len(data)
    return base64.b64encode(data[index:index + PROOF_CODE_LENGTH]).decode()


class Uploader:
    """Creates upload sessions and pushes the payload part by part."""

    def __init__(self, client: AliyunDriveClient):
        self.client = client

    async def upload(
        self,
        parent_id: str,
        name: str,
        data: bytes,
        on_progress: Optional[ProgressCallback] = None,
    ) -> CreateResponse:
        options = self.client.options
        size = len(data)
        part_size = get_part_size(size)
        count = count_parts(size, part_size)
        now = datetime.now(timezone.utc).isoformat()

        payload = {
            "drive_id": self.client.drive_id,
            "parent_file_id": parent_id,
            "name": name,
            "type": "file",
            "check_name_mode": "ignore",
            "local_modified_at": now,
            "local_created_at": now,
            "part_info_list": [{"part_number": i + 1} for i in range(count)],
        }

        rapid = options.rapid_upload and size > RAPID_UPLOAD_MIN_SIZE
        if rapid:
            payload["size"] = size
            payload["pre_hash"] = hashlib.sha1(data[:PRE_HASH_SIZE]).hexdigest()

        try:
            session = await self._create(payload)
        except ApiError as e:
            if not (rapid and e.code == "PreHashMatched"):
                raise
            logging.info(f"Pre-hash matched for {name}, attempting rapid upload.")
            del payload["pre_hash"]
            payload["proof_version"] = "v1"
            payload["content_hash_name"] = "sha1"
            payload["content_hash"] = hashlib.sha1(data).hexdigest()
            payload["proof_code"] = calc_proof_code(self.client.tokens.access_token, data)
            session = await self._create(payload)

        if session.rapid_upload:
            logging.info(f"Rapid upload hit for {name} ({size} bytes).")
        else:
            await self._upload_parts(session, data, part_size, on_progress)

        await self.client.request(
            LimiterType.OTHER,
            COMPLETE_URI,
            {
                "drive_id": self.client.drive_id,
                "file_id": session.file_id,
                "upload_id": session.upload_id,
            },
        )
        return session

    async def _create(self, payload: dict) -> CreateResponse:
        return CreateResponse.model_validate(
            await self.client.request(LimiterType.OTHER, CREATE_URI, payload)
        )

    async def _upload_parts(
        self,
        session: CreateResponse,
        data: bytes,
        part_size: int,
        on_progress: Optional[ProgressCallback],
    ):
        size = len(data)
        uploaded = 0
        for i, part in enumerate(session.part_info_list):
            chunk = data[i * part_size:min((i + 1) * part_size, size)]
            if not part.upload_url:
                raise ConsistencyError("missing upload url")
            await self._put_part(part.upload_url, chunk)
            uploaded += len(chunk)
            logging.debug(f"Uploaded part {part.part_number} ({uploaded}/{size} bytes)")
            if on_progress:
                on_progress(Progress(current=uploaded, total=size))

    async def _put_part(self, upload_url: str, chunk: bytes):
        url = upload_url
        if self.client.options.internal_upload:
            url = upload_url.replace(PUBLIC_UPLOAD_HOST, INTERNAL_UPLOAD_HOST)
        try:
            resp = await self.client.http.put(url, content=chunk)
        except httpx.HTTPError as e:
            raise RequestFailedError(f"upload failed: {e}") from e
        # 409 means the part is already there.
        if resp.is_error and resp.status_code != 409:
            raise RequestFailedError(f"upload status: {resp.status_code}", status_code=resp.status_code)
