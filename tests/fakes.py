# tests/fakes.py
import base64
import hashlib
import itertools
import json
from urllib.parse import urlparse

import httpx

from pathbridge.aliyundrive.limiter import LimiterType

ONLINE_HOST = "api.oplist.org"
UPLOAD_HOST = "cn-beijing-data.aliyundrive.net"
DOWNLOAD_HOST = "download.example.com"

# Limiter intervals that never make a caller wait.
NO_WAIT = {kind: 0.0 for kind in LimiterType}


def make_jwt(sub: str) -> str:
    """Builds an unsigned JWT carrying only a ``sub`` claim."""

    def encode(obj):
        raw = json.dumps(obj).encode()
        return base64.urlsafe_b64encode(raw).decode().rstrip("=")

    return f"{encode({'alg': 'none'})}.{encode({'sub': sub})}.signature"


class FakeAliyunDrive:
    """
    An in-memory AliyunDrive open API served through httpx.MockTransport.
    Every request is recorded in ``calls`` as (method, path, json body or None).
    """

    def __init__(self, user_id: str = "user-1", page_limit=None):
        self.user_id = user_id
        self.page_limit = page_limit
        self.items = {"root": {"file_id": "root", "name": "root", "type": "folder", "parent": None}}
        self.blobs = {}
        self.sessions = {}
        self.calls = []
        self.access_token = ""
        self.refresh_count = 0
        self.next_refresh_sub = user_id
        self.download_urls = {}
        self.failing_parts = set()
        self.put_hosts = []
        self._ids = itertools.count(1)
        self.transport = httpx.MockTransport(self.handle)

    # --- Helpers for tests ---

    def http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport)

    def add_folder(self, parent_id: str, name: str) -> str:
        file_id = f"folder-{next(self._ids)}"
        self.items[file_id] = {"file_id": file_id, "name": name, "type": "folder", "parent": parent_id}
        return file_id

    def add_file(self, parent_id: str, name: str, data: bytes) -> str:
        file_id = f"file-{next(self._ids)}"
        self.items[file_id] = {"file_id": file_id, "name": name, "type": "file", "parent": parent_id}
        self.blobs[file_id] = data
        return file_id

    def children(self, parent_id: str):
        return [item for item in self.items.values() if item["parent"] == parent_id]

    def expire_token(self):
        self.access_token = "expired"

    def api_calls(self, path: str):
        return [body for method, p, body in self.calls if p == path]

    # --- Transport ---

    def handle(self, request: httpx.Request) -> httpx.Response:
        url = urlparse(str(request.url))
        body = json.loads(request.content) if request.content and request.method == "POST" else None
        self.calls.append((request.method, url.path, body))

        if url.netloc == ONLINE_HOST:
            return self._refresh(dict(request.url.params)["refresh_ui"])
        if url.netloc == DOWNLOAD_HOST:
            data = self.blobs[url.path.strip("/")]
            return httpx.Response(200, content=data, headers={"content-length": str(len(data))})
        if request.method == "PUT":
            self.put_hosts.append(url.netloc)
            return self._put_part(url.path, request.content)

        if url.path == "/oauth/access_token":
            return self._refresh(body["refresh_token"])
        if request.headers.get("authorization") != f"Bearer {self.access_token}":
            return httpx.Response(401, json={"code": "AccessTokenInvalid", "message": "invalid token"})

        handler = getattr(self, "_" + url.path.rsplit("/", 1)[-1], None)
        if handler is None:
            return httpx.Response(404, json={"code": "NotFound.Api", "message": url.path})
        return handler(body or {})

    def _refresh(self, refresh_token: str) -> httpx.Response:
        self.refresh_count += 1
        self.access_token = f"access-{self.refresh_count}"
        return httpx.Response(
            200,
            json={"access_token": self.access_token, "refresh_token": make_jwt(self.next_refresh_sub)},
        )

    def _getDriveInfo(self, body):
        return httpx.Response(200, json={"default_drive_id": "drive-1", "user_id": self.user_id})

    def _item_json(self, item):
        data = {
            "file_id": item["file_id"],
            "drive_id": "drive-1",
            "parent_file_id": item["parent"],
            "name": item["name"],
            "type": item["type"],
            "created_at": "2024-01-01T00:00:00.000Z",
            "updated_at": "2024-01-02T00:00:00.000Z",
        }
        if item["type"] == "file":
            data["size"] = len(self.blobs.get(item["file_id"], b""))
        return data

    def _list(self, body):
        items = self.children(body["parent_file_id"])
        limit = body.get("limit", 100)
        if self.page_limit:
            limit = min(limit, self.page_limit)
        start = int(body.get("marker") or 0)
        page = items[start:start + limit]
        end = start + limit
        return httpx.Response(
            200,
            json={
                "items": [self._item_json(item) for item in page],
                "next_marker": str(end) if end < len(items) else "",
            },
        )

    def _getDownloadUrl(self, body):
        file_id = body["file_id"]
        url = self.download_urls.get(file_id, f"https://{DOWNLOAD_HOST}/{file_id}")
        return httpx.Response(200, json={"url": url, "expiration": "2024-01-01T04:00:00.000Z"})

    def _create(self, body):
        parent, name = body["parent_file_id"], body["name"]
        if body["type"] == "folder":
            for item in self.children(parent):
                if item["name"] == name:
                    return httpx.Response(200, json={"file_id": item["file_id"], "file_name": name, "type": "folder"})
            file_id = self.add_folder(parent, name)
            return httpx.Response(200, json={"file_id": file_id, "file_name": name, "type": "folder"})

        if "pre_hash" in body:
            for blob in self.blobs.values():
                if _sha1(blob[:1024]) == body["pre_hash"]:
                    return httpx.Response(409, json={"code": "PreHashMatched", "message": "pre hash matched"})
        if "content_hash" in body:
            for blob in list(self.blobs.values()):
                if _sha1(blob) == body["content_hash"]:
                    file_id = self.add_file(parent, name, blob)
                    upload_id = f"upload-{next(self._ids)}"
                    self.sessions[upload_id] = {"file_id": file_id, "done": True}
                    return httpx.Response(
                        200,
                        json={"file_id": file_id, "upload_id": upload_id, "rapid_upload": True, "part_info_list": []},
                    )

        upload_id = f"upload-{next(self._ids)}"
        file_id = f"file-{next(self._ids)}"
        parts = [
            {
                "part_number": p["part_number"],
                "upload_url": f"https://{UPLOAD_HOST}/{upload_id}/{p['part_number']}",
            }
            for p in body.get("part_info_list", [])
        ]
        self.sessions[upload_id] = {
            "file_id": file_id,
            "parent": parent,
            "name": name,
            "parts": {},
            "done": False,
        }
        return httpx.Response(
            200,
            json={"file_id": file_id, "upload_id": upload_id, "rapid_upload": False, "part_info_list": parts},
        )

    def _put_part(self, path: str, content: bytes) -> httpx.Response:
        upload_id, part_number = path.strip("/").split("/")
        if int(part_number) in self.failing_parts:
            return httpx.Response(500)
        parts = self.sessions[upload_id]["parts"]
        if int(part_number) in parts:
            return httpx.Response(409)
        parts[int(part_number)] = content
        return httpx.Response(200)

    def _complete(self, body):
        session = self.sessions[body["upload_id"]]
        if not session["done"]:
            data = b"".join(session["parts"][n] for n in sorted(session["parts"]))
            file_id = session["file_id"]
            self.items[file_id] = {"file_id": file_id, "name": session["name"], "type": "file", "parent": session["parent"]}
            self.blobs[file_id] = data
            session["done"] = True
        return httpx.Response(200, json=self._item_json(self.items[session["file_id"]]))

    def _copy(self, body):
        src = self.items[body["file_id"]]
        file_id = self.add_file(body["to_parent_file_id"], src["name"], self.blobs[src["file_id"]])
        return httpx.Response(200, json={"file_id": file_id, "drive_id": "drive-1"})

    def _update(self, body):
        self.items[body["file_id"]]["name"] = body["name"]
        return httpx.Response(200, json=self._item_json(self.items[body["file_id"]]))

    def _move(self, body):
        item = self.items[body["file_id"]]
        item["parent"] = body["to_parent_file_id"]
        if body.get("new_name"):
            item["name"] = body["new_name"]
        return httpx.Response(200, json={"file_id": item["file_id"], "drive_id": "drive-1"})

    def _drop(self, file_id):
        for child in self.children(file_id):
            self._drop(child["file_id"])
        self.items.pop(file_id, None)
        self.blobs.pop(file_id, None)

    def _delete(self, body):
        self._drop(body["file_id"])
        return httpx.Response(200, json={})

    def _trash(self, body):
        self._drop(body["file_id"])
        return httpx.Response(202, json={})


def _sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()
