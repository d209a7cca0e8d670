"""
Shared fakes for the Drive REST API and the Google token endpoint.
"""

import json
import re
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set
from urllib.parse import parse_qs

import httpx
import pytest

FOLDER_MIME = "application/vnd.google-apps.folder"


def _unescape(value: str) -> str:
    return re.sub(r"\\(.)", r"\1", value)


def parse_multipart(request: httpx.Request) -> Dict[str, bytes]:
    """Split a multipart/form-data body into {part name: content}."""
    content_type = request.headers["content-type"]
    boundary = content_type.split("boundary=")[1].strip().encode()
    parts: Dict[str, bytes] = {}

    for chunk in request.content.split(b"--" + boundary):
        if chunk.startswith(b"\r\n"):
            chunk = chunk[2:]
        if not chunk or chunk.startswith(b"--"):
            continue
        header_blob, _, body = chunk.partition(b"\r\n\r\n")
        if body.endswith(b"\r\n"):
            body = body[:-2]
        match = re.search(rb'name="([^"]+)"', header_blob)
        if match:
            parts[match.group(1).decode()] = body

    return parts


class FakeDrive:
    """In-memory stand-in for the subset of Drive v3 used by the client."""

    def __init__(self):
        self.files: Dict[str, Dict[str, Any]] = {}
        self.requests: List[httpx.Request] = []
        self.fail_upload_names: Set[str] = set()
        self.fail_download_ids: Set[str] = set()
        self.upload_status: Optional[int] = None
        self._counter = 0
        self._epoch = datetime(2024, 1, 1)

    # -- seeding -----------------------------------------------------------

    def _next_id(self) -> str:
        self._counter += 1
        return f"file{self._counter:04d}"

    def _created_time(self) -> str:
        stamp = self._epoch + timedelta(seconds=self._counter)
        return stamp.strftime("%Y-%m-%dT%H:%M:%S.000Z")

    def add_file(self, name: str, parent: Optional[str], content: bytes = b"",
                 mime_type: str = "application/octet-stream",
                 properties: Optional[Dict[str, str]] = None) -> str:
        file_id = self._next_id()
        self.files[file_id] = {
            "id": file_id,
            "name": name,
            "mimeType": mime_type,
            "parents": [parent] if parent else [],
            "createdTime": self._created_time(),
            "properties": properties or {},
            "content": content,
            "trashed": False,
        }
        return file_id

    def add_folder(self, name: str, parent: Optional[str] = None) -> str:
        return self.add_file(name, parent, mime_type=FOLDER_MIME)

    def children(self, parent: str, include_folders: bool = False) -> List[Dict[str, Any]]:
        return [
            f for f in self.files.values()
            if parent in f["parents"] and (include_folders or f["mimeType"] != FOLDER_MIME)
        ]

    def folders_named(self, name: str) -> List[Dict[str, Any]]:
        return [f for f in self.files.values() if f["name"] == name and f["mimeType"] == FOLDER_MIME]

    # -- transport ---------------------------------------------------------

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        authorization = request.headers.get("authorization", "")
        if not authorization.startswith("Bearer ") or not authorization[7:].strip():
            return httpx.Response(401, json={"error": "unauthenticated"})

        path = request.url.path
        if path == "/drive/v3/files" and request.method == "GET":
            return self._list(request)
        if path == "/drive/v3/files" and request.method == "POST":
            return self._create(request)
        if path == "/upload/drive/v3/files" and request.method == "POST":
            return self._upload(request)
        if path.startswith("/drive/v3/files/") and request.method == "GET":
            return self._get(request, path.rsplit("/", 1)[1])
        return httpx.Response(404, json={"error": "not found"})

    def _matches(self, f: Dict[str, Any], query: str) -> bool:
        name = re.search(r"name = '((?:[^'\\]|\\.)*)'", query)
        if name and f["name"] != _unescape(name.group(1)):
            return False
        parent = re.search(r"'((?:[^'\\]|\\.)*)' in parents", query)
        if parent and _unescape(parent.group(1)) not in f["parents"]:
            return False
        mime_eq = re.search(r"mimeType = '([^']+)'", query)
        if mime_eq and f["mimeType"] != mime_eq.group(1):
            return False
        mime_ne = re.search(r"mimeType != '([^']+)'", query)
        if mime_ne and f["mimeType"] == mime_ne.group(1):
            return False
        if "trashed = false" in query and f["trashed"]:
            return False
        return True

    def _list(self, request: httpx.Request) -> httpx.Response:
        params = request.url.params
        query = params.get("q", "")
        matches = [f for f in self.files.values() if self._matches(f, query)]

        order_by = params.get("orderBy", "")
        if order_by.startswith("createdTime"):
            matches.sort(key=lambda f: f["createdTime"], reverse=order_by.endswith("desc"))

        page_size = int(params.get("pageSize", 100))
        offset = int(params.get("pageToken", 0))
        page = matches[offset:offset + page_size]

        body: Dict[str, Any] = {"files": [self._resource(f) for f in page]}
        if offset + page_size < len(matches):
            body["nextPageToken"] = str(offset + page_size)
        return httpx.Response(200, json=body)

    def _create(self, request: httpx.Request) -> httpx.Response:
        metadata = json.loads(request.content)
        parents = metadata.get("parents") or [None]
        file_id = self.add_file(metadata["name"], parents[0], mime_type=metadata.get("mimeType", ""))
        return httpx.Response(200, json={"id": file_id})

    def _upload(self, request: httpx.Request) -> httpx.Response:
        if request.url.params.get("uploadType") != "multipart":
            return httpx.Response(400, json={"error": "bad upload type"})

        parts = parse_multipart(request)
        metadata = json.loads(parts["metadata"])

        if self.upload_status is not None:
            return httpx.Response(self.upload_status, json={"error": "upload rejected"})
        if metadata["name"] in self.fail_upload_names:
            return httpx.Response(500, json={"error": "backend error"})

        file_id = self.add_file(
            metadata["name"],
            metadata["parents"][0],
            content=parts["file"],
            properties=metadata.get("properties"),
        )
        return httpx.Response(200, json={"id": file_id})

    def _get(self, request: httpx.Request, file_id: str) -> httpx.Response:
        f = self.files.get(file_id)
        if f is None:
            return httpx.Response(404, json={"error": "not found"})
        if request.url.params.get("alt") == "media":
            if file_id in self.fail_download_ids:
                return httpx.Response(500, json={"error": "backend error"})
            return httpx.Response(200, content=f["content"])
        return httpx.Response(200, json=self._resource(f))

    @staticmethod
    def _resource(f: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "id": f["id"],
            "name": f["name"],
            "mimeType": f["mimeType"],
            "createdTime": f["createdTime"],
            "properties": f["properties"],
        }


class FakeTokenEndpoint:
    """Scripted Google token endpoint."""

    def __init__(self):
        self.requests: List[Dict[str, str]] = []
        self.status_code = 200
        self.access_token: Optional[str] = "access-1"
        self.refresh_token: Optional[str] = "refresh-1"
        self.expires_in = 3600

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        self.requests.append(form)

        if self.status_code != 200:
            return httpx.Response(self.status_code, json={"error": "invalid_grant"})

        body: Dict[str, Any] = {"expires_in": self.expires_in, "token_type": "Bearer"}
        if self.access_token:
            body["access_token"] = self.access_token
        if self.refresh_token and form.get("grant_type") == "authorization_code":
            body["refresh_token"] = self.refresh_token
        return httpx.Response(200, json=body)


class StaticTokenProvider:
    """Token provider that always succeeds."""

    def __init__(self, token: str = "test-token"):
        self.token = token
        self.calls = 0

    async def get_access_token(self) -> str:
        self.calls += 1
        return self.token


@pytest.fixture
def fake_drive():
    return FakeDrive()


@pytest.fixture
def token_endpoint():
    return FakeTokenEndpoint()


@pytest.fixture
def token_provider():
    return StaticTokenProvider()
