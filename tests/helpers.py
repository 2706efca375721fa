"""Test helpers: archive builders and an in-process fake registry."""

import base64
import hashlib
import io
import json
import re
import tarfile
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from aiohttp import web


def sha256_digest(data: bytes) -> str:
    return f"sha256:{hashlib.sha256(data).hexdigest()}"


def add_file(tar: tarfile.TarFile, name: str, content: bytes) -> None:
    info = tarfile.TarInfo(name)
    info.size = len(content)
    tar.addfile(info, fileobj=io.BytesIO(content))


def add_dir(tar: tarfile.TarFile, name: str) -> None:
    info = tarfile.TarInfo(name)
    info.type = tarfile.DIRTYPE
    info.mode = 0o755
    tar.addfile(info)


def add_symlink(tar: tarfile.TarFile, name: str, target: str) -> None:
    info = tarfile.TarInfo(name)
    info.type = tarfile.SYMTYPE
    info.linkname = target
    tar.addfile(info)


def add_hardlink(tar: tarfile.TarFile, name: str, target: str) -> None:
    info = tarfile.TarInfo(name)
    info.type = tarfile.LNKTYPE
    info.linkname = target
    tar.addfile(info)


def create_image_tar(
    tar_path: Path,
    layers: dict[str, bytes],
    config_content: bytes = b'{"architecture":"amd64","os":"linux"}',
    repo_tags: Optional[list[str]] = None,
    config_name: str = "config.json",
) -> Path:
    """Create a docker-save style archive with a single manifest entry."""
    manifest = [
        {
            "Config": config_name,
            "RepoTags": ["demo:v1"] if repo_tags is None else repo_tags,
            "Layers": list(layers),
        }
    ]
    with tarfile.open(tar_path, "w") as tar:
        add_file(tar, "manifest.json", json.dumps(manifest).encode("utf-8"))
        add_file(tar, config_name, config_content)
        for name, content in layers.items():
            add_file(tar, name, content)
    return tar_path


@dataclass
class RecordedRequest:
    method: str
    path: str
    query: dict[str, str]
    headers: dict[str, str]
    body: bytes


@dataclass
class FakeRegistry:
    """Just enough of the distribution API v2 to push images.

    Every request is recorded. ``fail`` maps an operation name (check, probe,
    start, patch, finish, manifest or manifest:<tag>) to a status code the
    registry answers with instead of the normal one.
    """

    username: str = ""
    password: str = ""
    relative_locations: bool = True
    url: str = ""
    blobs: dict[str, bytes] = field(default_factory=dict)
    uploads: dict[str, bytearray] = field(default_factory=dict)
    manifests: dict[tuple[str, str], bytes] = field(default_factory=dict)
    requests: list[RecordedRequest] = field(default_factory=list)
    fail: dict[str, int] = field(default_factory=dict)
    # Docker-Content-Digest sent for manifests; "" omits the header
    manifest_digest: Optional[str] = None

    BLOB = re.compile(r"^/v2/(?P<name>.+)/blobs/(?P<digest>sha256:[a-f0-9]+)$")
    UPLOADS = re.compile(r"^/v2/(?P<name>.+)/blobs/uploads/$")
    UPLOAD = re.compile(r"^/v2/(?P<name>.+)/blobs/uploads/(?P<uuid>[a-z0-9-]+)$")
    MANIFEST = re.compile(r"^/v2/(?P<name>.+)/manifests/(?P<reference>[^/]+)$")

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_route("*", "/{tail:.*}", self.handle)
        return app

    def requests_for(self, method: str, fragment: str = "") -> list[RecordedRequest]:
        return [
            r for r in self.requests if r.method == method and fragment in r.path
        ]

    def _location(self, name: str, upload_id: str, state: int) -> str:
        path = f"/v2/{name}/blobs/uploads/{upload_id}?_state={state}"
        return path if self.relative_locations else f"{self.url}{path}"

    def _authorized(self, request: web.Request) -> bool:
        if not self.username:
            return True
        expected = base64.b64encode(
            f"{self.username}:{self.password}".encode("utf-8")
        ).decode("ascii")
        return request.headers.get("Authorization") == f"Basic {expected}"

    async def handle(self, request: web.Request) -> web.Response:
        body = await request.read()
        self.requests.append(
            RecordedRequest(
                method=request.method,
                path=request.path,
                query=dict(request.query),
                headers=dict(request.headers),
                body=body,
            )
        )
        if not self._authorized(request):
            return web.Response(status=401)

        path = request.path
        method = request.method

        if method == "GET" and path == "/v2/":
            return self._answer(
                "check", 200, headers={"Docker-Distribution-Api-Version": "registry/2.0"}
            )

        match = self.BLOB.match(path)
        if match and method == "HEAD":
            status = 200 if match["digest"] in self.blobs else 404
            return self._answer("probe", status)

        match = self.UPLOADS.match(path)
        if match and method == "POST":
            upload_id = str(uuid.uuid4())
            self.uploads[upload_id] = bytearray()
            return self._answer(
                "start",
                202,
                headers={"Location": self._location(match["name"], upload_id, 0)},
            )

        match = self.UPLOAD.match(path)
        if match and method == "PATCH":
            return self._patch(match["name"], match["uuid"], request, body)
        if match and method == "PUT":
            return self._finish(match["uuid"], request, body)

        match = self.MANIFEST.match(path)
        if match and method == "PUT":
            reference = match["reference"]
            status = self.fail.get(f"manifest:{reference}")
            if status:
                return web.json_response(
                    {"errors": [{"code": "MANIFEST_INVALID", "message": "rejected"}]},
                    status=status,
                )
            self.manifests[(match["name"], reference)] = body
            digest = self.manifest_digest
            if digest is None:
                digest = sha256_digest(body)
            return self._answer(
                "manifest", 201, headers={"Docker-Content-Digest": digest} if digest else {}
            )

        return web.Response(status=404)

    def _answer(
        self, operation: str, status: int, headers: Optional[dict[str, str]] = None
    ) -> web.Response:
        if operation in self.fail:
            return web.Response(status=self.fail[operation])
        return web.Response(status=status, headers=headers)

    def _patch(
        self, name: str, upload_id: str, request: web.Request, body: bytes
    ) -> web.Response:
        if "patch" in self.fail:
            return web.Response(status=self.fail["patch"])
        buffer = self.uploads.get(upload_id)
        if buffer is None or request.query.get("_state") != str(len(buffer)):
            return web.Response(status=404)

        start, end = (int(v) for v in request.headers["Content-Range"].split("-"))
        if start != len(buffer) or end != start + len(body) - 1:
            return web.Response(status=416)

        buffer.extend(body)
        # Move the upload to a new id so a stale location is detectable
        new_id = str(uuid.uuid4())
        self.uploads[new_id] = self.uploads.pop(upload_id)
        return web.Response(
            status=202, headers={"Location": self._location(name, new_id, len(buffer))}
        )

    def _finish(self, upload_id: str, request: web.Request, body: bytes) -> web.Response:
        if "finish" in self.fail:
            return web.Response(status=self.fail["finish"])
        buffer = self.uploads.pop(upload_id, None)
        if buffer is None or request.query.get("_state") != str(len(buffer)):
            return web.Response(status=404)

        buffer.extend(body)
        digest = request.query.get("digest")
        if digest != sha256_digest(bytes(buffer)):
            return web.Response(status=400)

        self.blobs[digest] = bytes(buffer)
        return web.Response(status=201, headers={"Docker-Content-Digest": digest})
