"""
Pytest configuration and fixtures for noto tests.

This module ensures proper test isolation by:
1. Pointing the global config dir at a temp dir and clearing NOTO_* env vars
2. Resetting the config singleton between tests
3. Providing an in-memory fake of the remote HTTP contract (FastAPI app
   served through httpx.ASGITransport)
"""

import itertools
import os
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import pytest
from fastapi import Body, Depends, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel

from noto.services.snapshot_codec import SnapshotCodec
from noto.services.storage import MemoryStorage
from noto.services.sync_client import RemoteSyncClient
from noto.store import NotoStore

REMOTE_BASE_URL = "http://noto.test"

T0 = datetime(2025, 1, 2, 10, 0, tzinfo=timezone.utc)


class FakeClock:
    """可控时间源"""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def empty_remote_state() -> dict:
    return {
        "schemaVersion": 2,
        "settings": {
            "theme": "light",
            "usePersianDigits": False,
            "panelLayout": {"splitRatio": 0.5, "collapsed": "none"},
        },
        "tags": [],
        "checklist": [],
        "notes": [],
    }


class _Credentials(BaseModel):
    username: str
    password: str


class FakeRemote:
    """In-memory mirror of the remote export/import + auth contract."""

    def __init__(self):
        self.users: dict[str, str] = {}
        self.tokens: dict[str, str] = {}
        self.snapshot: dict = empty_remote_state()
        self.imports: list[dict] = []
        self.requests: list[str] = []
        self.fail_export = False
        self.fail_import = False
        self.fail_auth = False
        self._token_ids = itertools.count(1)
        self.app = self._build_app()

    def issue_token(self, username: str) -> str:
        token = f"token-{next(self._token_ids)}"
        self.tokens[token] = username
        return token

    def _build_app(self) -> FastAPI:
        app = FastAPI()
        remote = self

        @app.middleware("http")
        async def record_request(request: Request, call_next):
            # 记录最后一段路径（login / me / export ...），包括被 401 拒绝的请求
            remote.requests.append(request.url.path.rsplit("/", 1)[-1])
            return await call_next(request)

        def current_user(authorization: Optional[str] = Header(None)) -> str:
            if not authorization or not authorization.startswith("Bearer "):
                raise HTTPException(status_code=401, detail="UNAUTHORIZED")
            user = remote.tokens.get(authorization[len("Bearer "):])
            if user is None:
                raise HTTPException(status_code=401, detail="UNAUTHORIZED")
            return user

        @app.post("/api/v1/auth/register", status_code=201)
        def register(body: _Credentials):
            if remote.fail_auth:
                raise HTTPException(status_code=503, detail="DOWN")
            if body.username in remote.users:
                raise HTTPException(status_code=409, detail="USERNAME_TAKEN")
            remote.users[body.username] = body.password
            return {"user": {"username": body.username}, "accessToken": remote.issue_token(body.username)}

        @app.post("/api/v1/auth/login")
        def login(body: _Credentials):
            if remote.fail_auth:
                raise HTTPException(status_code=503, detail="DOWN")
            if remote.users.get(body.username) != body.password:
                raise HTTPException(status_code=401, detail="INVALID_CREDENTIALS")
            return {"user": {"username": body.username}, "accessToken": remote.issue_token(body.username)}

        @app.get("/api/v1/me")
        def me(user: str = Depends(current_user)):
            return {"user": {"username": user}}

        @app.get("/api/v1/export")
        def export(user: str = Depends(current_user)):
            if remote.fail_export:
                raise HTTPException(status_code=500, detail="BOOM")
            return {"exportedAt": "2025-01-01T00:00:00.000Z", "state": remote.snapshot}

        @app.post("/api/v1/import")
        def import_(body: dict = Body(...), user: str = Depends(current_user)):
            if remote.fail_import:
                raise HTTPException(status_code=503, detail="DOWN")
            remote.imports.append(body)
            remote.snapshot = body["state"]
            return {"ok": True}

        return app


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep tests away from ~/.noto and any NOTO_* variables in the shell."""
    for name in list(os.environ):
        if name.startswith("NOTO_"):
            monkeypatch.delenv(name, raising=False)

    import noto.config as config_module

    monkeypatch.setattr(config_module, "DEFAULT_GLOBAL_CONFIG_DIR", tmp_path / "global")
    config_module.reset_config()
    yield
    config_module.reset_config()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def codec(storage):
    return SnapshotCodec(storage)


@pytest.fixture
def store(codec, clock):
    """Local-only store on in-memory storage."""
    return NotoStore(codec, clock=clock)


@pytest.fixture
def fake_remote():
    return FakeRemote()


@pytest.fixture
def remote_transport(fake_remote):
    return httpx.ASGITransport(app=fake_remote.app)


@pytest.fixture
async def sync_client(storage, remote_transport, clock):
    client = RemoteSyncClient(
        storage,
        base_url=REMOTE_BASE_URL,
        transport=remote_transport,
        clock=clock,
    )
    yield client
    await client.aclose()


@pytest.fixture
def make_synced_store(codec, clock, sync_client):
    """Factory: store wired to the fake remote with a short debounce window."""

    def factory(debounce_seconds: float = 0.05) -> NotoStore:
        return NotoStore(codec, sync_client, debounce_seconds=debounce_seconds, clock=clock)

    return factory
