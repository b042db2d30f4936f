"""
Remote Sync Client - 远端同步客户端

Isolates every piece of network-contract knowledge from the store:

- bootstrap_auth: 匿名账号（自动注册 + 登录），凭证持久化复用
- pull: GET /export，远端三个集合全空时返回 None
- push: POST /import {mode: "replace"}，整体覆盖远端快照

单位换算：远端 splitRatio 为 0.2-0.8 小数，本地为 0-100 百分比。
"""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Optional

import httpx

from noto.config import DEFAULT_AUTH_KEY, NotoConfig
from noto.core.identifiers import generate_id, repair_identifiers
from noto.core.timeutil import isoformat_z, now_utc
from noto.exceptions import AuthUnavailable, StorageQuotaExceeded, SyncFailed
from noto.models.state import CURRENT_SCHEMA_VERSION, AppState
from noto.services.storage import KeyValueStorage

logger = logging.getLogger(__name__)

REMOTE_MIN_SPLIT = 0.2
REMOTE_MAX_SPLIT = 0.8
REMOTE_DEFAULT_SPLIT = 0.5


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


@dataclass
class AuthCredentials:
    """匿名凭证三元组"""

    username: str
    password: str
    access_token: str = ""

    def to_json(self) -> str:
        data = asdict(self)
        return json.dumps(
            {"username": data["username"], "password": data["password"], "accessToken": data["access_token"]}
        )

    @classmethod
    def from_json(cls, raw: Optional[str]) -> Optional["AuthCredentials"]:
        """解析持久化凭证，不完整或损坏时返回 None"""
        if not raw:
            return None
        try:
            data = json.loads(raw.encode("utf-8"))
        except (UnicodeEncodeError, json.JSONDecodeError):
            return None
        if not isinstance(data, dict):
            return None
        username, password = data.get("username"), data.get("password")
        if not (isinstance(username, str) and username and isinstance(password, str) and password):
            return None
        token = data.get("accessToken")
        return cls(username=username, password=password, access_token=token if isinstance(token, str) else "")

    @classmethod
    def generate(cls) -> "AuthCredentials":
        return cls(username=f"noto_{generate_id()[:8]}", password=generate_id().replace("-", ""))


# === 远端 ⇄ 本地 形态映射 ===


def remote_has_data(remote_state: Any) -> bool:
    """True when the remote snapshot holds at least one tag, item or note."""
    if not isinstance(remote_state, dict):
        return False
    return any(_as_list(remote_state.get(name)) for name in ("tags", "checklist", "notes"))


def map_remote_to_local(remote_state: dict, now: datetime) -> AppState:
    """Map the remote ``state`` shape onto a local AppState.

    The remote carries no timestamps, so ``createdAt``/``updatedAt`` are set
    to ``now``. Ids are repaired before returning.
    """
    settings = remote_state.get("settings") if isinstance(remote_state.get("settings"), dict) else {}
    layout = settings.get("panelLayout") if isinstance(settings.get("panelLayout"), dict) else {}

    raw_split = layout.get("splitRatio", REMOTE_DEFAULT_SPLIT)
    if isinstance(raw_split, bool) or not isinstance(raw_split, (int, float)):
        raw_split = REMOTE_DEFAULT_SPLIT
    local_split = _clamp(float(raw_split), REMOTE_MIN_SPLIT, REMOTE_MAX_SPLIT) * 100

    stamp = isoformat_z(now)

    checklist = [
        {
            "id": c.get("id"),
            "title": c.get("title") or "",
            "descriptionHtml": c.get("descriptionHtml") or "",
            "checked": bool(c.get("checked")),
            "pinned": bool(c.get("pinned")),
            "archived": bool(c.get("archived")),
            "tags": c.get("tags") or [],
            "order": c.get("order") if isinstance(c.get("order"), int) else i,
            "createdAt": stamp,
            "updatedAt": stamp,
            "alarm": c.get("alarm"),
        }
        for i, c in enumerate(_as_list(remote_state.get("checklist")))
        if isinstance(c, dict)
    ]

    notes = [
        {
            "id": n.get("id"),
            "title": n.get("title") or "",
            "html": n.get("html") or "",
            "contentJson": n.get("contentJson"),
            "pinned": bool(n.get("pinned")),
            "archived": bool(n.get("archived")),
            "tags": n.get("tags") or [],
            "order": n.get("order") if isinstance(n.get("order"), int) else i,
            "createdAt": stamp,
            "updatedAt": stamp,
            "alarm": n.get("alarm"),
        }
        for i, n in enumerate(_as_list(remote_state.get("notes")))
        if isinstance(n, dict)
    ]

    tags = [
        {"id": t.get("id"), "title": t.get("title") or "", "colorKey": t.get("colorKey")}
        for t in _as_list(remote_state.get("tags"))
        if isinstance(t, dict)
    ]

    local = AppState.model_validate(
        {
            "schemaVersion": CURRENT_SCHEMA_VERSION,
            "settings": {
                "theme": "dark" if settings.get("theme") == "dark" else "light",
                "usePersianDigits": bool(settings.get("usePersianDigits")),
                "panelLayout": {"splitRatio": local_split, "collapsed": layout.get("collapsed") or "none"},
            },
            "tags": tags,
            "checklist": checklist,
            "notes": notes,
        }
    )
    return repair_identifiers(local)


def map_local_to_remote(state: AppState) -> dict:
    """Map a local AppState onto the remote ``state`` shape (no timestamps)."""
    layout = state.settings.panel_layout
    return {
        "schemaVersion": CURRENT_SCHEMA_VERSION,
        "settings": {
            "theme": state.settings.theme.value,
            "usePersianDigits": state.settings.use_persian_digits,
            "panelLayout": {
                "splitRatio": _clamp(layout.split_ratio / 100, REMOTE_MIN_SPLIT, REMOTE_MAX_SPLIT),
                "collapsed": layout.collapsed.value,
            },
        },
        "tags": [{"id": t.id, "title": t.title, "colorKey": t.color_key} for t in state.tags],
        "checklist": [
            {
                "id": c.id,
                "title": c.title,
                "descriptionHtml": c.description_html,
                "checked": c.checked,
                "pinned": c.pinned,
                "archived": c.archived,
                "tags": list(c.tags),
                "order": c.order,
                "alarm": c.alarm.model_dump(mode="json", by_alias=True) if c.alarm else None,
            }
            for c in state.checklist
        ],
        "notes": [
            {
                "id": n.id,
                "title": n.title,
                "html": n.html,
                "contentJson": n.content_json,
                "pinned": n.pinned,
                "archived": n.archived,
                "tags": list(n.tags),
                "order": n.order,
                "alarm": n.alarm.model_dump(mode="json", by_alias=True) if n.alarm else None,
            }
            for n in state.notes
        ],
    }


class RemoteSyncClient:
    """
    远端同步客户端

    特点：
    - 通过 httpx.AsyncClient 调用 REST 接口
    - Bearer token 认证（login/register 除外）
    - 所有网络失败统一转换为 SyncFailed / AuthUnavailable
    """

    def __init__(
        self,
        storage: KeyValueStorage,
        *,
        base_url: str,
        api_prefix: str = "/api/v1",
        auth_key: str = DEFAULT_AUTH_KEY,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        clock: Callable[[], datetime] = now_utc,
    ):
        """
        初始化同步客户端

        Args:
            storage: 凭证持久化介质
            base_url: 服务根地址（如 http://localhost:8080）
            api_prefix: API 路径前缀
            auth_key: 凭证键名
            timeout: HTTP 超时（秒），None 使用 httpx 默认值
            transport: 自定义传输层（测试用）
            clock: 时间源
        """
        prefix = api_prefix.strip("/")
        self.base_url = f"{base_url.rstrip('/')}/{prefix}" if prefix else base_url.rstrip("/")
        self.storage = storage
        self.auth_key = auth_key
        self.timeout = timeout
        self._transport = transport
        self._clock = clock
        self._client: Optional[httpx.AsyncClient] = None
        self._credentials: Optional[AuthCredentials] = None
        self._authenticated = False

    @classmethod
    def from_config(
        cls,
        config: NotoConfig,
        storage: KeyValueStorage,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "RemoteSyncClient":
        return cls(
            storage,
            base_url=config.sync.api_base_url,
            api_prefix=config.sync.api_prefix,
            auth_key=config.auth_key,
            timeout=config.sync.request_timeout,
            transport=transport,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        """延迟初始化 HTTP 客户端"""
        if self._client is None:
            kwargs: dict[str, Any] = {"base_url": self.base_url}
            if self.timeout is not None:
                kwargs["timeout"] = self.timeout
            if self._transport is not None:
                kwargs["transport"] = self._transport
            self._client = httpx.AsyncClient(**kwargs)
        return self._client

    @property
    def credentials(self) -> Optional[AuthCredentials]:
        return self._credentials

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    async def aclose(self):
        """关闭 HTTP 客户端"""
        if self._client:
            await self._client.aclose()
            self._client = None

    # ============ Credentials ============

    def _read_credentials(self) -> Optional[AuthCredentials]:
        return AuthCredentials.from_json(self.storage.read(self.auth_key))

    def _write_credentials(self, creds: AuthCredentials) -> None:
        try:
            self.storage.write(self.auth_key, creds.to_json())
        except (OSError, StorageQuotaExceeded) as e:
            # 凭证写不进去只影响下次启动，不影响本次同步
            logger.warning(f"Failed to persist credentials: {e}")

    # ============ HTTP ============

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Optional[dict] = None,
        credentials: Optional[AuthCredentials] = None,
    ) -> httpx.Response:
        headers = {"Accept": "application/json"}
        creds = credentials or self._credentials
        if creds and creds.access_token:
            headers["Authorization"] = f"Bearer {creds.access_token}"
        return await self.client.request(method, path, json=json_body, headers=headers)

    async def _send(self, method: str, path: str, json_body: Optional[dict] = None) -> httpx.Response:
        try:
            response = await self._request(method, path, json_body=json_body)
        except httpx.HTTPError as e:
            raise SyncFailed(f"{method} {path} failed: {e}") from e

        if response.status_code == 401:
            # token 失效，下次 bootstrap_auth 重新登录
            self._authenticated = False
        if not response.is_success:
            raise SyncFailed(
                f"{method} {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response

    # ============ Auth ============

    async def bootstrap_auth(self) -> AuthCredentials:
        """确保已认证（幂等）

        Returns:
            当前有效凭证

        Raises:
            AuthUnavailable: 探测、登录、注册全部失败
        """
        if self._authenticated and self._credentials is not None:
            return self._credentials

        try:
            creds = await self._authenticate()
        except httpx.HTTPError as e:
            raise AuthUnavailable(f"Auth chain failed: {e}") from e

        self._credentials = creds
        self._authenticated = True
        return creds

    async def _authenticate(self) -> AuthCredentials:
        existing = self._read_credentials()
        if existing and existing.access_token and await self._probe(existing):
            logger.debug(f"Reusing persisted token for {existing.username}")
            return existing

        creds = existing or AuthCredentials.generate()

        # login -> register -> login
        try:
            return await self._login(creds)
        except AuthUnavailable as e:
            logger.debug(f"Initial login failed, registering: {e}")

        await self._register(creds)
        return await self._login(creds)

    async def _probe(self, creds: AuthCredentials) -> bool:
        try:
            response = await self._request("GET", "/me", credentials=creds)
        except httpx.HTTPError as e:
            logger.debug(f"Identity probe failed: {e}")
            return False
        return response.is_success

    async def _login(self, creds: AuthCredentials) -> AuthCredentials:
        response = await self.client.post(
            "/auth/login",
            json={"username": creds.username, "password": creds.password},
        )
        if not response.is_success:
            raise AuthUnavailable(f"Login failed: HTTP {response.status_code}")
        try:
            token = response.json().get("accessToken")
        except (ValueError, AttributeError) as e:
            raise AuthUnavailable("Login response is not a JSON object") from e
        if not isinstance(token, str) or not token:
            raise AuthUnavailable("Login response carries no accessToken")

        authed = AuthCredentials(username=creds.username, password=creds.password, access_token=token)
        self._write_credentials(authed)
        return authed

    async def _register(self, creds: AuthCredentials) -> None:
        response = await self.client.post(
            "/auth/register",
            json={"username": creds.username, "password": creds.password},
        )
        if response.status_code == 409:
            logger.debug(f"User {creds.username} already registered")
        elif not response.is_success:
            # 注册失败仍然尝试登录
            logger.debug(f"Register returned HTTP {response.status_code}")

    # ============ Snapshot transfer ============

    async def pull(self) -> Optional[AppState]:
        """拉取远端完整快照

        Returns:
            映射后的本地状态；远端无数据时返回 None

        Raises:
            SyncFailed: 网络或 HTTP 错误
        """
        response = await self._send("GET", "/export")
        try:
            payload = response.json()
        except ValueError as e:
            raise SyncFailed("Export response is not JSON") from e

        remote_state = payload.get("state") if isinstance(payload, dict) else None
        if not remote_has_data(remote_state):
            logger.info("Remote snapshot is empty")
            return None
        return map_remote_to_local(remote_state, self._clock())

    async def push(self, state: AppState) -> None:
        """整体覆盖远端快照

        Raises:
            AuthUnavailable: 需要重新认证但失败
            SyncFailed: 网络或 HTTP 错误
        """
        await self.bootstrap_auth()
        await self._send("POST", "/import", {"mode": "replace", "state": map_local_to_remote(state)})
        logger.debug(
            f"Pushed snapshot: {len(state.checklist)} items, {len(state.notes)} notes, {len(state.tags)} tags"
        )


__all__ = [
    "AuthCredentials",
    "RemoteSyncClient",
    "map_local_to_remote",
    "map_remote_to_local",
    "remote_has_data",
]
