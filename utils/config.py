"""Environment-driven configuration for the bridge server and client."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

load_dotenv()  # Load environment variables from .env file if present


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class BridgeConfig:
    """Runtime settings shared by the proxy, the dispatcher and the pool.

    Attributes:
        upstream_url: Origin of the automated upstream application.
        upstream_brand: Brand name to replace in rendered markup.
        brand_name: Replacement brand name.
        primary_color: Primary colour used by the injected branding styles.
        secondary_color: Hover colour used by the injected branding styles.
        public_host: Host the rewritten markup should point at.
        video_host: Host serving resolvable generated videos.
        storage_state_path: Playwright storage-state file with upstream cookies.
        pool_max_size: Maximum number of idle pages kept by the pool.
        pool_max_pages: Hard cap on pages leased at the same time.
        pool_prewarm: Pages created at startup.
        pool_acquire_timeout: Seconds a caller waits for a free page.
        headless: Launch the browser headless.
        auth_secret: HS256 secret used to verify client tokens.
        auth_cookie: Cookie carrying the client token.
        ws_require_auth: Reject websocket actions before authentication.
        block_agent_navigation: Refuse `navigate` to upstream agent pages.
        session_idle_seconds: Idle browser sessions are released after this.
        upload_dir: Directory receiving uploaded files.
        database_dir: Directory holding `chats.db`. Required at startup.
    """

    upstream_url: str = "https://app.heygen.com"
    upstream_brand: str = "HeyGen"
    brand_name: str = "VideoAI Pro"
    primary_color: str = "#6366f1"
    secondary_color: str = "#8b5cf6"
    public_host: str = "localhost:3000"
    video_host: str = "resource2.heygen.ai"
    storage_state_path: Path = Path("cookies.json")
    pool_max_size: int = 5
    pool_max_pages: int = 10
    pool_prewarm: int = 3
    pool_acquire_timeout: float = 30.0
    headless: bool = True
    auth_secret: Optional[str] = None
    auth_cookie: str = "arena_token"
    ws_require_auth: bool = True
    block_agent_navigation: bool = True
    session_idle_seconds: int = 30 * 60
    upload_dir: Path = Path("uploads")
    database_dir: Optional[Path] = None

    @property
    def upstream_domain(self) -> str:
        """Return the upstream host without scheme or the `app.` prefix."""
        host = self.upstream_url.split("://", 1)[-1].split("/", 1)[0]
        return host[4:] if host.startswith("app.") else host

    @classmethod
    def from_env(cls) -> "BridgeConfig":
        """Build a config from environment variables, falling back to defaults."""
        defaults = cls()
        return cls(
            upstream_url=os.getenv("UPSTREAM_URL", defaults.upstream_url).rstrip("/"),
            upstream_brand=os.getenv("UPSTREAM_BRAND", defaults.upstream_brand),
            brand_name=os.getenv("BRAND_NAME", defaults.brand_name),
            primary_color=os.getenv("BRAND_PRIMARY_COLOR", defaults.primary_color),
            secondary_color=os.getenv("BRAND_SECONDARY_COLOR", defaults.secondary_color),
            public_host=os.getenv("PUBLIC_HOST", defaults.public_host),
            video_host=os.getenv("VIDEO_HOST", defaults.video_host),
            storage_state_path=Path(
                os.getenv("STORAGE_STATE_PATH", str(defaults.storage_state_path))
            ).expanduser(),
            pool_max_size=_env_int("POOL_MAX_SIZE", defaults.pool_max_size),
            pool_max_pages=_env_int("POOL_MAX_PAGES", defaults.pool_max_pages),
            pool_prewarm=_env_int("POOL_PREWARM", defaults.pool_prewarm),
            pool_acquire_timeout=_env_float("POOL_ACQUIRE_TIMEOUT", defaults.pool_acquire_timeout),
            headless=_env_bool("HEADLESS", defaults.headless),
            auth_secret=os.getenv("AUTH_SECRET") or None,
            auth_cookie=os.getenv("AUTH_COOKIE", defaults.auth_cookie),
            ws_require_auth=_env_bool("WS_REQUIRE_AUTH", defaults.ws_require_auth),
            block_agent_navigation=_env_bool("BLOCK_AGENT_NAVIGATION", defaults.block_agent_navigation),
            session_idle_seconds=_env_int("SESSION_IDLE_SECONDS", defaults.session_idle_seconds),
            upload_dir=Path(os.getenv("UPLOAD_DIR", str(defaults.upload_dir))).expanduser(),
            database_dir=Path(os.environ["DATABASE_DIR"]).expanduser() if os.getenv("DATABASE_DIR") else None,
        )
