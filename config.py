"""Config management for spotify-now-playing.

Settings come from the process environment, with a ``.env`` file in the
working directory loaded first (python-dotenv). Everything is read once
at startup via ``load_settings()``.
"""
import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from oauth.errors import ConfigError


CONFIG_DIR = Path.home() / ".now-playing"
DEFAULT_TOKEN_FILE = CONFIG_DIR / "tokens.json"

DEFAULT_SCOPES = "user-read-currently-playing user-read-playback-state"

RESPONSE_MODES = ("redirect", "popup")
TOKEN_STORES = ("file", "supabase")


def load_env() -> None:
    """Load .env from the working directory if present."""
    env_file = Path(".env")
    if env_file.exists():
        load_dotenv(env_file)


def _split_csv(value: str) -> list[str]:
    return [item.strip().rstrip("/") for item in value.split(",") if item.strip()]


def _as_bool(value: Optional[str], default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """Configuration container."""

    def __init__(self, data: dict = None):
        self.data = data or {}

    @property
    def client_id(self) -> str:
        return self.data.get("client_id", "")

    @property
    def client_secret(self) -> str:
        return self.data.get("client_secret", "")

    @property
    def redirect_uri(self) -> str:
        return self.data.get("redirect_uri", "")

    @property
    def scopes(self) -> str:
        return self.data.get("scopes") or DEFAULT_SCOPES

    @property
    def show_dialog(self) -> bool:
        return bool(self.data.get("show_dialog", False))

    @property
    def token_store(self) -> str:
        return self.data.get("token_store") or "file"

    @property
    def token_file(self) -> Path:
        return Path(self.data.get("token_file") or DEFAULT_TOKEN_FILE).expanduser()

    @property
    def supabase_url(self) -> str:
        return self.data.get("supabase_url", "")

    @property
    def supabase_key(self) -> str:
        return self.data.get("supabase_key", "")

    @property
    def supabase_tokens_table(self) -> str:
        return self.data.get("supabase_tokens_table") or "tokens"

    @property
    def response_mode(self) -> str:
        return self.data.get("response_mode") or "redirect"

    @property
    def popup_target_origin(self) -> str:
        return self.data.get("popup_target_origin") or "*"

    @property
    def allowed_return_origins(self) -> list[str]:
        return list(self.data.get("allowed_return_origins", []))

    @property
    def cors_origins(self) -> list[str]:
        return list(self.data.get("cors_origins") or ["*"])

    @property
    def state_ttl_seconds(self) -> float:
        return float(self.data.get("state_ttl_seconds", 600))

    @property
    def rate_limit_max_retries(self) -> int:
        return int(self.data.get("rate_limit_max_retries", 3))

    @property
    def http_timeout(self) -> float:
        return float(self.data.get("http_timeout", 10.0))

    @property
    def host(self) -> str:
        return self.data.get("host") or "0.0.0.0"

    @property
    def port(self) -> int:
        return int(self.data.get("port", 3001))

    @property
    def log_level(self) -> str:
        return (self.data.get("log_level") or "INFO").upper()

    @property
    def remote_logging(self) -> bool:
        return bool(self.data.get("remote_logging", False))

    def has_supabase(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    def missing(self) -> list[str]:
        """Names of required environment variables that are not set."""
        required = {
            "SPOTIFY_CLIENT_ID": self.client_id,
            "SPOTIFY_CLIENT_SECRET": self.client_secret,
            "SPOTIFY_REDIRECT_URI": self.redirect_uri,
        }
        if self.token_store == "supabase":
            required["SUPABASE_URL"] = self.supabase_url
            required["SUPABASE_KEY"] = self.supabase_key
        return [name for name, value in required.items() if not value]

    def validate(self) -> "Settings":
        """Raise ConfigError unless every required setting is present and sane."""
        missing = self.missing()
        if missing:
            raise ConfigError(f"Missing required env variables: {', '.join(missing)}")
        if self.token_store not in TOKEN_STORES:
            raise ConfigError(f"TOKEN_STORE must be one of {TOKEN_STORES}, got {self.token_store!r}")
        if self.response_mode not in RESPONSE_MODES:
            raise ConfigError(
                f"CALLBACK_RESPONSE_MODE must be one of {RESPONSE_MODES}, got {self.response_mode!r}"
            )
        if self.rate_limit_max_retries < 0:
            raise ConfigError("RATE_LIMIT_MAX_RETRIES must not be negative")
        return self


def load_settings(environ=None) -> Settings:
    """Build Settings from the environment (os.environ by default)."""
    env = os.environ if environ is None else environ

    def get(name: str, default: str = "") -> str:
        return env.get(name, default) or default

    try:
        data = {
            "client_id": get("SPOTIFY_CLIENT_ID"),
            "client_secret": get("SPOTIFY_CLIENT_SECRET"),
            "redirect_uri": get("SPOTIFY_REDIRECT_URI"),
            "scopes": get("SPOTIFY_SCOPES", DEFAULT_SCOPES),
            "show_dialog": _as_bool(env.get("SPOTIFY_SHOW_DIALOG")),
            "token_store": get("TOKEN_STORE", "file").lower(),
            "token_file": get("TOKEN_FILE", str(DEFAULT_TOKEN_FILE)),
            "supabase_url": get("SUPABASE_URL"),
            "supabase_key": get("SUPABASE_KEY"),
            "supabase_tokens_table": get("SUPABASE_TOKENS_TABLE", "tokens"),
            "response_mode": get("CALLBACK_RESPONSE_MODE", "redirect").lower(),
            "popup_target_origin": get("POPUP_TARGET_ORIGIN", "*"),
            "allowed_return_origins": _split_csv(get("ALLOWED_RETURN_ORIGINS")),
            "cors_origins": _split_csv(get("CORS_ORIGINS", "*")),
            "state_ttl_seconds": float(get("STATE_TTL_SECONDS", "600")),
            "rate_limit_max_retries": int(get("RATE_LIMIT_MAX_RETRIES", "3")),
            "http_timeout": float(get("HTTP_TIMEOUT_SECONDS", "10")),
            "host": get("HOST", "0.0.0.0"),
            "port": int(get("PORT", "3001")),
            "log_level": get("LOG_LEVEL", "INFO"),
            "remote_logging": _as_bool(env.get("REMOTE_LOGGING")),
        }
    except ValueError as e:
        raise ConfigError(f"Invalid numeric setting: {e}") from e

    return Settings(data)
