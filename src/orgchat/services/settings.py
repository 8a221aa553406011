"""User settings: defaults, the JSON settings file, overrides and the API key vault."""

from __future__ import annotations

import json
import logging
import os
import types
from dataclasses import asdict, dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Union, get_args, get_origin, get_type_hints

from cryptography.fernet import Fernet, InvalidToken

from ..errors import ConfigurationError, ErrorCode

__all__ = [
    "SecretVault",
    "Settings",
    "SettingsStore",
    "apply_overrides",
    "check_setting",
    "coerce_setting",
    "environment_overrides",
    "redact_secret",
    "validate_storage_directory",
]

LOGGER = logging.getLogger(__name__)
_SETTINGS_DIR = Path.home() / ".orgchat"
_DEFAULT_SETTINGS_PATH = _SETTINGS_DIR / "settings.json"
_SETTINGS_VERSION = 1
_API_KEY_FIELD = "api_key_ciphertext"
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}
_ENV_PREFIX = "ORGCHAT_"
_ENV_FIELDS: tuple[str, ...] = (
    "api_key",
    "base_url",
    "model",
    "organization",
    "user_name",
    "ai_name",
    "prompt_preamble",
    "storage_directory",
    "file_prefix",
    "region_filters",
    "todo_keywords",
    "temperature",
    "request_timeout",
    "max_retries",
    "debug_logging",
)


@dataclass(slots=True)
class Settings:
    """User-configurable settings persisted between sessions."""

    user_name: str = "User"
    ai_name: str = "AI"
    prompt_preamble: str = (
        "You are a helpful assistant inside a plain-text outline. "
        "Answer the latest user message, using the earlier turns as context."
    )
    storage_directory: str = str(_SETTINGS_DIR / "threads")
    file_prefix: str = "chat-"
    region_filters: list[str] = field(
        default_factory=lambda: ["ensure_trailing_newline", "enclose_in_code_block"]
    )
    todo_keywords: list[str] = field(default_factory=lambda: ["TODO", "DONE"])
    base_url: str = "https://api.openai.com/v1"
    api_key: str = ""
    model: str = "gpt-4o-mini"
    temperature: float = 0.2
    organization: str | None = None
    request_timeout: float = 90.0
    max_retries: int = 3
    retry_min_seconds: float = 0.5
    retry_max_seconds: float = 6.0
    default_headers: dict[str, str] = field(default_factory=dict)
    debug_logging: bool = False


def validate_storage_directory(path: Path | str, *, create: bool = False) -> Path:
    """Return ``path`` as a usable directory or raise :class:`ConfigurationError`."""

    directory = Path(path).expanduser()
    if directory.exists() and not directory.is_dir():
        raise ConfigurationError(
            error_code=ErrorCode.INVALID_STORAGE_DIRECTORY,
            message=f"Storage path {directory} is not a directory",
            details={"path": str(directory)},
        )
    if not directory.exists():
        if not create:
            raise ConfigurationError(
                error_code=ErrorCode.INVALID_STORAGE_DIRECTORY,
                message=f"Storage directory {directory} does not exist",
                details={"path": str(directory)},
            )
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise ConfigurationError(
                error_code=ErrorCode.INVALID_STORAGE_DIRECTORY,
                message=f"Unable to create storage directory {directory}: {exc}",
                details={"path": str(directory)},
            ) from exc
    if not os.access(directory, os.W_OK | os.X_OK):
        raise ConfigurationError(
            error_code=ErrorCode.INVALID_STORAGE_DIRECTORY,
            message=f"Storage directory {directory} is not writable",
            details={"path": str(directory)},
        )
    return directory


class SecretVault:
    """Encrypts the API key with a Fernet key kept next to the settings file.

    Stored tokens look like ``fernet:<token>``; the prefix names the backend
    so a file written by another backend is recognised instead of garbled.
    """

    strategy = "fernet"

    def __init__(self, *, key_path: Path | None = None) -> None:
        self._key_path = key_path or (_SETTINGS_DIR / "settings.key")
        self._fernet: Fernet | None = None

    @property
    def key_path(self) -> Path:
        return self._key_path

    def encrypt(self, secret: str) -> str:
        if not secret:
            return ""
        token = self._cipher().encrypt(secret.encode("utf-8")).decode("ascii")
        return f"{self.strategy}:{token}"

    def decrypt(self, token: str | None) -> str:
        if not token:
            return ""
        backend, _, payload = token.partition(":")
        if backend != self.strategy:
            raise ValueError(f"Secret was stored with unknown backend {backend!r}")
        try:
            return self._cipher().decrypt(payload.encode("ascii")).decode("utf-8")
        except (InvalidToken, UnicodeEncodeError) as exc:
            raise ValueError("Stored API key cannot be decrypted with this key") from exc

    def _cipher(self) -> Fernet:
        if self._fernet is None:
            self._fernet = Fernet(self._read_or_create_key())
        return self._fernet

    def _read_or_create_key(self) -> bytes:
        if self._key_path.exists():
            return self._key_path.read_bytes().strip()
        self._key_path.parent.mkdir(parents=True, exist_ok=True)
        key = Fernet.generate_key()
        staging = self._key_path.with_suffix(".key-tmp")
        staging.write_bytes(key)
        if os.name != "nt":  # pragma: no cover - depends on OS
            os.chmod(staging, 0o600)
        staging.replace(self._key_path)
        LOGGER.info("Generated new settings key at %s", self._key_path)
        return key


class SettingsStore:
    """JSON persistence for :class:`Settings` with layered overrides.

    Precedence, lowest first: defaults, the settings file, explicit
    overrides passed to :meth:`load`, then ``ORGCHAT_*`` environment
    variables.
    """

    def __init__(self, path: Path | None = None, *, vault: SecretVault | None = None) -> None:
        self._path = path or _DEFAULT_SETTINGS_PATH
        self._vault = vault or SecretVault(key_path=self._path.with_suffix(".key"))

    @property
    def path(self) -> Path:
        return self._path

    @property
    def vault(self) -> SecretVault:
        return self._vault

    def load(self, *, overrides: Mapping[str, Any] | None = None) -> Settings:
        settings = self._from_payload(self._read_payload())
        if overrides:
            settings = apply_overrides(settings, overrides, source="CLI")
        environment = environment_overrides(os.environ)
        if environment:
            settings = apply_overrides(settings, environment, source="environment")
        return settings

    def save(self, settings: Settings) -> Path:
        payload = asdict(settings)
        api_key = payload.pop("api_key", "")
        if api_key:
            payload[_API_KEY_FIELD] = self._vault.encrypt(api_key)
        payload["version"] = _SETTINGS_VERSION
        payload["secret_backend"] = self._vault.strategy

        self._path.parent.mkdir(parents=True, exist_ok=True)
        staging = self._path.with_suffix(".json-tmp")
        staging.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        staging.replace(self._path)
        LOGGER.debug("Settings saved to %s", self._path)
        return self._path

    def _read_payload(self) -> Dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigurationError(
                error_code=ErrorCode.FILE_UNREADABLE,
                message=f"Unable to read settings file {self._path}: {exc}",
                details={"path": str(self._path)},
            ) from exc
        except json.JSONDecodeError as exc:
            raise ConfigurationError(
                error_code=ErrorCode.INVALID_SETTING,
                message=f"Settings file {self._path} is not valid JSON: {exc}",
                details={"path": str(self._path)},
            ) from exc
        if not isinstance(payload, dict):
            raise ConfigurationError(
                error_code=ErrorCode.INVALID_SETTING,
                message=f"Settings file {self._path} must contain a JSON object",
                details={"path": str(self._path)},
            )
        return payload

    def _from_payload(self, payload: Dict[str, Any]) -> Settings:
        if not payload:
            return Settings()
        api_key = self._api_key_from(payload)
        known = {item.name for item in fields(Settings)} - {"api_key"}
        ignored = sorted(set(payload) - known - {_API_KEY_FIELD, "api_key", "version", "secret_backend"})
        if ignored:
            LOGGER.warning("Ignoring unknown settings in %s: %s", self._path, ", ".join(ignored))
        values = {key: check_setting(key, value) for key, value in payload.items() if key in known}
        return Settings(api_key=api_key, **values)

    def _api_key_from(self, payload: Mapping[str, Any]) -> str:
        ciphertext = payload.get(_API_KEY_FIELD)
        if ciphertext:
            try:
                return self._vault.decrypt(ciphertext)
            except ValueError as exc:
                LOGGER.warning("Unable to decrypt API key: %s", exc)
                return ""
        plaintext = payload.get("api_key") or ""
        if plaintext:
            LOGGER.info("Found a plaintext API key in %s; it is encrypted on the next save", self._path)
        return plaintext


def apply_overrides(settings: Settings, overrides: Mapping[str, Any], *, source: str = "runtime") -> Settings:
    """Return ``settings`` with ``overrides`` applied; unknown keys are rejected."""

    allowed = {item.name for item in fields(Settings)}
    unknown = sorted(key for key in overrides if key not in allowed)
    if unknown:
        raise ConfigurationError(
            error_code=ErrorCode.INVALID_SETTING,
            message=f"Unknown setting(s) in {source} overrides: {', '.join(unknown)}",
            details={"unknown": unknown},
        )
    changes = {key: value for key, value in overrides.items() if value is not None}
    if not changes:
        return settings
    LOGGER.debug("Applying %s settings overrides: %s", source, sorted(changes))
    return replace(settings, **changes)


def environment_overrides(environ: Mapping[str, str]) -> Dict[str, Any]:
    """Collect typed overrides from ``ORGCHAT_<FIELD>`` variables, skipping unparsable values."""

    overrides: Dict[str, Any] = {}
    for name in _ENV_FIELDS:
        env_name = f"{_ENV_PREFIX}{name.upper()}"
        raw = environ.get(env_name)
        if raw is None:
            continue
        try:
            overrides[name] = coerce_setting(name, raw)
        except ValueError as exc:
            LOGGER.warning("Ignoring %s: %s", env_name, exc)
    return overrides


def coerce_setting(name: str, raw: str) -> Any:
    """Convert the string ``raw`` to the declared type of setting ``name``.

    Lists accept a JSON array or comma-separated items; dicts require a JSON
    object. Raises :class:`ValueError` for unknown names or bad values.
    """

    hints = get_type_hints(Settings)
    if name not in hints:
        raise ValueError(f"Unknown setting '{name}'")
    target = _base_type(hints[name])
    text = raw.strip()
    if target is bool:
        lowered = text.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"Cannot read {raw!r} as a boolean for {name}")
    if target in (int, float):
        try:
            return target(text)
        except ValueError as exc:
            raise ValueError(f"Cannot read {raw!r} as {target.__name__} for {name}") from exc
    if target is list:
        if text.startswith("["):
            return _json_value(text, list, name)
        return [item.strip() for item in text.split(",") if item.strip()]
    if target is dict:
        return _json_value(text or "{}", dict, name)
    return text


def check_setting(name: str, value: Any) -> Any:
    """Validate a stored value against the declared type of setting ``name``.

    Integers are accepted for float settings. Returns the value to use;
    raises :class:`ConfigurationError` when the type does not match.
    """

    hint = get_type_hints(Settings)[name]
    target = _base_type(hint)
    if value is None and _is_optional(hint):
        return None
    if target is float and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    valid = isinstance(value, target) and not (target is int and isinstance(value, bool))
    if valid and target is list:
        valid = all(isinstance(item, str) for item in value)
    elif valid and target is dict:
        valid = all(isinstance(key, str) and isinstance(item, str) for key, item in value.items())
    if not valid:
        raise ConfigurationError(
            error_code=ErrorCode.INVALID_SETTING,
            message=f"Setting {name!r} must be {_describe(hint)}, not {type(value).__name__}",
            details={"setting": name, "value": value},
            suggestion="Fix the value in the settings file or override it with --set.",
        )
    return value


def _is_optional(hint: Any) -> bool:
    return get_origin(hint) in (Union, types.UnionType) and type(None) in get_args(hint)


def _describe(hint: Any) -> str:
    target = _base_type(hint)
    if target is list:
        return "a list of strings"
    if target is dict:
        return "an object of strings"
    name = {bool: "a boolean", int: "an integer", float: "a number"}.get(target, "a string")
    return f"{name} or null" if _is_optional(hint) else name


def _base_type(hint: Any) -> Any:
    origin = get_origin(hint)
    if origin in (list, dict):
        return origin
    if origin in (Union, types.UnionType):
        members = [arg for arg in get_args(hint) if arg is not type(None)]
        return members[0] if members else str
    return hint


def _json_value(text: str, expected: type, name: str) -> Any:
    try:
        value = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ValueError(f"{name} must be valid JSON: {exc}") from exc
    if not isinstance(value, expected):
        raise ValueError(f"{name} must be a JSON {expected.__name__}")
    return value


def redact_secret(value: str) -> str:
    stripped = (value or "").strip()
    if len(stripped) <= 4:
        return "*" * len(stripped)
    return f"{stripped[:2]}{'*' * (len(stripped) - 4)}{stripped[-2:]}"
