"""Configuration via environment variables with cloud-native secret support.

Supports:
  - Environment variables (local dev, systemd units, pod specs)
  - .env files via python-dotenv
  - AWS Secrets Manager / GCP Secret Manager references for GitHub tokens
"""

from __future__ import annotations

import enum
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from scripts.keysync.errors import ConfigError
from scripts.keysync.secrets import resolve_token_list

logger = logging.getLogger("keysync.config")

DEFAULT_TEMPLATE_PATH = Path(__file__).resolve().parent / "templates"
TEMPLATE_SUFFIX = ".j2"


class RunMode(str, enum.Enum):
    """Terminal stage of a run."""

    FILES = "files"
    SNAPSHOT = "snapshot"


class RateLimitPolicy(str, enum.Enum):
    """What to do with a token once GitHub reports zero remaining quota."""

    LOG = "log"
    ROTATE = "rotate"


@dataclass(frozen=True)
class HttpConfig:
    timeout_s: float = 30.0
    max_retries: int = 3
    backoff_base_s: float = 1.0


@dataclass(frozen=True)
class GitHubConfig:
    tokens: tuple[str, ...]
    api_base_url: str = "https://api.github.com"
    keys_base_url: str = "https://github.com"
    rate_limit_policy: RateLimitPolicy = RateLimitPolicy.LOG
    collaborator_concurrency: int = 3
    key_fetch_concurrency: Optional[int] = None  # None = unbounded


@dataclass(frozen=True)
class OrchestratorConfig:
    host: str = "localhost"
    port: int = 80
    pods_path: str = "/v1/pods"
    token: str = ""

    @property
    def pods_url(self) -> str:
        return f"http://{self.host}:{self.port}{self.pods_path}"


@dataclass(frozen=True)
class OutputConfig:
    keys_path: Optional[Path] = None
    password_file: Optional[Path] = None
    password_template: Optional[str] = None
    template_path: Path = DEFAULT_TEMPLATE_PATH
    snapshot_path: Optional[Path] = None

    @property
    def template_file(self) -> Path:
        return self.template_path / f"{self.password_template}{TEMPLATE_SUFFIX}"


@dataclass(frozen=True)
class NotificationConfig:
    webhook_url: Optional[str] = None
    channel: Optional[str] = None
    hostname: str = ""
    username: str = "Rabbit/SSH"
    exec_namespace: str = "rabbit-system"


@dataclass(frozen=True)
class SchedulerConfig:
    interval_min: int = 5
    misfire_grace_time: int = 60


@dataclass(frozen=True)
class KeySyncConfig:
    mode: RunMode
    github: GitHubConfig
    output: OutputConfig
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    notification: NotificationConfig = field(default_factory=NotificationConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)


def _int_env(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from None


def _float_env(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None


def _enum_env(name: str, enum_cls, default):
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    try:
        return enum_cls(raw)
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"{name} must be one of [{choices}], got {raw!r}") from None


def _optional_path(name: str) -> Optional[Path]:
    raw = os.environ.get(name, "")
    return Path(raw) if raw else None


def validate_output(mode: RunMode, output: OutputConfig) -> None:
    """Check the paths the chosen terminus needs. Raises ConfigError."""
    if mode is RunMode.SNAPSHOT:
        if output.snapshot_path is None:
            raise ConfigError("CONTROLLER_KEYS_PATH is required in snapshot mode")
        return

    if output.keys_path is None:
        raise ConfigError("DIRECTORY_KEYS_BASE is not explicitly set")
    if not output.keys_path.is_dir():
        raise ConfigError(f"authorized_keys [{output.keys_path}] directory missing")
    if output.password_file is None:
        raise ConfigError("the PASSWORD_FILE is not explicitly set")
    if not output.password_template:
        raise ConfigError("the PASSWORDS_TEMPLATE is not explicitly set")
    if not output.template_file.is_file():
        raise ConfigError(f"password template [{output.template_file}] not found")
    if output.snapshot_path is not None:
        logger.warning(
            "CONTROLLER_KEYS_PATH is set but KEYSYNC_MODE is files; snapshot not written",
            extra={"path": str(output.snapshot_path)},
        )


def load_config(mode: Optional[RunMode] = None) -> KeySyncConfig:
    """Load configuration from environment variables.

    ``mode`` overrides ``KEYSYNC_MODE`` (used by the CLI ``--mode`` flag).
    Everything is validated here so that a bad setup fails before the first
    outbound request.
    """
    load_dotenv()

    tokens = resolve_token_list(os.environ.get("GITHUB_ACCESS_TOKENS", ""))
    if not tokens:
        raise ConfigError("GITHUB_ACCESS_TOKENS environment variable is required")

    key_bound = _int_env("KEY_FETCH_CONCURRENCY", 0)
    github = GitHubConfig(
        tokens=tuple(tokens),
        api_base_url=os.environ.get("GITHUB_API_BASE_URL", "https://api.github.com"),
        keys_base_url=os.environ.get("GITHUB_KEYS_BASE_URL", "https://github.com"),
        rate_limit_policy=_enum_env(
            "GITHUB_RATE_LIMIT_POLICY", RateLimitPolicy, RateLimitPolicy.LOG
        ),
        collaborator_concurrency=_int_env("COLLABORATOR_CONCURRENCY", 3),
        key_fetch_concurrency=key_bound if key_bound > 0 else None,
    )
    if github.collaborator_concurrency <= 0:
        raise ConfigError("COLLABORATOR_CONCURRENCY must be > 0")

    run_mode = mode or _enum_env("KEYSYNC_MODE", RunMode, RunMode.FILES)

    template_dir = os.environ.get("PASSWORDS_PATH", "")
    output = OutputConfig(
        keys_path=_optional_path("DIRECTORY_KEYS_BASE"),
        password_file=_optional_path("PASSWORD_FILE"),
        password_template=os.environ.get("PASSWORDS_TEMPLATE") or None,
        template_path=Path(template_dir) if template_dir else DEFAULT_TEMPLATE_PATH,
        snapshot_path=_optional_path("CONTROLLER_KEYS_PATH"),
    )
    validate_output(run_mode, output)

    orchestrator = OrchestratorConfig(
        host=os.environ.get("ORCHESTRATOR_HOST", "localhost"),
        port=_int_env("NODE_PORT", 80),
        pods_path=os.environ.get("ORCHESTRATOR_PODS_PATH", "/v1/pods"),
        token=os.environ.get("KUBERNETES_CLUSTER_USER_TOKEN", ""),
    )

    http = HttpConfig(
        timeout_s=_float_env("HTTP_TIMEOUT_S", 30.0),
        max_retries=_int_env("HTTP_MAX_RETRIES", 3),
        backoff_base_s=_float_env("HTTP_BACKOFF_BASE_S", 1.0),
    )

    notification = NotificationConfig(
        # Older deployments set the misspelled SLACK_NOTIFICACTION_* names.
        webhook_url=os.environ.get("SLACK_NOTIFICATION_URL")
        or os.environ.get("SLACK_NOTIFICACTION_URL")
        or None,
        channel=os.environ.get("SLACK_NOTIFICATION_CHANNEL")
        or os.environ.get("SLACK_NOTIFICACTION_CHANNEL")
        or None,
        hostname=os.environ.get("HOSTNAME") or os.environ.get("HOST", ""),
    )

    scheduler = SchedulerConfig(
        interval_min=_int_env("KEYSYNC_INTERVAL_MIN", 5),
        misfire_grace_time=_int_env("KEYSYNC_MISFIRE_GRACE_S", 60),
    )

    return KeySyncConfig(
        mode=run_mode,
        github=github,
        output=output,
        orchestrator=orchestrator,
        http=http,
        notification=notification,
        scheduler=scheduler,
    )
