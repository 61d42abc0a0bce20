"""Configuration loading for the showcase server."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


@dataclass
class ServerConfig:
    host: str = "0.0.0.0"
    port: int = 3000
    title: str = "Game Showcase"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])
    send_timeout_seconds: float = 5.0


@dataclass
class AuthConfig:
    admin_token: str = ""


@dataclass
class GitHubConfig:
    """Location and credentials of the JSON document holding all games."""

    owner: str = ""
    repo: str = ""
    path: str = "games.json"
    branch: str | None = None
    token: str = ""
    api_url: str = "https://api.github.com"
    timeout_seconds: float = 15.0
    max_attempts: int = 3
    retry_delay_seconds: float = 1.0


@dataclass
class ImagesConfig:
    max_upload_bytes: int = 2 * 1024 * 1024


@dataclass
class Config:
    server: ServerConfig = field(default_factory=ServerConfig)
    auth: AuthConfig = field(default_factory=AuthConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    images: ImagesConfig = field(default_factory=ImagesConfig)

    def missing_required(self) -> list[str]:
        """Return the names of required settings that are not set."""
        required = {
            "auth.admin_token": self.auth.admin_token,
            "github.token": self.github.token,
            "github.owner": self.github.owner,
            "github.repo": self.github.repo,
        }
        return [name for name, value in required.items() if not value]


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with SHOWCASE_ prefix."""
    return os.environ.get(f"SHOWCASE_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    # Server overrides
    if host := _get_env("HOST"):
        config.server.host = host
    if port := _get_env("PORT", os.environ.get("PORT")):
        config.server.port = int(port)

    if admin_token := _get_env("ADMIN_TOKEN"):
        config.auth.admin_token = admin_token

    # GitHub overrides
    if token := _get_env("GITHUB_TOKEN"):
        config.github.token = token
    if owner := _get_env("GITHUB_OWNER"):
        config.github.owner = owner
    if repo := _get_env("GITHUB_REPO"):
        config.github.repo = repo
    if path := _get_env("GITHUB_PATH"):
        config.github.path = path
    if branch := _get_env("GITHUB_BRANCH"):
        config.github.branch = branch
    if api_url := _get_env("GITHUB_API_URL"):
        config.github.api_url = api_url

    if max_bytes := _get_env("MAX_UPLOAD_BYTES"):
        config.images.max_upload_bytes = int(max_bytes)

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded Config object. Required settings are not checked here,
        see Config.missing_required().
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if "server" in data:
                server_data = data["server"]
                config.server = ServerConfig(
                    host=server_data.get("host", config.server.host),
                    port=int(server_data.get("port", config.server.port)),
                    title=server_data.get("title", config.server.title),
                    cors_origins=list(
                        server_data.get("cors_origins", config.server.cors_origins)
                    ),
                    send_timeout_seconds=float(
                        server_data.get(
                            "send_timeout_seconds", config.server.send_timeout_seconds
                        )
                    ),
                )

            if "auth" in data:
                config.auth = AuthConfig(
                    admin_token=str(
                        data["auth"].get("admin_token", config.auth.admin_token) or ""
                    )
                )

            if "github" in data:
                gh_data = data["github"]
                config.github = GitHubConfig(
                    owner=gh_data.get("owner", config.github.owner),
                    repo=gh_data.get("repo", config.github.repo),
                    path=gh_data.get("path", config.github.path),
                    branch=gh_data.get("branch", config.github.branch),
                    token=gh_data.get("token", config.github.token) or "",
                    api_url=gh_data.get("api_url", config.github.api_url),
                    timeout_seconds=float(
                        gh_data.get("timeout_seconds", config.github.timeout_seconds)
                    ),
                    max_attempts=int(
                        gh_data.get("max_attempts", config.github.max_attempts)
                    ),
                    retry_delay_seconds=float(
                        gh_data.get(
                            "retry_delay_seconds", config.github.retry_delay_seconds
                        )
                    ),
                )

            if "images" in data:
                config.images = ImagesConfig(
                    max_upload_bytes=int(
                        data["images"].get(
                            "max_upload_bytes", config.images.max_upload_bytes
                        )
                    )
                )

    return _apply_env_overrides(config)
