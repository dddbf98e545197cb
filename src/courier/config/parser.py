"""Load, validate, and resolve courier.yaml configuration."""

from __future__ import annotations

import os
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from courier.config.models import CourierConfig

DEFAULT_CONFIG_NAME = "courier.yaml"

#: Environment variables that override keys in courier.yaml.
ENV_OVERRIDES = {
    "AGENT_NAME": "agent_name",
    "AGENT_PHONE_NUMBER": "agent_phone_number",
    "ANTHROPIC_MODEL": "model",
    "DATA_DIR": "data_dir",
}

_ENV_REF_RE = re.compile(r"\$\{([^}]+)\}")


class ConfigError(Exception):
    """User-facing configuration error."""


def load_config(path: Path | None = None) -> CourierConfig:
    """Load courier.yaml (*path*, or the one in the current directory).

    A ``.env`` next to the file is loaded first, then the environment
    overrides in :data:`ENV_OVERRIDES` are applied and relative
    directories are anchored at the file's directory.

    Raises:
        ConfigError: On a missing file, bad YAML, or failed validation.
    """
    config_path = _resolve_path(path)
    raw = _read_yaml(config_path)
    _load_env(config_path.parent)
    _apply_env_overrides(raw)
    _make_paths_relative_to(raw, config_path.parent)
    _resolve_server_references(raw)
    return _validate(raw)


def _resolve_path(path: Path | None) -> Path:
    candidate = Path(path) if path is not None else Path.cwd() / DEFAULT_CONFIG_NAME
    if candidate.is_file():
        return candidate

    if path is not None:
        msg = f"Config file not found: {candidate}"
    else:
        msg = (
            f"No {DEFAULT_CONFIG_NAME} found in {Path.cwd()}. "
            "Run `courier init` to create one."
        )
    raise ConfigError(msg)


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as exc:
        msg = f"Cannot read {path}: {exc}"
        raise ConfigError(msg) from exc
    except yaml.YAMLError as exc:
        mark = getattr(exc, "problem_mark", None)
        where = f" at line {mark.line + 1}, column {mark.column + 1}" if mark is not None else ""
        msg = f"Invalid YAML in {path.name}{where}"
        raise ConfigError(msg) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        msg = f"Expected a YAML mapping in {path.name}, got {type(data).__name__}"
        raise ConfigError(msg)
    return data


def _load_env(config_dir: Path) -> None:
    env_path = config_dir / ".env"
    if env_path.is_file():
        load_dotenv(env_path)


def _apply_env_overrides(raw: dict[str, Any]) -> None:
    for env_key, field in ENV_OVERRIDES.items():
        value = os.environ.get(env_key)
        if value:
            raw[field] = value


def _make_paths_relative_to(raw: dict[str, Any], base_dir: Path) -> None:
    """Anchor relative directory settings at the config file's directory."""
    for key in ("data_dir", "workspace", "prompts_dir"):
        value = raw.get(key)
        if isinstance(value, str) and value and not Path(value).is_absolute():
            raw[key] = str(base_dir / value)
    if "data_dir" not in raw:
        raw["data_dir"] = str(base_dir / "data")
    if "workspace" not in raw:
        raw["workspace"] = str(base_dir)


def resolve_env_refs(value: str, data_dir: str) -> str:
    """Replace ``${VAR}`` references with environment values.

    ``${DATA_DIR}`` always resolves to the configured data directory.
    Unset variables resolve to the empty string.
    """

    def _sub(match: re.Match[str]) -> str:
        name = match.group(1)
        if name == "DATA_DIR":
            return data_dir
        return os.environ.get(name, "")

    return _ENV_REF_RE.sub(_sub, value)


def _resolve_server_references(raw: dict[str, Any]) -> None:
    servers = raw.get("mcp_servers")
    if not isinstance(servers, dict):
        return

    data_dir = str(raw.get("data_dir", ""))
    for server in servers.values():
        if not isinstance(server, dict):
            continue
        if isinstance(server.get("command"), str):
            server["command"] = resolve_env_refs(server["command"], data_dir)
        if isinstance(server.get("url"), str):
            server["url"] = resolve_env_refs(server["url"], data_dir)
        args = server.get("args")
        if isinstance(args, list):
            server["args"] = [
                resolve_env_refs(a, data_dir) if isinstance(a, str) else a
                for a in args
            ]
        env = server.get("env")
        if isinstance(env, dict):
            # Entries whose references resolve to nothing are dropped.
            resolved = {
                k: resolve_env_refs(str(v), data_dir) for k, v in env.items()
            }
            server["env"] = {k: v for k, v in resolved.items() if v}


def _describe_error(err: Mapping[str, Any]) -> str:
    location = ".".join(str(part) for part in err["loc"]) or "(root)"
    if err["type"] == "missing":
        return f"  {location}: This field is required"
    return f"  {location}: {err['msg']}"


def _validate(raw: dict[str, Any]) -> CourierConfig:
    try:
        return CourierConfig.model_validate(raw)
    except ValidationError as exc:
        details = "\n".join(_describe_error(err) for err in exc.errors())
        msg = f"Config validation failed:\n{details}"
        raise ConfigError(msg) from exc
