"""
Instance configuration and token resolution.

``instances.json`` maps instance names to hostnames and to the name of
the secret holding their token::

    {
      "sources": {"ghes-prod": {"hostname": "github.example.com", "tokenSecret": "GHES_PROD_TOKEN"}},
      "targets": {"ghec": {"hostname": "github.com", "tokenSecret": "GHEC_TOKEN", "passPath": "github/ghec"}}
    }

Every problem found here is fatal: it is raised before any batch runs.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, Literal

from .exceptions import FatalConfigError
from .utils import PassError, get_pass_value

if TYPE_CHECKING:
    from collections.abc import Mapping

logger: logging.Logger = logging.getLogger(__name__)

DEFAULT_INSTANCES_PATH: Final[str] = ".github/scripts/config/instances.json"
_GITHUB_TOKEN_ENV_VAR: Final[str] = "GITHUB_TOKEN"  # noqa: S105

InstanceKind = Literal["sources", "targets"]


@dataclass(frozen=True)
class InstanceCredentials:
    """A resolved source or target instance."""

    name: str
    hostname: str
    token_name: str
    token: str

    def __repr__(self) -> str:
        return f"InstanceCredentials(name={self.name!r}, hostname={self.hostname!r}, token_name={self.token_name!r})"


def load_instances(path: str | Path = DEFAULT_INSTANCES_PATH) -> dict[str, Any]:
    """Load and minimally validate the instances configuration."""
    config_path = Path(path)
    try:
        config: object = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        msg = f"Instances configuration not found: {config_path}"
        raise FatalConfigError(msg) from e
    except (OSError, json.JSONDecodeError) as e:
        msg = f"Failed to read instances configuration {config_path}: {e}"
        raise FatalConfigError(msg) from e

    if not isinstance(config, dict):
        msg = f"Instances configuration {config_path} must be a JSON object"
        raise FatalConfigError(msg)
    for kind in ("sources", "targets"):
        if not isinstance(config.get(kind, {}), dict):
            msg = f"'{kind}' in {config_path} must be an object"
            raise FatalConfigError(msg)
    return config


def _lookup_token(entry: Mapping[str, Any], environ: Mapping[str, str]) -> str | None:
    token_name: str = entry["tokenSecret"]
    token = environ.get(token_name)
    if token:
        return token

    pass_path: str | None = entry.get("passPath")
    if not pass_path:
        return None
    try:
        return get_pass_value(pass_path) or None
    except (PassError, ValueError) as e:
        logger.warning(f"Could not read {token_name} from pass at '{pass_path}': {e}")
        return None


def require_instance(config: Mapping[str, Any], kind: InstanceKind, name: str) -> Mapping[str, Any]:
    """Return the configuration entry of an instance without resolving its token.

    Raises:
        FatalConfigError: If the instance is unknown
    """
    entry = config.get(kind, {}).get(name)
    if not isinstance(entry, dict) or "tokenSecret" not in entry:
        label = "source" if kind == "sources" else "target"
        msg = f"Unknown {label} instance: {name}"
        raise FatalConfigError(msg)
    return entry


def resolve_instance(
    config: Mapping[str, Any],
    kind: InstanceKind,
    name: str,
    environ: Mapping[str, str] | None = None,
) -> InstanceCredentials:
    """Resolve an instance name to its hostname and token.

    The token is read from the environment variable named by ``tokenSecret``,
    then from the pass entry named by ``passPath``.

    Raises:
        FatalConfigError: If the instance is unknown or has no token
    """
    environ = os.environ if environ is None else environ
    label = "source" if kind == "sources" else "target"
    entry = require_instance(config, kind, name)

    token_name: str = entry["tokenSecret"]
    token = _lookup_token(entry, environ)
    if not token:
        msg = f"Token {token_name} not found for {label} instance {name}. Please create this secret."
        raise FatalConfigError(msg)

    logger.info(f"Using token {token_name} for {label} instance {name}")
    return InstanceCredentials(
        name=name,
        hostname=entry.get("hostname", "github.com"),
        token_name=token_name,
        token=token,
    )


def get_github_token(pass_path: str | None = None, environ: Mapping[str, str] | None = None) -> str:
    """Get the orchestrator's own GitHub token from a pass path or GITHUB_TOKEN.

    Raises:
        FatalConfigError: If no token is available
    """
    if pass_path:
        try:
            return get_pass_value(pass_path)
        except (PassError, ValueError) as e:
            msg = f"Failed to read GitHub token from pass at '{pass_path}': {e}"
            raise FatalConfigError(msg) from e

    environ = os.environ if environ is None else environ
    token = environ.get(_GITHUB_TOKEN_ENV_VAR)
    if not token:
        msg = f"No GitHub token: set {_GITHUB_TOKEN_ENV_VAR} or pass --github-pass-token"
        raise FatalConfigError(msg)
    return token
