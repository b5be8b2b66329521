from typing import Any, Dict, FrozenSet, List, Optional, Tuple, Union
from dataclasses import dataclass
import json
import os

DEFAULT_CONFIG_PATH = os.path.join("config", "index.json")
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8080


class ConfigurationError(Exception):
    """One server entry failed validation."""

    def __init__(self, number: int, problems: List[str]):
        self.number = number
        self.problems = list(problems)
        super().__init__("; ".join(f"{p} (server #{number})" for p in self.problems))


class ConfigurationBatchError(Exception):
    """At least one entry of a configuration array failed validation."""

    def __init__(self, errors: List[ConfigurationError]):
        self.errors = list(errors)
        super().__init__(f"{len(self.errors)} server(s) failed validation")


@dataclass(frozen=True)
class StaticMode:
    """Serve files from a local directory."""
    root: str
    headers: Tuple[Tuple[str, str], ...] = ()
    allowed_file_types: Optional[FrozenSet[str]] = None
    forbidden_file_types: Optional[FrozenSet[str]] = None

    def allows(self, extension: str) -> bool:
        """
        Check a file extension against the file type filter.

        Args:
            extension: Extension without the leading dot, any case

        Returns:
            False when the filter rejects the extension
        """
        extension = extension.lower()
        if self.allowed_file_types is not None:
            return extension in self.allowed_file_types
        if self.forbidden_file_types is not None:
            return extension not in self.forbidden_file_types
        return True


@dataclass(frozen=True)
class ProxyMode:
    """Forward every request to an upstream base URL."""
    upstream: str


@dataclass(frozen=True)
class ServerConfig:
    """A validated, normalized server entry."""
    number: int
    mode: Union[StaticMode, ProxyMode]
    port: Optional[int] = None
    location: str = "/"
    redirect_html_extension: bool = False
    not_found_path: str = "/"
    internal_error_path: str = "/"
    forbidden_path: str = "/"

    @property
    def is_proxy(self) -> bool:
        return isinstance(self.mode, ProxyMode)

    @property
    def listen_port(self) -> int:
        return DEFAULT_PORT if self.port is None else self.port

    @property
    def mount_point(self) -> str:
        """Location as an absolute URL path, always ending in a slash."""
        return "/" if self.location == "/" else f"/{self.location}/"


def normalize_path(url: Optional[str]) -> str:
    """Strip every leading and trailing slash; empty or absent becomes '/'."""
    if not url or url == "/":
        return "/"
    url = url.lstrip("/").rstrip("/")
    return url or "/"


def _is_string(value: Any) -> bool:
    return isinstance(value, str)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_bool(value: Any) -> bool:
    return isinstance(value, bool)


def _is_set(raw: Dict[str, Any], key: str) -> bool:
    return raw.get(key) is not None


def _file_types(value: List[str]) -> FrozenSet[str]:
    return frozenset(ext.lower().lstrip(".") for ext in value)


def _check(raw: Dict[str, Any]) -> List[str]:
    """Collect every problem with a raw server entry."""
    problems = []

    if raw.get("proxy") and _is_set(raw, "port"):
        problems.append("There cannot be both a 'proxy' and a 'port' in the same server.")

    if raw.get("proxy") and _is_set(raw, "headers"):
        problems.append("The 'headers' configuration cannot be used in the same server as a 'proxy'.")

    if not raw.get("proxy") and not raw.get("root"):
        problems.append("A 'root' or 'proxy' is required in order to start a server.")

    if raw.get("proxy") and raw.get("root"):
        problems.append("There cannot be both a 'proxy' and a 'root' in the same server.")

    if _is_set(raw, "proxy") and not _is_string(raw["proxy"]):
        problems.append("'proxy' must be of type string.")

    if _is_set(raw, "root") and not _is_string(raw["root"]):
        problems.append("'root' must be of type string.")

    if _is_set(raw, "port"):
        port = raw["port"]
        if not _is_number(port):
            problems.append("'port' must be of type number.")
        elif not 0 <= port <= 65535 or port != int(port):
            problems.append("'port' must be a whole number between 0 and 65535.")

    if _is_set(raw, "location") and not _is_string(raw["location"]):
        problems.append("'location' must be of type string.")

    if _is_set(raw, "redirectHtmlExtension") and not _is_bool(raw["redirectHtmlExtension"]):
        problems.append("'redirectHtmlExtension' must be of type boolean.")

    for key in ("notFoundPath", "internalErrorPath", "forbiddenPath"):
        if _is_set(raw, key) and not _is_string(raw[key]):
            problems.append(f"'{key}' must be of type string.")

    if _is_set(raw, "headers"):
        headers = raw["headers"]
        if not isinstance(headers, dict) or not all(
            _is_string(k) and _is_string(v) for k, v in headers.items()
        ):
            problems.append("'headers' must be an object of strings.")

    if _is_set(raw, "allowedFileTypes") and _is_set(raw, "forbiddenFileTypes"):
        problems.append("There can only be 'allowedFileTypes' or 'forbiddenFileTypes', not both.")

    for key in ("allowedFileTypes", "forbiddenFileTypes"):
        value = raw.get(key)
        if value is not None and (
            not isinstance(value, list) or not all(_is_string(v) for v in value)
        ):
            problems.append(f"'{key}' must be a list of strings.")

    return problems


def validate_server_config(raw: Any, number: int) -> ServerConfig:
    """
    Validate and normalize one raw server entry.

    Args:
        raw: The entry as parsed from JSON
        number: Ordinal number of the entry, starting at 1

    Returns:
        The immutable ServerConfig

    Raises:
        ConfigurationError: listing every problem found in the entry
    """
    if not isinstance(raw, dict):
        raise ConfigurationError(number, ["Each server must be a JSON object."])

    problems = _check(raw)
    if problems:
        raise ConfigurationError(number, problems)

    if raw.get("proxy"):
        mode = ProxyMode(upstream=raw["proxy"])
    else:
        allowed = raw.get("allowedFileTypes")
        forbidden = raw.get("forbiddenFileTypes")
        mode = StaticMode(
            root=raw["root"],
            headers=tuple((raw.get("headers") or {}).items()),
            allowed_file_types=_file_types(allowed) if allowed is not None else None,
            forbidden_file_types=_file_types(forbidden) if forbidden is not None else None,
        )

    port = raw.get("port")
    return ServerConfig(
        number=number,
        mode=mode,
        port=int(port) if port is not None else None,
        location=normalize_path(raw.get("location")),
        redirect_html_extension=bool(raw.get("redirectHtmlExtension", False)),
        not_found_path=normalize_path(raw.get("notFoundPath")),
        internal_error_path=normalize_path(raw.get("internalErrorPath")),
        forbidden_path=normalize_path(raw.get("forbiddenPath")),
    )


def validate_servers(raw_servers: Any) -> List[ServerConfig]:
    """
    Validate a whole configuration array before anything is started.

    Raises:
        ConfigurationBatchError: if any entry is invalid; holds one
            ConfigurationError per failing entry
    """
    if not isinstance(raw_servers, list):
        raise ConfigurationBatchError(
            [ConfigurationError(0, ["The configuration must be a JSON array of servers."])]
        )

    configs = []
    errors = []
    for number, raw in enumerate(raw_servers, start=1):
        try:
            configs.append(validate_server_config(raw, number))
        except ConfigurationError as e:
            errors.append(e)

    if errors:
        raise ConfigurationBatchError(errors)
    return configs


def load_config(config_path: str = DEFAULT_CONFIG_PATH) -> Any:
    """
    Read the JSON configuration file.

    Parse errors propagate as json.JSONDecodeError.
    """
    with open(config_path, 'r', encoding='utf-8') as f:
        return json.load(f)
