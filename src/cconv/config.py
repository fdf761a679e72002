"""Configuration loading, validation and saving for cconv."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from cconv.files import DEFAULT_EXCLUDE_PATTERNS
from cconv.models import ReviewRule, Severity

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".cconv.yaml"
SUPPORTED_PROVIDERS = ("claude",)
MAX_CONCURRENCY_RANGE = (1, 20)
MAX_RETRIES_RANGE = (1, 10)


class ConfigError(Exception):
    """Invalid configuration."""

    def __init__(self, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.errors = errors


@dataclass
class ProviderConfig:
    """Agent provider configuration."""

    type: str = "claude"
    command: str = "claude"
    max_concurrency: int = 5
    max_retries: int = 3
    timeout_seconds: float = 120
    output_format: str | None = "json"
    resume_flag: str = "--resume"

    # Flags passed through to the agent CLI
    mcp_debug: bool = False
    dangerously_skip_permissions: bool = False
    allowed_tools: list[str] = field(default_factory=list)
    disallowed_tools: list[str] = field(default_factory=list)
    mcp_config: str | None = None
    model: str | None = None
    fallback_model: str | None = None
    add_dir: list[str] = field(default_factory=list)

    def agent_flags(self) -> list[str]:
        """Per-call flags for the agent CLI, in a stable order."""
        flags: list[str] = []
        if self.mcp_debug:
            flags.append("--mcp-debug")
        if self.dangerously_skip_permissions:
            flags.append("--dangerously-skip-permissions")
        if self.allowed_tools:
            flags += ["--allowedTools", *self.allowed_tools]
        if self.disallowed_tools:
            flags += ["--disallowedTools", *self.disallowed_tools]
        if self.mcp_config:
            flags += ["--mcp-config", self.mcp_config]
        if self.model:
            flags += ["--model", self.model]
        if self.fallback_model:
            flags += ["--fallback-model", self.fallback_model]
        if self.add_dir:
            flags += ["--add-dir", *self.add_dir]
        return flags


@dataclass
class FilePatterns:
    """Include/exclude globs for file discovery and diff filtering."""

    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=lambda: list(DEFAULT_EXCLUDE_PATTERNS))


@dataclass
class Config:
    """Complete application configuration."""

    provider: ProviderConfig = field(default_factory=ProviderConfig)
    rules: list[ReviewRule] = field(default_factory=list)
    file_patterns: FilePatterns = field(default_factory=FilePatterns)
    min_severity: Severity = Severity.INFO
    path: Path | None = None

    def get_rule(self, rule_id: str) -> ReviewRule | None:
        for rule in self.rules:
            if rule.id == rule_id:
                return rule
        return None


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from file and environment.

    Args:
        config_path: Path to config file (default: .cconv.yaml)

    Returns:
        Loaded configuration; defaults when the file does not exist

    Raises:
        ConfigError: The file is not valid YAML or fails validation
    """
    if config_path is None:
        config_path = Path(CONFIG_FILENAME)

    raw_config: dict[str, Any] = {}
    if config_path.exists():
        logger.debug(f"Loading configuration from {config_path}")
        try:
            with open(config_path, encoding="utf-8") as f:
                raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError([f"Invalid YAML in {config_path}: {e}"]) from e
        if not isinstance(raw_config, dict):
            raise ConfigError([f"{config_path} must contain a mapping"])
    else:
        logger.debug(f"No configuration file at {config_path}, using defaults")

    raw_config = _expand_env_vars(raw_config)

    config = _parse_config(raw_config)
    config.path = config_path

    errors = validate_config(config)
    if errors:
        raise ConfigError(errors)
    return config


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand environment variables in config."""
    if isinstance(obj, str):
        if obj.startswith("${") and obj.endswith("}"):
            env_var = obj[2:-1]
            return os.environ.get(env_var, "")
        return obj
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj


def _parse_rules(raw_rules: Any) -> list[ReviewRule]:
    if raw_rules is None:
        return []
    if not isinstance(raw_rules, list):
        raise ConfigError(["rules must be a list"])

    rules = []
    errors = []
    for i, raw in enumerate(raw_rules):
        try:
            rules.append(ReviewRule.model_validate(raw))
        except ValidationError as e:
            for issue in e.errors(include_url=False):
                loc = ".".join(str(part) for part in issue["loc"])
                errors.append(f"rules[{i}].{loc}: {issue['msg']}" if loc else f"rules[{i}]: {issue['msg']}")
    if errors:
        raise ConfigError(errors)
    return rules


def _parse_severity(value: Any) -> Severity:
    try:
        return Severity(str(value).lower())
    except ValueError as e:
        choices = ", ".join(s.value for s in Severity)
        raise ConfigError([f"min_severity must be one of {choices}, got {value!r}"]) from e


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError([f"{name} must be a mapping, got {type(value).__name__}"])
    return value


def _pattern_list(section: dict[str, Any], name: str, default: list[str]) -> list[str]:
    value = section.get(name)
    if value is None:
        return list(default)
    if not isinstance(value, list):
        raise ConfigError([f"file_patterns.{name} must be a list"])
    return [str(pattern) for pattern in value]


def _parse_config(raw: dict[str, Any]) -> Config:
    """Parse raw config dict into Config object."""
    provider_raw = _section(raw, "provider")
    defaults = ProviderConfig()
    provider = ProviderConfig(
        type=provider_raw.get("type", defaults.type),
        command=provider_raw.get("command", defaults.command),
        max_concurrency=provider_raw.get("max_concurrency", defaults.max_concurrency),
        max_retries=provider_raw.get("max_retries", defaults.max_retries),
        timeout_seconds=provider_raw.get("timeout_seconds", defaults.timeout_seconds),
        output_format=provider_raw.get("output_format", defaults.output_format),
        resume_flag=provider_raw.get("resume_flag", defaults.resume_flag),
        mcp_debug=bool(provider_raw.get("mcp_debug", False)),
        dangerously_skip_permissions=bool(provider_raw.get("dangerously_skip_permissions", False)),
        allowed_tools=list(provider_raw.get("allowed_tools") or []),
        disallowed_tools=list(provider_raw.get("disallowed_tools") or []),
        mcp_config=provider_raw.get("mcp_config"),
        model=provider_raw.get("model"),
        fallback_model=provider_raw.get("fallback_model"),
        add_dir=list(provider_raw.get("add_dir") or []),
    )

    # An explicit empty exclude list turns the defaults off
    patterns_raw = _section(raw, "file_patterns")
    file_patterns = FilePatterns(
        include=_pattern_list(patterns_raw, "include", []),
        exclude=_pattern_list(patterns_raw, "exclude", DEFAULT_EXCLUDE_PATTERNS),
    )

    return Config(
        provider=provider,
        rules=_parse_rules(raw.get("rules")),
        file_patterns=file_patterns,
        min_severity=_parse_severity(raw.get("min_severity", Severity.INFO.value)),
    )


def _check_range(errors: list[str], name: str, value: Any, bounds: tuple[int, int]) -> None:
    low, high = bounds
    if not isinstance(value, int) or isinstance(value, bool) or not low <= value <= high:
        errors.append(f"{name} must be an integer between {low} and {high}, got {value!r}")


def validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of errors.

    Args:
        config: Configuration to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []
    provider = config.provider

    if provider.type not in SUPPORTED_PROVIDERS:
        errors.append(f"Unsupported provider type: {provider.type!r}")

    _check_range(errors, "provider.max_concurrency", provider.max_concurrency, MAX_CONCURRENCY_RANGE)
    _check_range(errors, "provider.max_retries", provider.max_retries, MAX_RETRIES_RANGE)

    timeout = provider.timeout_seconds
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout < 1:
        errors.append(f"provider.timeout_seconds must be a number >= 1, got {timeout!r}")

    if not provider.command:
        errors.append("provider.command must not be empty")

    seen: set[str] = set()
    for rule in config.rules:
        if rule.id in seen:
            errors.append(f"Duplicate rule id: {rule.id}")
        seen.add(rule.id)

    return errors


def config_to_dict(config: Config) -> dict[str, Any]:
    """Serializable form of the configuration, in file layout order."""
    provider = config.provider
    return {
        "min_severity": config.min_severity.value,
        "file_patterns": {
            "include": list(config.file_patterns.include),
            "exclude": list(config.file_patterns.exclude),
        },
        "provider": {
            "type": provider.type,
            "command": provider.command,
            "max_concurrency": provider.max_concurrency,
            "max_retries": provider.max_retries,
            "timeout_seconds": provider.timeout_seconds,
            "output_format": provider.output_format,
            "resume_flag": provider.resume_flag,
            "mcp_debug": provider.mcp_debug,
            "dangerously_skip_permissions": provider.dangerously_skip_permissions,
            "allowed_tools": list(provider.allowed_tools),
            "disallowed_tools": list(provider.disallowed_tools),
            "mcp_config": provider.mcp_config,
            "model": provider.model,
            "fallback_model": provider.fallback_model,
            "add_dir": list(provider.add_dir),
        },
        "rules": [rule.to_dict() for rule in config.rules],
    }


def save_config(config: Config, config_path: Path | None = None) -> Path:
    """Validate and write configuration as YAML.

    Returns:
        The path written to

    Raises:
        ConfigError: The configuration does not validate
    """
    errors = validate_config(config)
    if errors:
        raise ConfigError(errors)

    path = config_path or config.path or Path(CONFIG_FILENAME)
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(config_to_dict(config), f, sort_keys=False, allow_unicode=True)
    logger.debug(f"Saved configuration with {len(config.rules)} rules to {path}")
    return path


def apply_overrides(
    config: Config,
    max_concurrency: int | None = None,
    max_retries: int | None = None,
    timeout_seconds: float | None = None,
    min_severity: str | None = None,
) -> Config:
    """Apply command-line overrides on top of the loaded config.

    Raises:
        ConfigError: An override is out of range
    """
    if max_concurrency is not None:
        config.provider.max_concurrency = max_concurrency
    if max_retries is not None:
        config.provider.max_retries = max_retries
    if timeout_seconds is not None:
        config.provider.timeout_seconds = timeout_seconds
    if min_severity is not None:
        config.min_severity = _parse_severity(min_severity)

    errors = validate_config(config)
    if errors:
        raise ConfigError(errors)
    return config
