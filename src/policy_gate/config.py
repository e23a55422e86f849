"""Configuration loading and validation for Policy Gate."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from policy_gate.models.policy import EnforcementTier


@dataclass
class AnalyzerSettings:
    """Remote analyzer service configuration."""

    base_url: str | None = None
    api_key: str = ""
    model: str | None = None
    timeout_seconds: int = 120

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)


@dataclass
class OrchestratorSettings:
    """Orchestrator configuration."""

    timeout_seconds: int = 120
    max_parallel_analyzers: int = 5
    excluded_paths: list[str] = field(default_factory=list)
    diff_analysis: bool = True


@dataclass
class PolicySettings:
    """Policy store and resolution configuration."""

    store_path: str | None = None
    default_tier: EnforcementTier = EnforcementTier.BASIC
    cache_ttl_seconds: float = 60


@dataclass
class EvidenceSettings:
    """Evidence production configuration."""

    tool_versions: dict[str, str] = field(default_factory=dict)


@dataclass
class TelemetrySettings:
    """Best-effort telemetry configuration."""

    enabled: bool = True
    max_queue_size: int = 1000


@dataclass
class ServerSettings:
    """Server configuration."""

    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class Config:
    """Complete application configuration."""

    analyzer: AnalyzerSettings = field(default_factory=AnalyzerSettings)
    orchestrator: OrchestratorSettings = field(default_factory=OrchestratorSettings)
    policy: PolicySettings = field(default_factory=PolicySettings)
    evidence: EvidenceSettings = field(default_factory=EvidenceSettings)
    telemetry: TelemetrySettings = field(default_factory=TelemetrySettings)
    server: ServerSettings = field(default_factory=ServerSettings)


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from file and environment.

    Args:
        config_path: Path to config file (default: policy-gate.yaml)

    Returns:
        Loaded configuration
    """
    # Find config file
    if config_path is None:
        config_path = Path("policy-gate.yaml")
        if not config_path.exists():
            config_path = Path("policy-gate.example.yaml")

    # Load from file if exists
    raw_config: dict[str, Any] = {}
    if config_path.exists():
        with open(config_path) as f:
            raw_config = yaml.safe_load(f) or {}

    # Expand environment variables
    raw_config = _expand_env_vars(raw_config)

    # Parse configuration
    return _parse_config(raw_config)


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


def _parse_tier(value: Any) -> EnforcementTier | str:
    # Unknown tiers are kept as strings so validate_config can report them
    try:
        return EnforcementTier(str(value).lower())
    except ValueError:
        return str(value)


def _parse_config(raw: dict[str, Any]) -> Config:
    """Parse raw config dict into Config object."""
    # Analyzer service
    analyzer_raw = raw.get("analyzer") or {}
    analyzer = AnalyzerSettings(
        base_url=analyzer_raw.get("base_url") or os.environ.get("POLICY_GATE_ANALYZER_URL") or None,
        api_key=analyzer_raw.get("api_key") or os.environ.get("POLICY_GATE_ANALYZER_API_KEY", ""),
        model=analyzer_raw.get("model"),
        timeout_seconds=analyzer_raw.get("timeout_seconds", 120),
    )

    # Orchestrator settings
    orch_raw = raw.get("orchestrator") or {}
    orchestrator = OrchestratorSettings(
        timeout_seconds=orch_raw.get("timeout_seconds", 120),
        max_parallel_analyzers=orch_raw.get("max_parallel_analyzers", 5),
        excluded_paths=list(orch_raw.get("excluded_paths", [])),
        diff_analysis=orch_raw.get("diff_analysis", True),
    )

    # Policy settings
    policy_raw = raw.get("policy") or {}
    policy = PolicySettings(
        store_path=policy_raw.get("store_path") or os.environ.get("POLICY_GATE_POLICY_STORE") or None,
        default_tier=_parse_tier(policy_raw.get("default_tier", "basic")),
        cache_ttl_seconds=policy_raw.get("cache_ttl_seconds", 60),
    )

    # Evidence settings
    evidence_raw = raw.get("evidence") or {}
    evidence = EvidenceSettings(
        tool_versions={str(k): str(v) for k, v in (evidence_raw.get("tool_versions") or {}).items()},
    )

    # Telemetry settings
    telemetry_raw = raw.get("telemetry") or {}
    telemetry = TelemetrySettings(
        enabled=telemetry_raw.get("enabled", True),
        max_queue_size=telemetry_raw.get("max_queue_size", 1000),
    )

    # Server settings
    server_raw = raw.get("server") or {}
    server = ServerSettings(
        host=server_raw.get("host", "0.0.0.0"),
        port=server_raw.get("port", 8080),
    )

    return Config(
        analyzer=analyzer,
        orchestrator=orchestrator,
        policy=policy,
        evidence=evidence,
        telemetry=telemetry,
        server=server,
    )


def validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of errors.

    Args:
        config: Configuration to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    if not isinstance(config.policy.default_tier, EnforcementTier):
        errors.append(
            f"Unknown policy.default_tier '{config.policy.default_tier}' "
            f"(expected one of: {', '.join(t.value for t in EnforcementTier)})"
        )

    if config.policy.store_path and not Path(config.policy.store_path).exists():
        errors.append(f"Policy store file not found: {config.policy.store_path}")

    if config.policy.cache_ttl_seconds < 0:
        errors.append("policy.cache_ttl_seconds must not be negative")

    if config.analyzer.enabled and not config.analyzer.api_key:
        errors.append(
            "Missing analyzer API key (set POLICY_GATE_ANALYZER_API_KEY or analyzer.api_key)"
        )

    if config.orchestrator.timeout_seconds <= 0:
        errors.append("orchestrator.timeout_seconds must be positive")

    if config.orchestrator.max_parallel_analyzers < 1:
        errors.append("orchestrator.max_parallel_analyzers must be at least 1")

    if config.telemetry.max_queue_size < 1:
        errors.append("telemetry.max_queue_size must be at least 1")

    return errors
