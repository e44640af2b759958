"""
Configuration Validation Module

Validates app.yaml against Pydantic schemas.
Ensures the config file is correct before system startup.

Usage:
    from tools.config_validator import validate_all_configs

    errors = validate_all_configs("config")
    if errors:
        for error in errors:
            print(f"ERROR: {error}")
        sys.exit(1)
"""
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

APP_CONFIG_FILE = "app.yaml"


# ===== App Schema =====
class AppSection(BaseModel):
    name: str = Field(default="launch-trader", min_length=1)
    user_id: Optional[str] = Field(default=None, description="Default user for the CLI")


class LoopConfig(BaseModel):
    """Scheduler cadence"""
    interval_seconds: float = Field(default=60.0, gt=0, description="Seconds between cycles")
    jitter_pct: float = Field(default=10.0, ge=0, le=20, description="Random extra delay, percent of the interval")


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    file: str = Field(default="logs/launch_trader.log", min_length=1)


class StateConfig(BaseModel):
    """Store backend selection"""
    store: str = Field(default="json", pattern="^(json|supabase)$")
    path: str = Field(default="data/.state.json", min_length=1)
    supabase_url_env: str = Field(default="SUPABASE_URL", min_length=1)
    supabase_key_env: str = Field(default="SUPABASE_KEY", min_length=1)


class LockConfig(BaseModel):
    dir: str = Field(default="data/locks", min_length=1)
    lease_ttl_seconds: float = Field(default=300.0, gt=0, description="Cycle lease expiry")


class JupiterConfig(BaseModel):
    base_url: str = Field(default="https://lite-api.jup.ag/swap/v1", min_length=1)
    timeout_seconds: float = Field(default=10.0, gt=0, le=120)
    max_retries: int = Field(default=2, ge=1, le=5, description="Attempts per call, transient errors only")
    slippage_bps: int = Field(default=50, ge=1, le=5000)
    api_key_env: str = Field(default="JUPITER_API_KEY", min_length=1)


class SolanaConfig(BaseModel):
    rpc_endpoint: str = Field(default="https://api.mainnet-beta.solana.com", min_length=1)
    timeout_seconds: float = Field(default=15.0, gt=0, le=120)
    max_retries: int = Field(default=2, ge=1, le=5)
    commitment: str = Field(default="confirmed", pattern="^(confirmed|finalized)$")
    confirm_timeout_seconds: float = Field(default=60.0, gt=0)
    poll_interval_seconds: float = Field(default=1.0, gt=0)
    wallet_key_env: str = Field(default="WALLET_PRIVATE_KEY", min_length=1)

    @field_validator("rpc_endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"rpc_endpoint must be an http(s) URL, got {v}")
        return v


class BirdeyeConfig(BaseModel):
    base_url: str = Field(default="https://public-api.birdeye.so", min_length=1)
    api_key_env: str = Field(default="BIRDEYE_API_KEY", min_length=1)
    timeout_seconds: float = Field(default=10.0, gt=0, le=120)
    min_liquidity_usd: float = Field(default=5000.0, ge=0, description="Liquidity floor used in risk scoring")


class ScannerConfig(BaseModel):
    candidate_limit: int = Field(default=5, ge=1, le=50, description="Detected candidates examined per scan")


class MonitoringConfig(BaseModel):
    metrics_enabled: bool = Field(default=False)
    metrics_port: int = Field(default=9100, ge=1, le=65535)
    audit_file: str = Field(default="logs/audit.jsonl", min_length=1)


class AppConfig(BaseModel):
    """Complete app.yaml schema"""
    app: AppSection = Field(default_factory=AppSection)
    loop: LoopConfig = Field(default_factory=LoopConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    state: StateConfig = Field(default_factory=StateConfig)
    lock: LockConfig = Field(default_factory=LockConfig)
    jupiter: JupiterConfig = Field(default_factory=JupiterConfig)
    solana: SolanaConfig = Field(default_factory=SolanaConfig)
    birdeye: BirdeyeConfig = Field(default_factory=BirdeyeConfig)
    scanner: ScannerConfig = Field(default_factory=ScannerConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)


def _format_yaml_error(file_path: Path, error: yaml.YAMLError) -> str:
    """Return enriched message with line/column context for YAML errors."""
    message = f"Malformed YAML in {file_path}: {error}"
    mark = getattr(error, "problem_mark", None)
    if mark is None:
        return message

    line = getattr(mark, "line", None)
    column = getattr(mark, "column", None)
    if line is None or column is None:
        return message

    problem = getattr(error, "problem", str(error))
    try:
        raw_lines = file_path.read_text().splitlines()
    except OSError:
        return f"Malformed YAML in {file_path}: line {line + 1}, column {column + 1}: {problem}"

    start = max(line - 2, 0)
    end = min(line + 3, len(raw_lines))
    snippet = "\n".join(
        f"{'>' if idx == line else ' '} {idx + 1:04d} | {raw_lines[idx]}"
        for idx in range(start, end)
    )
    return (
        f"Malformed YAML in {file_path}: line {line + 1}, column {column + 1}: {problem}\n"
        f"Context:\n{snippet}"
    )


def load_yaml_file(file_path: Path) -> Dict[str, Any]:
    """
    Load YAML file and return as dict.

    Raises:
        FileNotFoundError: If file doesn't exist
        yaml.YAMLError: If YAML is malformed
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {file_path}")

    with open(file_path, 'r') as f:
        try:
            return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise yaml.YAMLError(_format_yaml_error(file_path, e))


def _pydantic_errors(prefix: str, error: ValidationError) -> List[str]:
    errors = []
    for item in error.errors():
        field = " -> ".join(str(loc) for loc in item['loc'])
        errors.append(f"{prefix}: {field}: {item['msg']}")
    return errors


def validate_config(config: Dict[str, Any]) -> List[str]:
    """
    Validate an already-loaded app config dict.

    Returns:
        List of error messages (empty if valid)
    """
    if not isinstance(config, dict):
        return [f"{APP_CONFIG_FILE}: top level must be a mapping"]

    try:
        parsed = AppConfig(**config)
    except ValidationError as e:
        return _pydantic_errors(APP_CONFIG_FILE, e)

    return validate_sanity_checks(parsed)


def worst_case_item_seconds(config: AppConfig) -> float:
    """
    Upper bound on one monitored position or scanned candidate between lease renewals.

    Jupiter: price, quote and swap build. Solana: two decimals lookups, the
    send and the balance read, plus the confirmation wait.
    """
    jupiter = 3 * config.jupiter.timeout_seconds * config.jupiter.max_retries
    solana = 4 * config.solana.timeout_seconds * config.solana.max_retries
    return config.solana.confirm_timeout_seconds + jupiter + solana


def validate_sanity_checks(config: AppConfig) -> List[str]:
    """
    Logical consistency checks across sections.

    Detects:
    - A cycle lease that can expire while one position or candidate is being handled
    - A loop interval shorter than one confirmation wait
    """
    errors = []

    item_budget = worst_case_item_seconds(config)
    if config.lock.lease_ttl_seconds <= item_budget:
        errors.append(
            "UNSAFE: lock.lease_ttl_seconds must exceed the worst-case time for one position or "
            f"candidate ({config.lock.lease_ttl_seconds} <= {item_budget:.0f}); "
            "a lease could expire mid-swap and let a second cycle start."
        )

    if config.solana.poll_interval_seconds >= config.solana.confirm_timeout_seconds:
        errors.append(
            "CONTRADICTION: solana.poll_interval_seconds >= confirm_timeout_seconds "
            "(confirmation would be polled at most once)."
        )

    if config.loop.interval_seconds < config.solana.confirm_timeout_seconds:
        logger.warning(
            "loop.interval_seconds (%s) is shorter than solana.confirm_timeout_seconds (%s); "
            "overlapping ticks will be skipped by the cycle lease",
            config.loop.interval_seconds, config.solana.confirm_timeout_seconds,
        )

    return errors


def load_app_config(config_dir: str = "config") -> AppConfig:
    """Load and parse app.yaml. Raises on missing file, bad YAML or schema errors."""
    return AppConfig(**load_yaml_file(Path(config_dir) / APP_CONFIG_FILE))


def validate_all_configs(config_dir: str = "config") -> List[str]:
    """
    Validate all configuration files.

    Performs:
    1. Schema validation (Pydantic type checks)
    2. Sanity checks (logical consistency)

    Returns:
        List of all error messages (empty if all valid)
    """
    config_path = Path(config_dir) / APP_CONFIG_FILE

    try:
        config = load_yaml_file(config_path)
    except FileNotFoundError as e:
        errors = [f"{APP_CONFIG_FILE}: {e}"]
    except yaml.YAMLError as e:
        errors = [f"{APP_CONFIG_FILE}: Invalid YAML - {e}"]
    else:
        errors = validate_config(config)

    if not errors:
        logger.info("All config files validated successfully")
    else:
        logger.error(f"{len(errors)} validation error(s) found")

    return errors


if __name__ == "__main__":
    import sys

    logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')

    config_dir = sys.argv[1] if len(sys.argv) > 1 else "config"
    errors = validate_all_configs(config_dir)

    if errors:
        print("\nConfiguration Validation Failed:\n")
        for error in errors:
            print(f"  - {error}")
        print()
        sys.exit(1)
    print("\nAll configuration files are valid!\n")
    sys.exit(0)
