# src/api_scenario_test/core/config.py
"""Configuration parsing and validation."""

from __future__ import annotations

import yaml
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass
import logging
import os

logger = logging.getLogger(__name__)

FINAL_STATE_VIA_VALUES = ["location", "original-uri", "azure-async-operation"]


@dataclass
class HttpConfig:
    """Configuration for the live HTTP transport."""
    base_url: str = "https://management.azure.com"
    timeout: float = 60.0
    verify_ssl: bool = True
    resource_group_api_version: str = "2020-06-01"
    authority_host: str = "https://login.microsoftonline.com"
    token_resource: str = "https://management.azure.com"

    def validate(self) -> None:
        """Validate HTTP configuration."""
        if not self.base_url.startswith(("http://", "https://")):
            raise ValueError(f"base_url must be an http(s) URL: {self.base_url}")

        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive: {self.timeout}")

        if not self.resource_group_api_version:
            raise ValueError("resource_group_api_version cannot be empty")


@dataclass
class LroConfig:
    """Long-running operation polling bounds."""
    polling_interval: float = 10.0
    max_polls: int = 360
    timeout_seconds: float = 3600.0
    final_state_via: str = "location"

    def validate(self) -> None:
        """Validate LRO configuration."""
        if self.polling_interval < 0:
            raise ValueError(f"polling_interval must be non-negative: {self.polling_interval}")

        if self.max_polls <= 0:
            raise ValueError(f"max_polls must be positive: {self.max_polls}")

        if self.timeout_seconds <= 0:
            raise ValueError(f"timeout_seconds must be positive: {self.timeout_seconds}")

        if self.final_state_via not in FINAL_STATE_VIA_VALUES:
            raise ValueError(f"Invalid final_state_via: {self.final_state_via}")


@dataclass
class RunConfig:
    """Scenario execution options."""
    skip_cleanup: bool = False
    from_step: Optional[str] = None
    to_step: Optional[str] = None
    verbose: bool = False

    @property
    def is_partial(self) -> bool:
        """True when the run is bounded by a replay range."""
        return self.from_step is not None or self.to_step is not None

    def validate(self) -> None:
        """Validate run configuration."""
        if self.from_step is not None and not self.from_step:
            raise ValueError("from_step cannot be empty")

        if self.to_step is not None and not self.to_step:
            raise ValueError("to_step cannot be empty")


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    prometheus_pushgateway: Optional[str] = None
    job_name: str = "api_scenario_test"

    def validate(self) -> None:
        """Validate monitoring configuration."""
        if not self.job_name:
            raise ValueError("job_name cannot be empty")


@dataclass
class OutputConfig:
    """Output configuration."""
    output_dir: Path = Path("output")
    log_level: str = "INFO"

    def validate(self) -> None:
        """Validate output configuration."""
        if self.log_level not in ["DEBUG", "INFO", "WARNING", "ERROR"]:
            raise ValueError(f"Invalid log level: {self.log_level}")


class Config:
    """Main configuration container."""

    def __init__(self, config_path: Optional[Path] = None):
        """Initialize configuration."""
        self.config_path = config_path
        self.data: Dict[str, Any] = {}

        # Initialize with defaults
        self.http = HttpConfig()
        self.lro = LroConfig()
        self.run = RunConfig()
        self.monitoring = MonitoringConfig()
        self.output = OutputConfig()

        # Always merge environment variables
        self._merge_env_vars()
        self._update_from_dict()

        if config_path:
            self.load()
        else:
            self.validate()

    def load(self) -> None:
        """Load configuration from file."""
        if not self.config_path:
            raise ValueError("No configuration path specified")

        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        logger.info(f"Loading configuration from {self.config_path}")

        try:
            with open(self.config_path, 'r') as f:
                self.data = yaml.safe_load(f) or {}

            self._merge_env_vars()
            self._update_from_dict()
            self.validate()

            logger.info("Configuration loaded successfully")

        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML configuration: {e}")
            raise
        except Exception as e:
            logger.error(f"Failed to load configuration: {e}")
            raise

    def _merge_env_vars(self) -> None:
        """Merge environment variables into configuration."""
        if "APST_BASE_URL" in os.environ:
            self.data.setdefault("http", {})["base_url"] = os.environ["APST_BASE_URL"]

        if "APST_LRO_POLLING_INTERVAL" in os.environ:
            self.data.setdefault("lro", {})["polling_interval"] = float(os.environ["APST_LRO_POLLING_INTERVAL"])
        if "APST_LRO_MAX_POLLS" in os.environ:
            self.data.setdefault("lro", {})["max_polls"] = int(os.environ["APST_LRO_MAX_POLLS"])
        if "APST_LRO_TIMEOUT" in os.environ:
            self.data.setdefault("lro", {})["timeout_seconds"] = float(os.environ["APST_LRO_TIMEOUT"])

        if "APST_PUSHGATEWAY" in os.environ:
            self.data.setdefault("monitoring", {})["prometheus_pushgateway"] = os.environ["APST_PUSHGATEWAY"]

        if "APST_OUTPUT_DIR" in os.environ:
            self.data.setdefault("output", {})["output_dir"] = os.environ["APST_OUTPUT_DIR"]
        if "APST_LOG_LEVEL" in os.environ:
            self.data.setdefault("output", {})["log_level"] = os.environ["APST_LOG_LEVEL"]

    def _update_from_dict(self) -> None:
        """Update configuration objects from loaded data."""
        if "http" in self.data:
            http_data = self.data["http"]
            self.http = HttpConfig(
                base_url=http_data.get("base_url", self.http.base_url),
                timeout=http_data.get("timeout", self.http.timeout),
                verify_ssl=http_data.get("verify_ssl", self.http.verify_ssl),
                resource_group_api_version=http_data.get("resource_group_api_version",
                                                         self.http.resource_group_api_version),
                authority_host=http_data.get("authority_host", self.http.authority_host),
                token_resource=http_data.get("token_resource", self.http.token_resource),
            )

        if "lro" in self.data:
            lro_data = self.data["lro"]
            self.lro = LroConfig(
                polling_interval=lro_data.get("polling_interval", self.lro.polling_interval),
                max_polls=lro_data.get("max_polls", self.lro.max_polls),
                timeout_seconds=lro_data.get("timeout_seconds", self.lro.timeout_seconds),
                final_state_via=lro_data.get("final_state_via", self.lro.final_state_via),
            )

        if "run" in self.data:
            run_data = self.data["run"]
            self.run = RunConfig(
                skip_cleanup=run_data.get("skip_cleanup", self.run.skip_cleanup),
                from_step=run_data.get("from_step", self.run.from_step),
                to_step=run_data.get("to_step", self.run.to_step),
                verbose=run_data.get("verbose", self.run.verbose),
            )

        if "monitoring" in self.data:
            monitoring_data = self.data["monitoring"]
            self.monitoring = MonitoringConfig(
                prometheus_pushgateway=monitoring_data.get("prometheus_pushgateway",
                                                           self.monitoring.prometheus_pushgateway),
                job_name=monitoring_data.get("job_name", self.monitoring.job_name),
            )

        if "output" in self.data:
            output_data = self.data["output"]
            self.output = OutputConfig(
                output_dir=Path(output_data.get("output_dir", str(self.output.output_dir))),
                log_level=output_data.get("log_level", self.output.log_level),
            )

    def validate(self) -> None:
        """Validate all configuration sections."""
        try:
            self.http.validate()
            self.lro.validate()
            self.run.validate()
            self.monitoring.validate()
            self.output.validate()
        except Exception as e:
            logger.error(f"Configuration validation failed: {e}")
            raise

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "http": {
                "base_url": self.http.base_url,
                "timeout": self.http.timeout,
                "verify_ssl": self.http.verify_ssl,
                "resource_group_api_version": self.http.resource_group_api_version,
                "authority_host": self.http.authority_host,
                "token_resource": self.http.token_resource,
            },
            "lro": {
                "polling_interval": self.lro.polling_interval,
                "max_polls": self.lro.max_polls,
                "timeout_seconds": self.lro.timeout_seconds,
                "final_state_via": self.lro.final_state_via,
            },
            "run": {
                "skip_cleanup": self.run.skip_cleanup,
                "from_step": self.run.from_step,
                "to_step": self.run.to_step,
                "verbose": self.run.verbose,
            },
            "monitoring": {
                "prometheus_pushgateway": self.monitoring.prometheus_pushgateway,
                "job_name": self.monitoring.job_name,
            },
            "output": {
                "output_dir": str(self.output.output_dir),
                "log_level": self.output.log_level,
            },
        }


class ConfigValidator:
    """Validates configuration values."""

    @staticmethod
    def validate(config: Dict[str, Any]) -> bool:
        """Validate configuration dictionary."""
        try:
            temp_config = Config()
            temp_config.data = config
            temp_config._update_from_dict()
            temp_config.validate()
            return True
        except Exception as e:
            logger.error(f"Configuration validation failed: {e}")
            return False
