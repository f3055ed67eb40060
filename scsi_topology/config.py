"""Configuration management for scsi-topology"""

import os
import logging
from typing import Any, Dict, Optional
import yaml

from .models import TopologySettings

DEFAULT_CONFIG_FILE = "~/.config/scsi_topology.conf"
LUNHEX_ENV = "SCSI_TOPOLOGY_LUNHEX"


class ConfigManager:
    """Manages loading and accessing configuration from YAML file"""

    def __init__(self, config_file: str = DEFAULT_CONFIG_FILE, logger: Optional[logging.Logger] = None):
        """Initialize configuration manager

        Args:
            config_file: Path to configuration file
            logger: Logger instance
        """
        self.config_file = os.path.expanduser(config_file)
        self.logger = logger or logging.getLogger(__name__)

        self.values: Dict[str, Any] = {}
        self.settings = TopologySettings()

        self.load()

    def load(self) -> None:
        """Load configuration from YAML file

        Configuration file structure:
        ```yaml
        sysfsroot: /sys          # Attribute tree mount point
        devroot: /dev            # Device node directory
        lunhex: 0                # 0 decimal, 1 T10 hex, 2 full hex
        no_nvme: false           # Skip NVMe namespaces and controllers
        holder_depth: 8          # Holder links followed by scsi_id lookup
        unit: 0                  # Identity rendering, 4 keeps the prefix
        size_units: decimal      # decimal or binary
        ```
        """
        if not os.path.exists(self.config_file):
            self.logger.debug(f"Configuration file {self.config_file} not found. Using default settings.")
            self._apply_environment()
            return

        try:
            self.logger.debug(f"Loading user configuration from {self.config_file}")

            with open(self.config_file, 'r') as f:
                config = yaml.safe_load(f)

            if not config:
                self.logger.warning(f"Configuration file {self.config_file} is empty or invalid")
            elif not isinstance(config, dict):
                self.logger.warning(f"Configuration file {self.config_file} is not a mapping, ignoring it")
            else:
                self._load_settings(config)

        except yaml.YAMLError as e:
            self.logger.error(f"Error parsing YAML in configuration file: {e}")
        except IOError as e:
            self.logger.error(f"Error reading configuration file: {e}")

        self._apply_environment()

    def _load_settings(self, config: Dict[str, Any]) -> None:
        """Load settings from configuration data

        Args:
            config: Mapping read from the configuration file
        """
        known = set(TopologySettings().to_dict())
        for key in config:
            if key not in known:
                self.logger.warning(f"Ignoring unknown configuration key '{key}'")

        self.values = {k: v for k, v in config.items() if k in known}
        try:
            self.settings = TopologySettings.from_dict(self.values)
            self.logger.debug(f"Loaded settings: {self.settings}")
        except (TypeError, ValueError) as e:
            self.logger.warning(f"Invalid value in configuration file, using defaults: {e}")
            self.values = {}
            self.settings = TopologySettings()

        if self.settings.size_units not in ("decimal", "binary"):
            self.logger.warning(f"Unknown size_units '{self.settings.size_units}', using decimal")
            self.settings.size_units = "decimal"

    def _apply_environment(self) -> None:
        value = os.environ.get(LUNHEX_ENV)
        if not value:
            return
        try:
            lunhex = int(value)
        except ValueError:
            self.logger.warning(f"Ignoring {LUNHEX_ENV}={value!r}, expected 1 or 2")
            return
        if lunhex in (1, 2):
            self.settings.lunhex = lunhex
            self.logger.debug(f"LUN hex mode {lunhex} from {LUNHEX_ENV}")

    def get_settings(self) -> TopologySettings:
        """Get the effective settings from file and environment"""
        return self.settings

    def has_config(self) -> bool:
        """Check if any values were loaded from the configuration file"""
        return len(self.values) > 0
