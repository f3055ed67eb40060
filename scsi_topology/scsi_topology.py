"""Main ScsiTopology class, the command line driver"""

import argparse
import json
import logging
import sys
from typing import List, Optional, Sequence

from .address import LunFormat, format_address, parse_filter
from .config import DEFAULT_CONFIG_FILE, ConfigManager
from .enumerator import TopologyEnumerator
from .errors import FilterError, TopologyError
from .models import AddressFilter, TopologyRecord, TopologySettings, device_type_name

UNITS_10 = ["B", "kB", "MB", "GB", "TB", "PB", "EB", "ZB", "YB"]
UNITS_2 = ["B", "KiB", "MiB", "GiB", "TiB", "PiB", "EiB", "ZiB", "YiB"]

# Peripheral types with a meaningful capacity: disk, cd/dvd, simplified disk, zbc
DIRECT_ACCESS_TYPES = ("0", "5", "14", "20")


def size_to_string(size: int, binary: bool = False) -> str:
    """Render a byte count with three significant figures

    Args:
        size: Number of bytes
        binary: Use powers of 1024 (KiB, MiB, ...) instead of 1000

    Returns:
        Size string such as "500GB" or "1.82TiB"
    """
    units = UNITS_2 if binary else UNITS_10
    divisor = 1024 if binary else 1000
    index = 0
    fraction = ""

    if size >= divisor:
        remainder = 0
        while size >= divisor and index < len(units) - 1:
            size, remainder = divmod(size, divisor)
            index += 1

        digits = 0
        scaled = size
        while scaled * 10 < 1000:
            scaled *= 10
            digits += 1
        if digits:
            fraction = f".{remainder * 1000 // divisor:03d}"[:digits + 1]

    return f"{size}{fraction}{units[index]}"


class ScsiTopology:
    """Main class for the scsi-topology tool

    This class lists SCSI devices, NVMe namespaces and their hosts or
    controllers. It orchestrates the work of specialized components:
    - Configuration management
    - Topology enumeration (sysfs, device nodes, identities, transports)
    - Table and JSON output
    """

    def __init__(self):
        """Initialize the ScsiTopology instance"""
        # Options
        self.json_output = False
        self.list_hosts = False
        self.controllers_only = False
        self.show_transport = False
        self.show_generic = False
        self.show_kname = False
        self.show_devnum = False
        self.size_mode = 0
        self.wwn_mode = 0
        self.scsi_id_mode = 0
        self.unit_mode = 0
        self.lunhex = 0
        self.no_nvme = False
        self.long_output = False
        self.brief = False
        self.verbose = False
        self.quiet = False
        self.config_file = DEFAULT_CONFIG_FILE
        self.sysfsroot: Optional[str] = None
        self.devroot: Optional[str] = None
        self.filter_args: List[str] = []

        # Components (initialized later)
        self.logger = self._setup_logger()
        self.config_manager: Optional[ConfigManager] = None
        self.settings = TopologySettings()
        self.address_filter = AddressFilter()
        self.enumerator: Optional[TopologyEnumerator] = None

        # Data
        self.records: List[TopologyRecord] = []

    def _setup_logger(self) -> logging.Logger:
        """Set up the logger for the application"""
        logger = logging.getLogger("scsi-topology")
        logger.setLevel(logging.INFO)

        if not logger.handlers:
            ch = logging.StreamHandler()
            ch.setLevel(logging.INFO)

            formatter = logging.Formatter('[%(levelname)s] %(message)s')
            ch.setFormatter(formatter)

            logger.addHandler(ch)

        return logger

    def parse_arguments(self, argv: Optional[Sequence[str]] = None) -> None:
        """Parse command line arguments

        Args:
            argv: Argument list, defaults to sys.argv[1:]
        """
        parser = argparse.ArgumentParser(
            prog="scsi-topology",
            description="Lists SCSI devices and NVMe namespaces with their identities and transports."
        )

        parser.add_argument("-H", "--hosts", action="store_true", help="List SCSI hosts and NVMe controllers")
        parser.add_argument("-C", "--controllers", action="store_true", help="List NVMe controllers only")
        parser.add_argument("-t", "--transport", action="store_true", help="Show transport information")
        parser.add_argument("-g", "--generic", action="store_true", help="Show SCSI generic device node")
        parser.add_argument("-k", "--kname", action="store_true", help="Show kernel name instead of device node")
        parser.add_argument("-d", "--device", action="store_true", help="Show device node major:minor")
        parser.add_argument("-s", "--size", action="count", default=0,
                          help="Show disk size, twice for binary units")
        parser.add_argument("-w", "--wwn", action="count", default=0,
                          help="Show WWN from by-id links, twice to use wwn- links")
        parser.add_argument("-i", "--scsi-id", action="count", default=0,
                          help="Show scsi_id identifier, twice to drop the type character")
        parser.add_argument("-u", "--unit", action="count", default=0,
                          help="Show logical unit identity, 4 times to keep its prefix")
        parser.add_argument("-x", "--lunhex", action="count", default=0,
                          help="Show LUN in T10 hex, twice for full 16 digit hex")
        parser.add_argument("-N", "--no-nvme", action="store_true", help="Exclude NVMe devices")
        parser.add_argument("-l", "--long", action="store_true", help="Display additional attributes")
        parser.add_argument("-b", "--brief", action="store_true", help="Display address and device node only")
        parser.add_argument("-j", "--json", action="store_true", help="Output results in JSON format")
        parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
        parser.add_argument("-q", "--quiet", action="store_true", help="Suppress INFO messages")
        parser.add_argument("-y", "--sysfsroot", metavar="PATH", help="Attribute tree root (default /sys)")
        parser.add_argument("--devroot", metavar="PATH", help="Device node directory (default /dev)")
        parser.add_argument("-c", "--config", default=DEFAULT_CONFIG_FILE, metavar="FILE",
                          help="Configuration file")
        parser.add_argument("filter", nargs="*", metavar="H:C:T:L",
                          help="Address filter, '-' '*' or '?' match any value, 'N' selects NVMe")

        args = parser.parse_args(argv)

        # Set instance variables
        self.list_hosts = args.hosts or args.controllers
        self.controllers_only = args.controllers
        self.show_transport = args.transport
        self.show_generic = args.generic
        self.show_kname = args.kname
        self.show_devnum = args.device
        self.size_mode = args.size
        self.wwn_mode = args.wwn
        self.scsi_id_mode = args.scsi_id
        self.unit_mode = args.unit
        self.lunhex = args.lunhex
        self.no_nvme = args.no_nvme
        self.long_output = args.long
        self.brief = args.brief
        self.json_output = args.json
        self.verbose = args.verbose
        self.quiet = args.quiet
        self.sysfsroot = args.sysfsroot
        self.devroot = args.devroot
        self.config_file = args.config
        self.filter_args = args.filter

        # Configure logger
        if self.verbose:
            self.logger.setLevel(logging.DEBUG)
            for handler in self.logger.handlers:
                handler.setLevel(logging.DEBUG)
        elif self.quiet:
            self.logger.setLevel(logging.WARNING)
            for handler in self.logger.handlers:
                handler.setLevel(logging.WARNING)

    def load_settings(self) -> TopologySettings:
        """Merge the configuration file, environment and command line

        Returns:
            Effective TopologySettings
        """
        self.config_manager = ConfigManager(self.config_file, logger=self.logger)
        settings = self.config_manager.get_settings()
        if self.config_manager.has_config():
            self.logger.debug(f"Loaded configuration from {self.config_file}")
        else:
            self.logger.debug("No configuration values loaded, using defaults")

        if self.sysfsroot:
            settings.sysfsroot = self.sysfsroot
        if self.devroot:
            settings.devroot = self.devroot
        if self.lunhex:
            settings.lunhex = min(self.lunhex, 2)
        if self.unit_mode:
            settings.unit = self.unit_mode
        if self.no_nvme:
            settings.no_nvme = True
        if self.size_mode > 1:
            settings.size_units = "binary"

        self.logger.debug(f"Effective settings: {settings.to_dict()}")
        return settings

    def run(self, argv: Optional[Sequence[str]] = None) -> None:
        """Main entry point for the application"""
        # Parse arguments
        self.parse_arguments(argv)

        # Decode the filter before touching the attribute tree
        try:
            self.address_filter = parse_filter(self.filter_args)
        except FilterError as e:
            self.logger.error(f"Bad address filter: {e}")
            if e.hint:
                self.logger.error(e.hint)
            sys.exit(1)

        self.settings = self.load_settings()
        self.enumerator = TopologyEnumerator.from_settings(
            self.settings, logger=self.logger,
            wwn_mode=self.wwn_mode, scsi_id_mode=self.scsi_id_mode)

        if self.list_hosts:
            self.records = self.collect_hosts()
        else:
            self.records = self.collect_devices()

        self._display_results()

    def collect_devices(self) -> List[TopologyRecord]:
        """Enumerate SCSI devices, then NVMe namespaces"""
        records = []
        if not self.address_filter.is_nvme:
            records.extend(self.enumerator.list_scsi(self.address_filter))
        if not self.settings.no_nvme:
            records.extend(self.enumerator.list_nvme(self.address_filter))
        self.logger.debug(f"Found {len(records)} devices")
        return records

    def collect_hosts(self) -> List[TopologyRecord]:
        """Enumerate SCSI hosts, then NVMe controllers"""
        records = []
        if not self.controllers_only and not self.address_filter.is_nvme:
            records.extend(self.enumerator.list_hosts(self.address_filter))
        if not self.settings.no_nvme:
            records.extend(self.enumerator.list_controllers(self.address_filter))
        self.logger.debug(f"Found {len(records)} hosts")
        return records

    def _display_results(self) -> None:
        """Display enumeration results"""
        if self.json_output:
            output = [record.to_dict() for record in self.records]
            print(json.dumps(output, indent=2))
            return

        if not self.records:
            self.logger.info("No devices found" if not self.list_hosts else "No hosts found")
            return

        if self.list_hosts:
            self._display_host_table()
        else:
            self._display_device_table()

        if self.long_output:
            self._display_details()

    def _format_address(self, record: TopologyRecord, host_only: bool = False) -> str:
        lun_format = LunFormat(min(max(self.settings.lunhex, 0), 2))
        return "[" + format_address(record.address, lun_format, host_only=host_only) + "]"

    def _node_column(self, record: TopologyRecord) -> str:
        if self.show_kname:
            return record.kernel_name or "-"
        return record.device_node or "-"

    def _transport_column(self, record: TopologyRecord) -> str:
        if record.transport is None or not record.transport.is_known:
            return "-"
        return record.transport.summary

    def _size_column(self, record: TopologyRecord) -> str:
        if record.attribute("type", "") not in DIRECT_ACCESS_TYPES:
            return "-"
        sectors = record.raw_attributes.get("size")
        if not sectors:
            return "-"
        try:
            size = int(sectors) * 512
        except ValueError:
            return "-"
        return size_to_string(size, binary=self.settings.size_units == "binary")

    def _display_device_table(self) -> None:
        """Display devices in table format"""
        if self.brief:
            headers = ["Address", "Device"]
        else:
            headers = ["Address", "Type", "Vendor", "Model", "Rev"]
            if self.show_transport:
                headers.append("Transport")
            if self.settings.unit:
                headers.append("Identity")
            headers.append("Device")
        if self.show_devnum:
            headers.append("MajMin")
        if self.show_generic:
            headers.append("Generic")
        if self.wwn_mode:
            headers.append("WWN")
        if self.scsi_id_mode:
            headers.append("SCSI_ID")
        if self.size_mode:
            headers.append("Size")

        table_data = []
        for record in self.records:
            row = [self._format_address(record)]
            if not self.brief:
                row += [
                    record.device_type,
                    record.attribute("vendor"),
                    record.attribute("model"),
                    record.attribute("rev")
                ]
                if self.show_transport:
                    row.append(self._transport_column(record))
                if self.settings.unit:
                    row.append(str(record.identity) if record.identity else "-")
            row.append(self._node_column(record))
            if self.show_devnum:
                row.append(record.major_minor or "-")
            if self.show_generic:
                row.append(record.generic_node or "-")
            if self.wwn_mode:
                row.append(record.wwn or "-")
            if self.scsi_id_mode:
                row.append(record.scsi_id or "-")
            if self.size_mode:
                row.append(self._size_column(record))
            table_data.append(row)

        self._print_table(headers, table_data)

    def _display_host_table(self) -> None:
        """Display hosts and controllers in table format"""
        headers = ["Host", "Driver"]
        if self.show_transport:
            headers.append("Transport")
        headers.append("Device")

        table_data = []
        for record in self.records:
            if record.address.is_nvme:
                driver = record.attribute("model", "nvme")
            else:
                driver = record.attribute("proc_name", "<NULL>")
            row = [self._format_address(record, host_only=True), driver]
            if self.show_transport:
                row.append(self._transport_column(record))
            row.append(self._node_column(record))
            table_data.append(row)

        self._print_table(headers, table_data)

    def _display_details(self) -> None:
        """Display raw and transport attributes of every record"""
        for record in self.records:
            print(f"\n{self._format_address(record, host_only=self.list_hosts)} {record.name}")
            if not record.address.is_nvme and not self.list_hosts:
                type_code = record.raw_attributes.get("type")
                print(f"  device type: {device_type_name(type_code, long_name=True)}")
            for key, value in record.raw_attributes.items():
                print(f"  {key}={value}")
            if self.show_transport and record.transport and record.transport.is_known:
                print(f"  transport: {record.transport.kind.value}")
                for key, value in record.transport.attributes.items():
                    print(f"    {key}={value}")

    def _print_table(self, headers: List[str], data: List[List[str]]) -> None:
        """Print a formatted table"""
        # Calculate column widths
        widths = [len(h) for h in headers]
        for row in data:
            for i, val in enumerate(row):
                if i < len(widths):
                    widths[i] = max(widths[i], len(str(val)))

        # Print header
        header_line = "  ".join(h.ljust(widths[i]) for i, h in enumerate(headers))
        print(header_line.rstrip())
        print("-" * len(header_line.rstrip()))

        # Print data
        for row in data:
            print("  ".join(str(val).ljust(widths[i]) for i, val in enumerate(row)).rstrip())


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Console script entry point"""
    try:
        app = ScsiTopology()
        app.run(argv)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(1)
    except TopologyError as e:
        print(f"Error: {e}")
        sys.exit(1)
