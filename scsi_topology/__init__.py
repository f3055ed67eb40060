"""
SCSI Topology Tool

This module lists SCSI logical units, NVMe namespaces and their hosts by
reading the kernel attribute tree, resolving device nodes, logical unit
identities and transports.
"""

from .address import format_address, parse_address, parse_filter
from .enumerator import TopologyEnumerator
from .models import AddressTuple, TopologyRecord, TopologySettings
from .scsi_topology import ScsiTopology

__version__ = "1.0.0"
__all__ = ["AddressTuple", "TopologyRecord", "TopologySettings", "TopologyEnumerator",
           "ScsiTopology", "format_address", "parse_address", "parse_filter"]
