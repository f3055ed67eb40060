#!/usr/bin/env python3
"""
SCSI Topology Tool

This script lists SCSI devices, NVMe namespaces and their hosts with device
nodes, logical unit identities and transports read from sysfs.
"""

from scsi_topology.scsi_topology import main


if __name__ == "__main__":
    main()
