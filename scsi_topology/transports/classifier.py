"""Ordered transport classification of hosts and devices"""

import logging
from typing import List, Optional

from ..models import AddressTuple, TransportInfo
from ..sysfs import SysfsReader
from ..vpd import VpdReader
from .ata import AtaTransport
from .base import BaseTransport
from .fc import FcTransport
from .iscsi import IscsiTransport
from .nvme import NvmeTransport
from .sas import SasClassTransport, SasTransport
from .sbp import SbpTransport
from .spi import SpiTransport
from .srp import SrpTransport
from .usb import UsbTransport


class TransportClassifier:
    """Runs the transport probes in a fixed order, first match wins

    Each call builds a fresh TransportInfo; nothing is remembered between
    entries.
    """

    def __init__(self, sysfs: SysfsReader, vpd_reader: Optional[VpdReader] = None,
                 logger: Optional[logging.Logger] = None):
        """Initialize the classifier

        Args:
            sysfs: Attribute reader
            vpd_reader: Identity reader used for ATA device summaries
            logger: Logger instance
        """
        self.sysfs = sysfs
        self.logger = logger or logging.getLogger(__name__)

        spi = SpiTransport(sysfs, logger=self.logger)
        fc = FcTransport(sysfs, logger=self.logger)
        srp = SrpTransport(sysfs, logger=self.logger)
        sas = SasTransport(sysfs, logger=self.logger)
        sas_class = SasClassTransport(sysfs, logger=self.logger)
        sbp = SbpTransport(sysfs, logger=self.logger)
        iscsi = IscsiTransport(sysfs, logger=self.logger)
        usb = UsbTransport(sysfs, logger=self.logger)
        ata = AtaTransport(sysfs, vpd_reader=vpd_reader, logger=self.logger)

        self.host_probes: List[BaseTransport] = [spi, fc, srp, sas, sas_class, sbp, iscsi, usb, ata]
        self.device_probes: List[BaseTransport] = [sas, spi, fc, srp, sas_class, sbp, iscsi, usb, ata]
        self.nvme = NvmeTransport(sysfs, logger=self.logger)

    def classify_host(self, host_name: str) -> TransportInfo:
        """Classify a SCSI host such as "host3"

        Returns:
            TransportInfo, kind UNKNOWN when no probe matched
        """
        for probe in self.host_probes:
            info = probe.probe_host(host_name)
            if info is not None:
                return info
        self.logger.debug(f"{host_name}: no transport information")
        return TransportInfo()

    def classify_device(self, address: AddressTuple, devname: str) -> TransportInfo:
        """Classify a SCSI device such as "3:0:1:0"

        Returns:
            TransportInfo, kind UNKNOWN when no probe matched
        """
        for probe in self.device_probes:
            info = probe.probe_device(address, devname)
            if info is not None:
                return info
        self.logger.debug(f"{devname}: no transport information")
        return TransportInfo()

    def classify_nvme(self, controller_dir: str) -> TransportInfo:
        """Classify an NVMe controller directory"""
        return self.nvme.probe_controller(controller_dir) or TransportInfo()
