"""Transport probe implementations"""

from .base import BaseTransport
from .classifier import TransportClassifier
from .ata import AtaTransport
from .fc import FcTransport
from .iscsi import IscsiTransport
from .nvme import NvmeTransport
from .sas import SasClassTransport, SasTransport
from .sbp import SbpTransport
from .spi import SpiTransport
from .srp import SrpTransport
from .usb import UsbTransport

__all__ = [
    "BaseTransport", "TransportClassifier", "AtaTransport", "FcTransport",
    "IscsiTransport", "NvmeTransport", "SasClassTransport", "SasTransport",
    "SbpTransport", "SpiTransport", "SrpTransport", "UsbTransport",
]
