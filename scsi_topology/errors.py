"""Exception types raised by the topology engine"""

from typing import Optional


class TopologyError(Exception):
    """Base error for the topology engine

    Attributes:
        code: Short machine readable error code
        hint: Optional remediation hint shown to the user
    """

    def __init__(self, message: str, code: str = "ERROR", hint: Optional[str] = None):
        super().__init__(message)
        self.code = code
        self.hint = hint


class AddressParseError(TopologyError):
    """An address tuple or directory entry name could not be decoded"""

    def __init__(self, message: str, hint: Optional[str] = None):
        super().__init__(message, code="MALFORMED", hint=hint)


class FilterError(AddressParseError):
    """A user supplied address filter is malformed"""


class VpdPageError(TopologyError):
    """A Device Identification VPD page failed header validation"""

    def __init__(self, message: str):
        super().__init__(message, code="BAD_VPD")
