"""Read access to the kernel attribute tree (sysfs)"""

import logging
import os
from typing import Dict, Iterable, List, Optional


class SysfsReader:
    """Reads single attributes below a configurable sysfs root

    Every accessor treats a missing or unreadable file as absent and returns
    None, so hot-plug races and unloaded modules never abort an enumeration.
    """

    def __init__(self, root: str = "/sys", logger: Optional[logging.Logger] = None):
        """Initialize the reader

        Args:
            root: Mount point of the attribute tree
            logger: Logger instance
        """
        self.root = root.rstrip("/") or "/"
        self.logger = logger or logging.getLogger(__name__)

    def path(self, *parts: str) -> str:
        """Build an absolute path below the sysfs root"""
        return os.path.join(self.root, *parts)

    def class_path(self, class_name: str, *parts: str) -> str:
        return self.path("class", class_name, *parts)

    def read(self, directory: str, name: str = "", decode_method: str = "utf-8") -> Optional[str]:
        """Read the first line of an attribute file

        Args:
            directory: Directory holding the attribute
            name: Attribute file name, empty when directory is the file itself
            decode_method: Encoding tried before falling back to latin-1

        Returns:
            First line without its trailing newline, "" for an empty file,
            None when the attribute is absent or unreadable
        """
        data = self.read_bytes(directory, name)
        if data is None:
            return None

        try:
            text = data.decode(decode_method)
        except UnicodeDecodeError:
            self.logger.debug(f"{decode_method} decoding failed for {os.path.join(directory, name)}, "
                              f"falling back to latin-1")
            text = data.decode("latin-1")

        return text.split("\n", 1)[0]

    def read_bytes(self, directory: str, name: str = "", limit: int = -1) -> Optional[bytes]:
        """Read raw bytes of an attribute file

        Args:
            directory: Directory holding the attribute
            name: Attribute file name
            limit: Maximum number of bytes to read, -1 for the whole file

        Returns:
            File contents, None when the attribute is absent or unreadable
        """
        file_path = os.path.join(directory, name) if name else directory
        try:
            with open(file_path, "rb") as f:
                return f.read(limit)
        except OSError as e:
            self.logger.debug(f"Attribute {file_path} not readable: {e}")
            return None

    def read_many(self, directory: str, names: Iterable[str]) -> Dict[str, str]:
        """Read several attributes, keeping only those present

        Args:
            directory: Directory holding the attributes
            names: Attribute names, may contain sub-paths such as 'device/vendor'

        Returns:
            Ordered mapping of attribute name to value
        """
        values: Dict[str, str] = {}
        for name in names:
            value = self.read(directory, name)
            if value is not None:
                values[name] = value
        return values

    def read_int(self, directory: str, name: str, base: int = 10) -> Optional[int]:
        value = self.read(directory, name)
        if value is None:
            return None
        try:
            return int(value.strip(), base)
        except ValueError:
            self.logger.debug(f"Attribute {os.path.join(directory, name)} is not an integer: {value!r}")
            return None

    def read_uevent(self, directory: str, key: str, name: str = "uevent") -> Optional[str]:
        """Look up KEY=value in a uevent style attribute file

        Args:
            directory: Directory holding the file
            key: Key to look for, e.g. "MAJOR"
            name: File name, defaults to 'uevent'

        Returns:
            Value for the key, None when file or key is absent
        """
        data = self.read_bytes(directory, name)
        if data is None:
            return None
        for line in data.decode("utf-8", errors="replace").splitlines():
            k, sep, v = line.partition("=")
            if sep and k.strip() == key:
                return v.strip()
        return None

    def list_dir(self, directory: str) -> Optional[List[str]]:
        """List a directory

        Returns:
            Entry names in directory order, None when the directory is absent
        """
        try:
            return os.listdir(directory)
        except OSError as e:
            self.logger.debug(f"Directory {directory} not readable: {e}")
            return None

    def is_dir(self, path: str) -> bool:
        """True for a directory or a symlink resolving to one"""
        return os.path.isdir(path)

    def exists(self, path: str) -> bool:
        return os.path.exists(path)

    def is_link(self, path: str) -> bool:
        return os.path.islink(path)

    def realpath(self, path: str) -> Optional[str]:
        """Resolve symlinks, None when the path does not exist"""
        if not os.path.exists(path):
            return None
        return os.path.realpath(path)

    def readlink(self, path: str) -> Optional[str]:
        try:
            return os.readlink(path)
        except OSError as e:
            self.logger.debug(f"Link {path} not readable: {e}")
            return None

    def major_minor(self, directory: str) -> Optional[tuple]:
        """Parse the 'dev' attribute ("maj:min") of a device directory

        Falls back to the MAJOR and MINOR keys of 'uevent' when 'dev' is absent.
        """
        value = self.read(directory, "dev")
        if not value:
            major = self.read_uevent(directory, "MAJOR")
            minor = self.read_uevent(directory, "MINOR")
            if major is None or minor is None:
                return None
            value = f"{major}:{minor}"
        major, sep, minor = value.strip().partition(":")
        if not sep:
            return None
        try:
            return int(major), int(minor)
        except ValueError:
            self.logger.debug(f"Malformed dev attribute in {directory}: {value!r}")
            return None
