"""Allow running the package with python -m scsi_topology"""

from .scsi_topology import main

if __name__ == "__main__":
    main()
