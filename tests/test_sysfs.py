from scsi_topology.sysfs import SysfsReader


class TestSysfsReader:

    def test_read_first_line(self, fake_sysfs):
        fake_sysfs.attr("class/scsi_host/host0/proc_name", "ahci")
        sysfs = fake_sysfs.reader()
        assert sysfs.read(sysfs.class_path("scsi_host", "host0"), "proc_name") == "ahci"

    def test_missing_attribute_is_none(self, fake_sysfs):
        sysfs = fake_sysfs.reader()
        assert sysfs.read(sysfs.class_path("scsi_host", "host9"), "proc_name") is None
        assert sysfs.read_int(sysfs.class_path("scsi_host", "host9"), "can_queue") is None

    def test_latin1_fallback(self, fake_sysfs):
        fake_sysfs.attr("devices/x/model", b"Caf\xe9\n")
        sysfs = fake_sysfs.reader()
        assert sysfs.read(sysfs.path("devices", "x"), "model") == "Café"

    def test_read_many_keeps_present_only(self, fake_sysfs):
        fake_sysfs.attr("devices/x/vendor", "SEAGATE")
        fake_sysfs.attr("devices/x/queue/logical_block_size", "512")
        sysfs = fake_sysfs.reader()
        values = sysfs.read_many(sysfs.path("devices", "x"), ["vendor", "model", "queue/logical_block_size"])
        assert values == {"vendor": "SEAGATE", "queue/logical_block_size": "512"}

    def test_uevent(self, fake_sysfs):
        fake_sysfs.attr("class/nvme/nvme0/uevent", "MAJOR=242\nMINOR=0\nDEVNAME=nvme0")
        sysfs = fake_sysfs.reader()
        assert sysfs.read_uevent(sysfs.class_path("nvme", "nvme0"), "MINOR") == "0"
        assert sysfs.read_uevent(sysfs.class_path("nvme", "nvme0"), "NVME_TRTYPE") is None

    def test_major_minor(self, fake_sysfs):
        fake_sysfs.attr("class/block/sda/dev", "8:0")
        fake_sysfs.attr("class/block/bad/dev", "garbage")
        sysfs = fake_sysfs.reader()
        assert sysfs.major_minor(sysfs.class_path("block", "sda")) == (8, 0)
        assert sysfs.major_minor(sysfs.class_path("block", "bad")) is None

    def test_major_minor_from_uevent(self, fake_sysfs):
        fake_sysfs.attr("class/nvme/nvme1/uevent", "MAJOR=242\nMINOR=1\nDEVNAME=nvme1")
        fake_sysfs.attr("class/nvme/nvme2/uevent", "DEVNAME=nvme2")
        sysfs = fake_sysfs.reader()
        assert sysfs.major_minor(sysfs.class_path("nvme", "nvme1")) == (242, 1)
        assert sysfs.major_minor(sysfs.class_path("nvme", "nvme2")) is None

    def test_list_dir_missing(self, tmp_path):
        sysfs = SysfsReader(str(tmp_path / "absent"))
        assert sysfs.list_dir(sysfs.path("bus", "scsi", "devices")) is None
