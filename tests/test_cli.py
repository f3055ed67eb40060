import json
import logging

import pytest

from scsi_topology.config import LUNHEX_ENV
from scsi_topology.scsi_topology import ScsiTopology, size_to_string
from scsi_topology.vpd import CODE_SET_BINARY, DESIG_NAA

NAA_16 = bytes.fromhex("5000c500a1b2c3d40000000000000001")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    monkeypatch.delenv(LUNHEX_ENV, raising=False)


@pytest.fixture
def tree(fake_sysfs, vpd):
    fake_sysfs.add_host(0, proc_name="ahci")
    fake_sysfs.add_host(2, proc_name="mpt3sas")
    page = vpd.page(vpd.desc(CODE_SET_BINARY, 0, DESIG_NAA, NAA_16))
    fake_sysfs.add_scsi_device("0:0:0:0", vendor="ATA", model="ST4000NM0033", block="sda",
                               size="7814037168", vpd=page)
    fake_sysfs.add_scsi_device("2:0:1:0", vendor="SEAGATE", model="ST8000NM0075", block="sdb",
                               block_dev="8:16")
    return fake_sysfs


def run(tree, tmp_path, *args):
    app = ScsiTopology()
    app.run(["-y", tree.root, "--devroot", str(tmp_path / "dev"),
             "-c", str(tmp_path / "none.conf"), "-q"] + list(args))
    return app


class TestSizeToString:

    @pytest.mark.parametrize("size, binary, text", [
        (999, False, "999B"),
        (1000, False, "1.00kB"),
        (12345678, False, "12.3MB"),
        (123456789, False, "123MB"),
        (500107862016, False, "500GB"),
        (2000398934016, False, "2.00TB"),
        (1536, True, "1.50KiB"),
    ])
    def test_three_significant_figures(self, size, binary, text):
        assert size_to_string(size, binary=binary) == text


class TestScsiTopology:

    def test_device_table(self, tree, tmp_path, capsys):
        run(tree, tmp_path)
        out = capsys.readouterr().out
        assert "[0:0:0:0]" in out
        assert "[2:0:1:0]" in out
        assert "ST8000NM0075" in out
        assert out.index("[0:0:0:0]") < out.index("[2:0:1:0]")

    def test_filter(self, tree, tmp_path, capsys):
        app = run(tree, tmp_path, "2")
        assert [r.name for r in app.records] == ["2:0:1:0"]
        assert "[0:0:0:0]" not in capsys.readouterr().out

    def test_json(self, tree, tmp_path, capsys):
        run(tree, tmp_path, "-j", "-u")
        data = json.loads(capsys.readouterr().out)
        assert [d["name"] for d in data] == ["0:0:0:0", "2:0:1:0"]
        assert data[0]["identity"]["value"] == NAA_16.hex()

    def test_identity_and_size_columns(self, tree, tmp_path, capsys):
        run(tree, tmp_path, "-uuuu", "-s", "0")
        out = capsys.readouterr().out
        assert "naa." + NAA_16.hex() in out
        assert "4.00TB" in out

    def test_transport_column(self, tree, tmp_path, capsys):
        run(tree, tmp_path, "-t", "0")
        assert "sata:" in capsys.readouterr().out

    def test_unknown_transport(self, tree, tmp_path, capsys):
        app = run(tree, tmp_path, "-t", "-l", "2")
        out = capsys.readouterr().out
        assert app._transport_column(app.records[0]) == "-"
        assert "transport:" not in out

    def test_known_transport_details(self, tree, tmp_path, capsys):
        run(tree, tmp_path, "-t", "-l", "0")
        assert "transport: sata" in capsys.readouterr().out

    def test_config_source_logged(self, tree, tmp_path, caplog):
        with caplog.at_level(logging.DEBUG, logger="scsi-topology"):
            run(tree, tmp_path, "-v")
        assert "No configuration values loaded" in caplog.text

        config = tmp_path / "topology.conf"
        config.write_text("holder_depth: 4\n")
        caplog.clear()
        with caplog.at_level(logging.DEBUG, logger="scsi-topology"):
            run(tree, tmp_path, "-v", "-c", str(config))
        assert f"Loaded configuration from {config}" in caplog.text

    def test_lunhex(self, tree, tmp_path, capsys):
        run(tree, tmp_path, "-xx", "0")
        assert "[0:0:0:0x0000000000000000]" in capsys.readouterr().out

    def test_hosts(self, tree, tmp_path, capsys):
        app = run(tree, tmp_path, "-H", "-t")
        out = capsys.readouterr().out
        assert [r.name for r in app.records] == ["host0", "host2"]
        assert "[2]" in out
        assert "mpt3sas" in out

    def test_long_output(self, tree, tmp_path, capsys):
        run(tree, tmp_path, "-l", "0")
        out = capsys.readouterr().out
        assert "device type: Direct-Access" in out
        assert "state=running" in out

    def test_bad_filter_exits(self, tree, tmp_path):
        with pytest.raises(SystemExit) as ei:
            run(tree, tmp_path, "x:y")
        assert ei.value.code == 1

    def test_no_nvme(self, tree, tmp_path):
        tree.add_nvme_controller(0, 1)
        tree.add_nvme_namespace(0, 1)
        app = run(tree, tmp_path)
        assert [r.name for r in app.records] == ["0:0:0:0", "2:0:1:0", "nvme0n1"]
        app = run(tree, tmp_path, "-N")
        assert [r.name for r in app.records] == ["0:0:0:0", "2:0:1:0"]
