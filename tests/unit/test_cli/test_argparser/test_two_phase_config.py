# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import logging

import pytest

from hypergen2.cli.args import build_parser, parse_args_with_config

LOG = logging.getLogger("h2test.cli")


def _parse(argv):
    args, conf, _ = parse_args_with_config(argv=argv, logger=LOG)
    return args, conf


@pytest.mark.unit
class TestCliOnly:
    def test_convert_from_flags(self):
        args, conf = _parse(["--cmd", "convert", "--vm-name", "Web01"])
        assert conf == {}
        assert args.vm_name == "Web01"
        assert args.enable_tpm is True
        assert args.secure_boot_template == "MicrosoftWindows"
        assert args.heartbeat_timeout_s == 300.0

    def test_batch_flags(self):
        args, _ = _parse(["--cmd", "batch", "--snapshot-dir", "snaps", "--vm", "A", "--vm", "B", "--all", "--no-tpm"])
        assert args.vm_names == ["A", "B"]
        assert args.select_all is True
        assert args.enable_tpm is False

    @pytest.mark.parametrize(
        "argv,fragment",
        [
            ([], "cmd"),
            (["--cmd", "migrate"], "Unknown cmd"),
            (["--cmd", "convert"], "vm_name"),
            (["--cmd", "batch"], "snapshot_dir"),
            (["--cmd", "inventory"], "snapshot_dir"),
            (["--cmd", "convert", "--vm-name", "x", "--no-backup"], "acknowledge-no-backup"),
            (["--cmd", "convert", "--vm-name", "x", "--heartbeat-interval", "0"], "heartbeat_interval_s"),
            (["--cmd", "convert", "--vm-name", "x", "--copy-retries", "0"], "copy_retries"),
        ],
    )
    def test_validation_errors(self, argv, fragment):
        with pytest.raises(SystemExit) as ei:
            _parse(argv)
        assert fragment in str(ei.value.code)

    def test_acknowledged_no_backup(self):
        args, _ = _parse(["--cmd", "convert", "--vm-name", "x", "--no-backup", "--acknowledge-no-backup"])
        assert args.no_backup and args.acknowledge_no_backup

    def test_help_epilog_mentions_yaml(self):
        assert "cmd: batch" in build_parser().format_help()


@pytest.mark.unit
class TestTwoPhase:
    def test_yaml_satisfies_required_keys(self, tmp_path):
        cfg = tmp_path / "batch.yaml"
        cfg.write_text(
            "cmd: batch\n"
            "snapshot_dir: D:/snapshots\n"
            "heartbeat-timeout-s: 120\n"
            "arc:\n"
            "  subscription: sub-1\n"
            "  resource_group: rg-arc\n",
            encoding="utf-8",
        )
        args, conf = _parse(["--config", str(cfg)])

        assert args.cmd == "batch"
        assert args.snapshot_dir == "D:/snapshots"
        assert args.heartbeat_timeout_s == 120
        assert (args.arc_subscription, args.arc_resource_group) == ("sub-1", "rg-arc")
        assert conf["arc"]["subscription"] == "sub-1"

    def test_cli_overrides_config(self, tmp_path):
        cfg = tmp_path / "c.yaml"
        cfg.write_text("cmd: convert\nvm_name: FromYaml\nsecure_boot_template: MicrosoftUEFICertificateAuthority\n", encoding="utf-8")

        args, _ = _parse(["--config", str(cfg), "--vm-name", "FromCli"])

        assert args.vm_name == "FromCli"
        assert args.secure_boot_template == "MicrosoftUEFICertificateAuthority"

    def test_later_config_wins(self, tmp_path):
        a = tmp_path / "a.yaml"
        b = tmp_path / "b.json"
        a.write_text("cmd: inventory\nsnapshot_dir: one\narc: {subscription: s1, location: westeurope}\n", encoding="utf-8")
        b.write_text('{"snapshot_dir": "two", "arc": {"subscription": "s2"}}', encoding="utf-8")

        args, conf = _parse(["--config", str(a), "--config", str(b)])

        assert args.snapshot_dir == "two"
        assert conf["arc"] == {"subscription": "s2", "location": "westeurope"}
        assert args.arc_location == "westeurope"

    def test_dump_config_exits(self, tmp_path, capsys):
        cfg = tmp_path / "c.yaml"
        cfg.write_text("cmd: inventory\n", encoding="utf-8")
        with pytest.raises(SystemExit) as ei:
            _parse(["--config", str(cfg), "--dump-config"])
        assert ei.value.code == 0
        assert '"cmd": "inventory"' in capsys.readouterr().out
