import logging

import pytest
import yaml

from clientscan.usage.client_usage import CliInterface

CHARM = """
from lightkube import Client
from lightkube.resources.core_v1 import ConfigMap


def configure(client: Client, name: str):
    client.apply(ConfigMap(data={"name": name}))
    client.delete(ConfigMap, name)
"""


def run_cli(argv):
    with pytest.raises(SystemExit) as exc:
        CliInterface().run(argv)
    return exc.value.code


class TestExitCodes:
    def test_success(self, write_tree, capsys):
        root = write_tree({"charm.py": CHARM})

        assert run_cli(["--root", str(root), "--no-color"]) == 0

        assert capsys.readouterr().out.splitlines() == [
            "configmap: apply, delete",
            "total matched calls: 2",
        ]

    def test_missing_root_flag(self):
        assert run_cli([]) == 2

    def test_nonexistent_root(self, tmp_path):
        assert run_cli(["--root", str(tmp_path / "nope"), "--no-color"]) == 1

    def test_bad_method_flag(self, write_tree):
        root = write_tree({"charm.py": CHARM})
        assert run_cli(["--root", str(root), "--method", "scale", "--no-color"]) == 1

    def test_strict_with_failures(self, write_tree):
        root = write_tree({"charm.py": CHARM, "broken.py": "class :\n"})

        assert run_cli(["--root", str(root), "--no-color"]) == 0
        assert run_cli(["--root", str(root), "--strict", "--no-color"]) == 2


class TestOutput:
    def test_yaml_to_stdout(self, write_tree, capsys):
        root = write_tree({"charm.py": CHARM})

        run_cli(["--root", str(root), "--stdout", "--list-calls", "-q", "--no-color"])

        data = yaml.safe_load(capsys.readouterr().out)
        assert [r["methods"] for r in data["resources"]] == [["apply", "delete"]]
        assert [(c["line"], c["identity"]) for c in data["calls"]] == [
            (6, "lightkube.resources.core_v1.ConfigMap"),
            (7, "type[lightkube.resources.core_v1.ConfigMap]"),
        ]

    def test_extra_method(self, write_tree, capsys):
        root = write_tree(
            {
                "charm.py": CHARM
                + """

def scale(client: Client):
    client.scale_to(3, ConfigMap)
"""
            }
        )

        run_cli(
            [
                "--root", str(root),
                "--method", "scale_to=2",
                "--show-identity",
                "--no-color",
            ]
        )

        out = capsys.readouterr().out
        assert "configmap: apply, delete, scale_to  [lightkube.resources.core_v1.ConfigMap]" in out
        assert "total matched calls: 3" in out

    def test_log_format(self, write_tree, capsys, caplog):
        root = write_tree({"charm.py": CHARM})
        caplog.set_level(logging.INFO, logger="clientscan")

        code = run_cli(["--root", str(root), "--format", "log", "--show-identity", "--no-color"])

        assert code == 0
        assert capsys.readouterr().out == ""
        assert (
            'msg=resource name=configmap methods=apply,delete '
            'identity="lightkube.resources.core_v1.ConfigMap"'
        ) in caplog.messages
        assert "msg=summary total_matched_calls=2 resources=1" in caplog.messages
