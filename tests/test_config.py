import pytest

from clientscan.usage.config import ConfigurationManager, MethodSpecTable, parse_method_flag
from clientscan.usage.models import MethodSpec


class TestDefaults:
    def test_lightkube_table(self):
        config = ConfigurationManager().load_config(None, {})

        assert config["target_namespace"] == "lightkube"
        table = MethodSpecTable.from_config(config["methods"])
        assert table.lookup("get") == MethodSpec(name="get", arg_index=1, keyword="res")
        assert table.lookup("create") == MethodSpec(name="create", arg_index=1, keyword="obj")
        assert table.lookup("delete_collection") is not None
        assert table.lookup("close") is None

    def test_concurrency_filled_in(self):
        config = ConfigurationManager().load_config(None, {"concurrency": None})
        assert config["concurrency"] >= 1


class TestUserFile:
    def test_commented_json_replaces_table(self, tmp_path):
        path = tmp_path / "clientscan.jsonc"
        path.write_text(
            """
            {
                // a workspace-local client
                "target_namespace": "pkg.client",
                "methods": {"get": 3, "create": 2}
            }
            """,
            encoding="utf-8",
        )

        config = ConfigurationManager().load_config(str(path), {})

        assert config["target_namespace"] == "pkg.client"
        assert sorted(config["methods"]) == ["create", "get"]

    def test_cli_methods_extend_table(self, tmp_path):
        config = ConfigurationManager().load_config(None, {"methods": {"scale": 2}})

        table = MethodSpecTable.from_config(config["methods"])
        assert table.lookup("scale") == MethodSpec(name="scale", arg_index=2)
        assert table.lookup("get") is not None

    def test_cli_overrides_win(self, tmp_path):
        path = tmp_path / "c.json"
        path.write_text('{"target_namespace": "from.file"}', encoding="utf-8")

        config = ConfigurationManager().load_config(
            str(path), {"target_namespace": "from.cli", "exclude": None}
        )

        assert config["target_namespace"] == "from.cli"
        assert config["exclude"] == []

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ConfigurationManager().load_config(str(tmp_path / "nope.json"), {})

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(ValueError):
            ConfigurationManager().load_config(str(path), {})


class TestMethodTable:
    @pytest.mark.parametrize("entry", [0, -1, "2", True, {"keyword": "res"}])
    def test_rejects_bad_index(self, entry):
        with pytest.raises(ValueError):
            MethodSpecTable.from_config({"get": entry})

    def test_empty_namespace_rejected(self):
        with pytest.raises(ValueError):
            ConfigurationManager().load_config(None, {"target_namespace": ""})

    def test_names_sorted(self):
        table = MethodSpecTable.from_config({"list": 1, "get": 3})
        assert table.names() == ["get", "list"]


class TestMethodFlag:
    def test_parse(self):
        assert parse_method_flag("get=3") == ("get", 3)

    @pytest.mark.parametrize("flag", ["get", "=2", "get=x"])
    def test_invalid(self, flag):
        with pytest.raises(ValueError):
            parse_method_flag(flag)
