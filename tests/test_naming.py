import pytest

from clientscan.usage.naming import declared_name, normalize_resource_name, strip_reference_markers


class TestNormalizeResourceName:
    @pytest.mark.parametrize(
        "identity, expected",
        [
            ("lightkube.resources.apps_v1.Deployment", "deployment"),
            ("lightkube.resources.core_v1.Pod", "pod"),
            ("example.com/api/v1.StorageCluster", "storagecluster"),
            ("pkg.api.VolumeV2", "volumev2"),
            ("type[lightkube.resources.core_v1.ConfigMap]", "configmap"),
            ("lightkube.resources.core_v1.Secret | None", "secret"),
            ("*api.Deployment", "deployment"),
            ("builtins.list[pkg.api.Pod]", "list"),
        ],
    )
    def test_display_names(self, identity, expected):
        assert normalize_resource_name(identity) == expected

    @pytest.mark.parametrize(
        "identity",
        ["pkg.api.StorageCluster", "type[a.B]", "make_object()", "self.kind", "x"],
    )
    def test_idempotent(self, identity):
        once = normalize_resource_name(identity)
        assert normalize_resource_name(once) == once

    def test_class_and_instance_share_a_name(self):
        instance = "lightkube.resources.apps_v1.Deployment"
        assert normalize_resource_name(f"type[{instance}]") == normalize_resource_name(instance)

    def test_unresolved_argument_text(self):
        """Fallback identities are raw source text; they still get a readable name."""
        assert normalize_resource_name("make_object()") == "make_object"
        assert normalize_resource_name("self.kind") == "kind"


class TestMarkers:
    def test_strip_nested_wrappers(self):
        assert strip_reference_markers("type[a.B] | None") == "a.B"
        assert strip_reference_markers("None | typing.Type[a.B]") == "a.B"

    def test_declared_name_drops_generic_arguments(self):
        assert declared_name("pkg.Box[pkg.Item]") == "Box"
