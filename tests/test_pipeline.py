import ast

from conftest import unit_for

from clientscan.usage.aggregator import Aggregator
from clientscan.usage.config import MethodSpecTable
from clientscan.usage.models import CallSite, MethodSpec
from clientscan.usage.pipeline import CallSiteScanner, MethodMatcher, ResourceTypeExtractor

CLIENT_PKG = {
    "pkg/client.py": """
class Client:
    def get(self, ctx, key, obj):
        ...

    def create(self, ctx, obj):
        ...

    def close(self):
        ...
""",
    "pkg/api.py": """
class Deployment:
    pass


class Pod:
    pass
""",
    "pkg/fake.py": """
class FakeClient:
    def get(self, ctx, key, obj):
        ...
""",
}

METHODS = MethodSpecTable.from_config({"get": 3, "create": 2})


def site_for(source: str) -> CallSite:
    call = ast.parse(source, mode="eval").body
    return CallSite(
        method=call.func.attr,
        path="x.py",
        line=1,
        col=1,
        callee=call.func,
        args=list(call.args),
        keywords=list(call.keywords),
    )


def matches(load_workspace, body: str) -> list[tuple[str, str, bool]]:
    """(method, identity, resolved) for every matched call in ``app/main.py``."""
    ws = load_workspace({**CLIENT_PKG, "app/main.py": body})
    unit = unit_for(ws, "app/main.py")
    matcher = MethodMatcher(METHODS, "pkg.client")
    extractor = ResourceTypeExtractor()

    out = []
    for site in CallSiteScanner().scan(unit):
        spec = matcher.match(site, unit)
        if spec is None:
            continue
        resource = extractor.extract(site, spec, unit)
        out.append((site.method, resource.identity, resource.resolved))
    return out


class TestCallSiteScanner:
    def test_preorder_method_calls_only(self, load_workspace):
        ws = load_workspace({"app.py": "a.outer(b.inner(x), plain(y))\nplain()\n"})

        sites = list(CallSiteScanner().scan(unit_for(ws, "app.py")))

        assert [s.method for s in sites] == ["outer", "inner"]
        assert (sites[0].line, sites[0].col) == (1, 1)
        assert sites[1].position == "app.py:1:9"


class TestMethodMatcher:
    def test_tracked_methods_in_namespace(self, load_workspace):
        found = matches(
            load_workspace,
            """
from pkg import api
from pkg.client import Client


def main(ctx, key):
    c = Client()
    c.get(ctx, key, api.Deployment())
    c.create(ctx, api.Deployment())
    c.get(ctx, key, api.Pod())
    c.close()
""",
        )
        assert found == [
            ("get", "pkg.api.Deployment", True),
            ("create", "pkg.api.Deployment", True),
            ("get", "pkg.api.Pod", True),
        ]

    def test_other_namespaces_ignored(self, load_workspace):
        found = matches(
            load_workspace,
            """
from pkg import api
from pkg.fake import FakeClient


def main(ctx, key, other: dict):
    FakeClient().get(ctx, key, api.Pod())
    other.get(ctx, key, api.Pod())
""",
        )
        assert found == []

    def test_short_calls_discarded(self, load_workspace):
        found = matches(
            load_workspace,
            """
from pkg.client import Client


def main(ctx, key, args):
    c = Client()
    c.get(ctx, key)
    c.create(*args)
""",
        )
        assert found == []

    def test_keyword_fallback(self):
        spec = MethodSpec(name="get", arg_index=1, keyword="res")

        site = site_for("client.get(name='web', res=Pod)")
        assert ast.unparse(MethodMatcher.resource_argument(site, spec)) == "Pod"

        assert MethodMatcher.resource_argument(site_for("client.get(name='web')"), spec) is None

    def test_starred_before_resource(self):
        spec = MethodSpec(name="get", arg_index=2)
        assert MethodMatcher.resource_argument(site_for("c.get(*a, b)"), spec) is None
        assert MethodMatcher.resource_argument(site_for("c.get(a, b, *rest)"), spec) is not None

    def test_alias_namespace(self, load_workspace):
        ws = load_workspace(
            {
                "app.py": """
from lightkube.core.client import Client
from lightkube.resources.core_v1 import Pod


def run(client: Client):
    client.delete(Pod, "web")
"""
            }
        )
        unit = unit_for(ws, "app.py")
        site = next(iter(CallSiteScanner().scan(unit)))
        table = MethodSpecTable.from_config({"delete": 1})

        assert MethodMatcher(table, "lightkube").match(site, unit) is None
        assert MethodMatcher(table, "lightkube", ["lightkube.core.client"]).match(site, unit)


class TestResourceTypeExtractor:
    def test_unresolved_argument_text(self, load_workspace):
        found = matches(
            load_workspace,
            """
from pkg.client import Client


def main(ctx):
    Client().create(ctx, make_object( ))
""",
        )
        assert found == [("create", "make_object()", False)]

    def test_class_object_keys_on_instance_type(self, load_workspace):
        ws = load_workspace(
            {
                "app.py": """
from lightkube import Client
from lightkube.resources.apps_v1 import Deployment


def run(client: Client):
    client.get(Deployment, "web")
    client.create(Deployment())
"""
            }
        )
        unit = unit_for(ws, "app.py")
        table = MethodSpecTable.from_config({"get": 1, "create": 1})
        matcher = MethodMatcher(table, "lightkube")

        resources = [
            ResourceTypeExtractor().extract(site, matcher.match(site, unit), unit)
            for site in CallSiteScanner().scan(unit)
        ]

        deployment = "lightkube.resources.apps_v1.Deployment"
        assert [r.identity for r in resources] == [deployment, deployment]
        assert [r.argument for r in resources] == [f"type[{deployment}]", deployment]


class TestAggregator:
    def test_duplicate_calls_counted(self):
        agg = Aggregator()
        agg.record("pkg.api.Pod", "get")
        agg.record("pkg.api.Pod", "get")

        result = agg.result()
        assert result.total_matched_calls == 2
        assert result.usages == {"pkg.api.Pod": {"get"}}

    def test_merge_is_order_independent(self):
        events = [
            ("pkg.api.Deployment", "get"),
            ("pkg.api.Deployment", "create"),
            ("pkg.api.Pod", "get"),
        ]

        def build(order):
            agg = Aggregator()
            for identity, method in order:
                local = Aggregator()
                local.record(identity, method)
                agg.merge(local)
            return agg.result()

        forward, backward = build(events), build(reversed(events))
        assert forward.usages == backward.usages
        assert forward.total_matched_calls == backward.total_matched_calls == 3

    def test_result_is_a_snapshot(self):
        agg = Aggregator()
        agg.record("a.B", "get")
        result = agg.result()
        agg.record("a.B", "list")

        assert result.usages == {"a.B": {"get"}}
        assert agg.result().usages == {"a.B": {"get", "list"}}
