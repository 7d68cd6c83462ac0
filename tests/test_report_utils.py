"""Unit tests for krane/report_utils.py"""

import json

import yaml

from krane.k8s_client import ImageInfo
from krane.report_utils import (
    get_timestamp_suffix,
    group_sources_by_image,
    render_grouped,
    render_images,
    save_json,
)


def _info(image, namespace="default", kind="Deployment", name="web"):
    return ImageInfo(image=image, namespace=namespace, source_kind=kind, source_name=name)


class TestRenderImages:
    """Tests for plain image list output"""

    def test_json_payload(self):
        data = json.loads(render_images(["a", "b"], "json"))
        assert data == {"images": ["a", "b"], "total": 2}

    def test_yaml_payload(self):
        data = yaml.safe_load(render_images(["a"], "yaml"))
        assert data == {"images": ["a"], "total": 1}

    def test_table(self):
        output = render_images(["nginx:1.25", "redis:7"], "table")
        assert "CONTAINER IMAGE" in output
        assert "nginx:1.25" in output
        assert output.endswith("Total: 2 unique images")


class TestGroupedOutput:
    """Tests for --show-sources output"""

    def test_grouping_filters_and_sorts(self):
        infos = [
            _info("redis", "b-ns"),
            _info("nginx", "z-ns"),
            _info("nginx", "a-ns"),
            _info("dropped", "a-ns"),
        ]
        grouped = group_sources_by_image(infos, ["nginx", "redis"])

        assert [g.image for g in grouped] == ["nginx", "redis"]
        assert [s.namespace for s in grouped[0].sources] == ["a-ns", "z-ns"]

    def test_table_truncates_sources(self):
        """At most three sources are listed per image"""
        infos = [_info("nginx", f"ns-{i}") for i in range(5)]
        output = render_grouped(group_sources_by_image(infos, ["nginx"]), "table")

        assert "ns=ns-0 source=Deployment/web" in output
        assert "ns=ns-2" in output
        assert "ns=ns-3" not in output
        assert "... and 2 more sources" in output

    def test_json_keeps_every_source(self):
        infos = [_info("nginx", f"ns-{i}") for i in range(5)]
        data = json.loads(render_grouped(group_sources_by_image(infos, ["nginx"]), "json"))

        assert data["total"] == 1
        assert len(data["images"][0]["sources"]) == 5
        assert data["images"][0]["sources"][0]["sourceKind"] == "Deployment"


class TestSaveJson:
    def test_creates_parent_directories(self, tmp_path):
        path = tmp_path / "reports" / "nested" / "report.json"
        saved = save_json(str(path), {"count": 1})
        assert saved == str(path)
        assert json.loads(path.read_text()) == {"count": 1}

    def test_timestamp_suffix_format(self):
        assert len(get_timestamp_suffix().split("-")) == 6
