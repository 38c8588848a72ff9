"""Tests for the artifact board and run context lookups."""

import threading

import pytest

from monodeploy.errors import ConfigurationError
from monodeploy.model import ArtifactBoard, PackageKind, RunContext

from conftest import make_package


class TestArtifactBoard:

    def test_unpublished_is_none(self):
        assert ArtifactBoard().get("lib") is None

    def test_publish_once(self, tmp_path):
        board = ArtifactBoard()
        archive = tmp_path / "lib-1.0.0.tgz"
        board.publish("lib", archive)
        assert board.get("lib") == archive.resolve()
        assert board.published() == {"lib": archive.resolve()}

    def test_republish_same_path_is_fine(self, tmp_path):
        board = ArtifactBoard()
        board.publish("lib", tmp_path / "a.tgz")
        board.publish("lib", tmp_path / "a.tgz")
        assert board.get("lib") == (tmp_path / "a.tgz").resolve()

    def test_second_different_path_rejected(self, tmp_path):
        board = ArtifactBoard()
        board.publish("lib", tmp_path / "a.tgz")
        with pytest.raises(ConfigurationError, match="already published"):
            board.publish("lib", tmp_path / "b.tgz")

    def test_wait_sees_later_publish(self, tmp_path):
        board = ArtifactBoard()
        archive = tmp_path / "a.tgz"
        t = threading.Timer(0.05, board.publish, args=("lib", archive))
        t.start()
        assert board.wait("lib", timeout=5) == archive.resolve()
        t.join()


class TestRunContext:

    def test_package_lookup(self, tmp_path):
        pkg = make_package(tmp_path, "lib", PackageKind.LIBRARY)
        ctx = RunContext(packages={"lib": pkg}, tiers=[])
        assert ctx.package("lib") is pkg
        with pytest.raises(ConfigurationError, match="Package ghost not found"):
            ctx.package("ghost")

    def test_workspace_root_of(self, tmp_path):
        root = make_package(tmp_path, "ws", PackageKind.WORKSPACE_ROOT)
        member = make_package(root.path, "m", PackageKind.LIBRARY, workspace_root="ws")
        ctx = RunContext(packages={"ws": root, "m": member}, tiers=[])
        assert ctx.workspace_root_of(member) is root
        assert ctx.workspace_root_of(root) is None

    def test_manifest_accessors(self, tmp_path):
        pkg = make_package(tmp_path, "svc", PackageKind.SERVICE, manifest={
            "dependencies": {"a": "1"},
            "devDependencies": {"b": "2"},
            "scripts": {"deploy": "sls deploy"},
        })
        assert pkg.dependencies == {"a": "1"}
        assert pkg.dev_dependencies == {"b": "2"}
        assert pkg.scripts == {"deploy": "sls deploy"}
        assert pkg.is_service and not pkg.is_library
