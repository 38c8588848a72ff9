import json

import pytest
from click.testing import CliRunner

from conftest import FakeRunner
from monodeploy.cli import cli


@pytest.fixture
def repo(tmp_path):
    lib = tmp_path / "repo" / "lib-a"
    svc = tmp_path / "repo" / "svc-b"
    lib.mkdir(parents=True)
    svc.mkdir(parents=True)
    (lib / "package.json").write_text(json.dumps({"name": "lib-a"}))
    (svc / "package.json").write_text(json.dumps({
        "name": "svc-b",
        "dependencies": {"lib-a": "^1.0.0", "mongodb": "^5.0.0"},
    }))
    (svc / "serverless.ts").write_text("export default {}")

    tiers = tmp_path / "tiers.json"
    tiers.write_text(json.dumps([{"lib-a": []}, {"svc-b": ["lib-a"]}]))
    return tmp_path


@pytest.fixture
def fake(monkeypatch):
    runner = FakeRunner()
    monkeypatch.setattr("monodeploy.cli.run_command", runner)
    return runner


def invoke(*args):
    return CliRunner().invoke(cli, list(args))


class TestPlan:

    def test_all_tiers(self, repo):
        result = invoke("plan", "--tiers", str(repo / "tiers.json"))
        assert result.exit_code == 0
        assert "Tier 1" in result.output
        assert "svc-b (needs lib-a)" in result.output

    def test_unknown_target(self, repo):
        result = invoke("plan", "nope", "--tiers", str(repo / "tiers.json"))
        assert result.exit_code == 0
        assert "Nothing to do" in result.output

    def test_bad_tiers_file(self, tmp_path):
        (tmp_path / "tiers.json").write_text(json.dumps([{"a": ["b"]}]))
        result = invoke("plan", "--tiers", str(tmp_path / "tiers.json"))
        assert result.exit_code == 1
        assert "which is in no tier" in result.output


class TestServices:

    def test_lists_services(self, repo):
        result = invoke("services", "--root", str(repo / "repo"))
        assert result.exit_code == 0
        assert result.output.split() == ["svc-b"]


class TestDeploy:

    def _deploy(self, repo, *extra):
        return invoke(
            "deploy",
            "--root", str(repo / "repo"),
            "--tiers", str(repo / "tiers.json"),
            "--ledger", str(repo / "ledger.json"),
            *extra,
        )

    def test_full_run(self, repo, fake):
        result = self._deploy(repo, "--pin", "mongodb=^6.13.0")

        assert result.exit_code == 0, result.output
        assert "svc-b: SUCCESS" in result.output
        svc_dir = repo / "repo" / "svc-b"
        archive = (repo / "repo" / "lib-a" / "lib-a-1.0.0.tgz").resolve()
        install = next(c for c in fake.commands(svc_dir) if c.startswith("npm install"))
        assert str(archive) in install
        assert "mongodb@^6.13.0" in install
        assert fake.ran("npm run deploy --ignore-scripts", cwd=svc_dir)

        ledger = json.loads((repo / "ledger.json").read_text())
        assert "Deploy" in ledger["svc-b"]
        assert "Pack" in ledger["lib-a"]

    def test_target_narrows_run(self, repo, fake):
        result = self._deploy(repo, "lib-a")
        assert result.exit_code == 0, result.output
        assert fake.commands(repo / "repo" / "svc-b") == []

    def test_failure_exits_nonzero(self, repo, fake):
        fake.fail_times["npm run build"] = 1
        result = self._deploy(repo)

        assert result.exit_code == 1
        assert "PACKAGE FAILED: lib-a" in result.output
        assert "re-run to resume" in result.output
        assert not fake.ran("npm run deploy")

    def test_resume_skips_recorded_steps(self, repo, fake):
        fake.fail_times["npm run deploy"] = 2
        assert self._deploy(repo).exit_code == 1

        fake.calls.clear()
        result = self._deploy(repo)
        assert result.exit_code == 0, result.output
        svc_cmds = fake.commands(repo / "repo" / "svc-b")
        assert svc_cmds == ["npm run deploy --ignore-scripts"]

    def test_bad_pin(self, repo, fake):
        result = self._deploy(repo, "--pin", "mongodb")
        assert result.exit_code == 1
        assert "Configuration error" in result.output
        assert fake.calls == []
