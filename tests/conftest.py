import json
import threading
from pathlib import Path

import pytest

from monodeploy.errors import CommandFailure
from monodeploy.model import PackageInfo, PackageKind, RunContext
from monodeploy.ui.console import Console, set_console


class FakeRunner:
    """
    Stand-in command runner.

    Records every (cmd, cwd) call. `fail_times[substring] = n` makes the next
    n commands containing substring fail. `npm pack` drops an archive into
    cwd like the real thing.
    """

    def __init__(self):
        self.calls = []
        self.fail_times = {}
        self._lock = threading.Lock()

    def __call__(self, cmd, cwd):
        cwd = Path(cwd)
        with self._lock:
            self.calls.append((cmd, cwd))
            for needle, remaining in self.fail_times.items():
                if needle in cmd and remaining > 0:
                    self.fail_times[needle] = remaining - 1
                    raise CommandFailure(cmd=cmd, cwd=cwd, exit_code=1, stderr="boom")
        if cmd == "npm pack":
            (cwd / f"{cwd.name}-1.0.0.tgz").write_bytes(b"archive")

    def commands(self, cwd=None):
        return [c for c, d in self.calls if cwd is None or d == Path(cwd)]

    def ran(self, needle, cwd=None):
        return any(needle in c for c in self.commands(cwd))


@pytest.fixture(autouse=True)
def quiet_console():
    set_console(Console(debug=False))
    yield


@pytest.fixture
def runner():
    return FakeRunner()


def make_package(root, name, kind, *, manifest=None, workspace_root=None, default_branch=None,
                 current_branch=None, descriptor=False):
    path = Path(root) / name
    path.mkdir(parents=True, exist_ok=True)
    data = {"name": name}
    data.update(manifest or {})
    (path / "package.json").write_text(json.dumps(data))
    if descriptor:
        (path / "serverless.ts").write_text("export default {}")
    return PackageInfo(
        name=name,
        path=path,
        kind=kind,
        manifest=data,
        workspace_root=workspace_root,
        default_branch=default_branch,
        current_branch=current_branch,
    )


@pytest.fixture
def make_context(tmp_path):
    def factory(packages, tiers, **kwargs):
        return RunContext(packages={p.name: p for p in packages}, tiers=tiers, **kwargs)
    return factory


@pytest.fixture
def lib(tmp_path):
    return make_package(tmp_path, "lib-a", PackageKind.LIBRARY)


@pytest.fixture
def svc(tmp_path):
    return make_package(
        tmp_path,
        "svc-b",
        PackageKind.SERVICE,
        manifest={"dependencies": {"lib-a": "^1.0.0", "mongodb": "^5.0.0"}},
        descriptor=True,
    )
