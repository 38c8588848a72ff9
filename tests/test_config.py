import json
from pathlib import Path

import pytest

from monodeploy.config import RunSettings, load_pins, parse_pins
from monodeploy.errors import ConfigurationError


class TestParsePins:

    def test_plain_and_scoped(self):
        assert parse_pins(["mongodb=^6.13.0", "@acme/core=1.2.0"]) == {
            "mongodb": "^6.13.0",
            "@acme/core": "1.2.0",
        }

    def test_later_wins(self):
        assert parse_pins(["a=1", "a=2"]) == {"a": "2"}

    @pytest.mark.parametrize("raw", ["mongodb", "=1.0.0", "mongodb=", "  =  "])
    def test_malformed(self, raw):
        with pytest.raises(ConfigurationError, match="NAME=VERSION"):
            parse_pins([raw])


class TestLoadPins:

    def test_reads_object(self, tmp_path):
        path = tmp_path / "pins.json"
        path.write_text(json.dumps({"serverless-plugin-datadog": "latest"}))
        assert load_pins(path) == {"serverless-plugin-datadog": "latest"}

    def test_missing(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_pins(tmp_path / "nope.json")

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "pins.json"
        path.write_text(json.dumps(["mongodb"]))
        with pytest.raises(ConfigurationError, match="version strings"):
            load_pins(path)


class TestRunSettings:

    def test_rejects_zero_workers(self):
        with pytest.raises(ConfigurationError, match="workers"):
            RunSettings(root=Path("."), tiers_file=Path("t.json"), ledger_file=Path("l.json"), workers=0)

    def test_defaults(self):
        settings = RunSettings(root=Path("."), tiers_file=Path("t.json"), ledger_file=Path("l.json"), workers=2)
        assert settings.targets == []
        assert settings.pinned_versions == {}
