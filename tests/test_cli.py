"""
Tests for CLI commands — compose, flags, engines, config check, and
global options.
"""

import json
import textwrap
from pathlib import Path

from click.testing import CliRunner

from stackplan.main import cli


def _stack(tmp_path: Path, content: str = "environment: local\n") -> Path:
    config = tmp_path / "stackplan.yml"
    config.write_text(textwrap.dedent(content))
    return config


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "compose a Laravel stack topology" in result.output

    def test_version(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_subcommands_listed(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])
        for name in ("compose", "flags", "engines", "config"):
            assert name in result.output


class TestComposeCommand:
    """Tests for the compose command."""

    def test_summary(self, tmp_path: Path):
        config = _stack(tmp_path)
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(config), "compose"])
        assert result.exit_code == 0
        assert "laravel-local" in result.output
        assert "postgresql" in result.output
        assert "changeme" not in result.output

    def test_json(self, tmp_path: Path):
        config = _stack(tmp_path, """\
            environment: local
            database:
              engine: mariadb
        """)
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(config), "compose", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["engines"]["database"] == "mariadb"
        assert data["outputs"]["database"] == "mariadb:3306"

    def test_set_overrides_file(self, tmp_path: Path):
        config = _stack(tmp_path)
        runner = CliRunner()
        result = runner.invoke(cli, [
            "--config", str(config), "compose", "--json", "--set", "cache.engine=memcached",
        ])
        assert result.exit_code == 0
        assert json.loads(result.output)["engines"]["cache"] == "memcached"

    def test_env_flag(self, tmp_path: Path):
        config = _stack(tmp_path)
        runner = CliRunner()
        result = runner.invoke(cli, [
            "--config", str(config), "compose", "--json",
            "--env", "production", "--set", "s3.bucket=assets",
        ])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["classification"] == "production"
        assert data["summary"]["external"]["storage"] == "s3"

    def test_missing_field(self, tmp_path: Path):
        config = _stack(tmp_path)
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(config), "compose", "--env", "staging"])
        assert result.exit_code == 1
        assert "s3.bucket" in result.output

    def test_invalid_engine(self, tmp_path: Path):
        config = _stack(tmp_path)
        runner = CliRunner()
        result = runner.invoke(cli, [
            "--config", str(config), "compose", "--set", "database.engine=oracle",
        ])
        assert result.exit_code == 1
        assert "oracle" in result.output

    def test_output_dir(self, tmp_path: Path):
        config = _stack(tmp_path)
        out = tmp_path / "manifests"
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(config), "compose", "-o", str(out)])
        assert result.exit_code == 0
        assert (out / "laravel-local" / "00-namespace.yaml").is_file()
        assert "Wrote" in result.output

    def test_without_stack_file(self, tmp_path: Path):
        runner = CliRunner()
        with runner.isolated_filesystem(temp_dir=tmp_path):
            result = runner.invoke(cli, ["compose", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["classification"] == "local"


class TestFlagsCommand:
    """Tests for the flags command."""

    def test_local(self, tmp_path: Path):
        config = _stack(tmp_path)
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(config), "flags", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["environment"] == "local"
        assert not any(data["features"].values())

    def test_production_override(self, tmp_path: Path):
        config = _stack(tmp_path, """\
            environment: production
            features:
              hpa: false
        """)
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(config), "flags", "--json"])
        assert result.exit_code == 0
        features = json.loads(result.output)["features"]
        assert features["autoscaling"] is False
        assert features["network_isolation"] is True

    def test_human_output(self, tmp_path: Path):
        config = _stack(tmp_path)
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(config), "flags"])
        assert result.exit_code == 0
        assert "autoscaling" in result.output


class TestEnginesCommand:
    """Tests for the engines command."""

    def test_list(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["engines"])
        assert result.exit_code == 0
        assert "postgresql" in result.output
        assert "alias of redis" in result.output

    def test_json(self):
        runner = CliRunner()
        result = runner.invoke(cli, ["engines", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert "kafka" in data["capabilities"]["queue"]
        assert "s3" in data["external"]


class TestConfigCheck:
    """Tests for config check."""

    def test_valid(self, tmp_path: Path):
        config = _stack(tmp_path)
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(config), "config", "check"])
        assert result.exit_code == 0
        assert "valid" in result.output.lower()

    def test_json(self, tmp_path: Path):
        config = _stack(tmp_path)
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(config), "config", "check", "--json"])
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["valid"] is True
        assert data["namespace"] == "laravel-local"

    def test_missing_field(self, tmp_path: Path):
        config = _stack(tmp_path, "environment: production\n")
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(config), "config", "check", "--json"])
        assert result.exit_code == 1
        data = json.loads(result.output)
        assert data["valid"] is False
        assert data["missing_field"] == "s3.bucket"

    def test_blank_field(self, tmp_path: Path):
        config = _stack(tmp_path, """\
            environment: production
            s3:
              bucket:
        """)
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(config), "config", "check", "--json"])
        assert result.exit_code == 1
        assert json.loads(result.output)["missing_field"] == "s3.bucket"

    def test_production_warnings(self, tmp_path: Path):
        config = _stack(tmp_path, """\
            environment: production
            s3:
              bucket: assets
        """)
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(config), "config", "check", "--json"])
        assert result.exit_code == 0
        warnings = json.loads(result.output)["warnings"]
        assert any("TLS" in w for w in warnings)

    def test_min_exceeds_max(self, tmp_path: Path):
        config = _stack(tmp_path)
        runner = CliRunner()
        result = runner.invoke(cli, [
            "--config", str(config), "config", "check",
            "--set", "app.web.min_replicas=5", "--set", "app.web.max_replicas=2",
        ])
        assert result.exit_code == 1
        assert "min_replicas" in result.output

    def test_missing_config_file(self, tmp_path: Path):
        runner = CliRunner()
        result = runner.invoke(cli, ["--config", str(tmp_path / "nope.yml"), "config", "check"])
        assert result.exit_code == 1
        assert "not found" in result.output
