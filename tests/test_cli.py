"""Tests for CLI commands."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner


def _write(path, data):
    with open(path, "w") as f:
        f.write(data if isinstance(data, str) else json.dumps(data))


def _review_request(files=None):
    return {
        "organizationId": "org-1",
        "repositoryId": "repo-1",
        "prNumber": 7,
        "prSha": "0123456789abcdef",
        "branch": "main",
        "files": files or [{"path": "src/app.py", "content": "print('hi')\n"}],
    }


class TestCLI:
    """Tests for top-level CLI behavior."""

    def test_cli_help(self):
        """Test that CLI shows help."""
        from policy_gate.cli import cli

        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "Policy Gate" in result.output
        for command in ("evaluate", "review", "policy", "evidence", "serve"):
            assert command in result.output

    def test_serve_command_starts_server(self):
        """Test that serve command starts the HTTP server."""
        from policy_gate.cli import cli

        runner = CliRunner()

        with runner.isolated_filesystem():
            with patch("policy_gate.cli.uvicorn") as mock_uvicorn, patch(
                "policy_gate.api.create_app"
            ) as mock_create_app:
                result = runner.invoke(
                    cli,
                    ["serve", "--port", "9000", "--host", "127.0.0.1"],
                    catch_exceptions=False,
                )

        assert result.exit_code == 0
        mock_create_app.assert_called_once()
        mock_uvicorn.run.assert_called_once()
        call_args = mock_uvicorn.run.call_args
        assert call_args.kwargs["port"] == 9000
        assert call_args.kwargs["host"] == "127.0.0.1"


class TestEvaluateCommand:
    """Tests for `evaluate`."""

    def test_blocked_exits_nonzero(self, sample_findings_raw):
        """Test a critical finding under the basic tier exits 1."""
        from policy_gate.cli import cli

        runner = CliRunner()
        with runner.isolated_filesystem():
            _write("findings.json", sample_findings_raw)
            result = runner.invoke(cli, ["evaluate", "findings.json"])

        assert result.exit_code == 1
        assert "Blocked" in result.output
        assert "security.sql-injection" in result.output

    def test_passing_exits_zero(self, sample_findings_raw):
        """Test allowed findings exit 0."""
        from policy_gate.cli import cli

        runner = CliRunner()
        with runner.isolated_filesystem():
            _write("findings.json", {"findings": [sample_findings_raw[1]]})
            result = runner.invoke(cli, ["evaluate", "findings.json"])

        assert result.exit_code == 0
        assert "Passed" in result.output

    def test_json_output_with_policy(self, sample_findings_raw, sample_policy_yaml):
        """Test JSON output against a policy file."""
        from policy_gate.cli import cli

        runner = CliRunner()
        with runner.isolated_filesystem():
            _write("findings.json", sample_findings_raw)
            _write("policy.yaml", sample_policy_yaml)
            result = runner.invoke(
                cli,
                ["evaluate", "findings.json", "--policy", "policy.yaml", "--repo", "repo-1", "--output", "json"],
            )

        assert result.exit_code == 1
        assert '"blocked": true' in result.output
        assert '"score": 70' in result.output
        assert '"blockingReason": "critical issue found: security.sql-injection in a.ts:10"' in result.output

    def test_tier_option(self, sample_findings_raw):
        """Test --tier changes the default policy."""
        from policy_gate.cli import cli

        runner = CliRunner()
        with runner.isolated_filesystem():
            _write("findings.json", [sample_findings_raw[1]])
            result = runner.invoke(cli, ["evaluate", "findings.json", "--tier", "moderate"])

        assert result.exit_code == 1

    def test_malformed_findings_dropped(self, sample_findings_raw):
        """Test malformed entries are dropped, not fatal."""
        from policy_gate.cli import cli

        runner = CliRunner()
        with runner.isolated_filesystem():
            _write("findings.json", [{"ruleId": "x"}, sample_findings_raw[1]])
            result = runner.invoke(cli, ["evaluate", "findings.json", "--output", "json"])

        assert result.exit_code == 0
        assert '"score": 90' in result.output

    def test_invalid_json(self):
        """Test an unreadable findings file exits 1."""
        from policy_gate.cli import cli

        runner = CliRunner()
        with runner.isolated_filesystem():
            _write("findings.json", "{not json")
            result = runner.invoke(cli, ["evaluate", "findings.json"])

        assert result.exit_code == 1
        assert "Error reading" in result.output


class TestPolicyCommands:
    """Tests for `policy validate` and `policy checksum`."""

    def test_validate_valid(self, sample_policy_yaml):
        """Test a valid policy passes."""
        from policy_gate.cli import cli

        runner = CliRunner()
        with runner.isolated_filesystem():
            _write("policy.yaml", sample_policy_yaml)
            result = runner.invoke(cli, ["policy", "validate", "policy.yaml"])

        assert result.exit_code == 0
        assert "Policy is valid" in result.output

    def test_validate_invalid(self):
        """Test an invalid policy lists per-rule errors."""
        from policy_gate.cli import cli

        runner = CliRunner()
        with runner.isolated_filesystem():
            _write(
                "policy.yaml",
                'version: "1"\nrules:\n  - ruleId: a\n    severityMapping: {critical: explode}\n',
            )
            result = runner.invoke(cli, ["policy", "validate", "policy.yaml"])

        assert result.exit_code == 1
        assert "Policy validation failed" in result.output
        assert "Unknown action" in result.output

    def test_checksum(self, sample_policy_yaml):
        """Test the checksum is the sha256 of the source text."""
        import hashlib

        from policy_gate.cli import cli

        runner = CliRunner()
        with runner.isolated_filesystem():
            _write("policy.yaml", sample_policy_yaml)
            result = runner.invoke(cli, ["policy", "checksum", "policy.yaml"])

        assert result.exit_code == 0
        assert result.output.strip() == hashlib.sha256(sample_policy_yaml.encode()).hexdigest()


class TestReviewCommand:
    """Tests for `review` and `evidence show`."""

    def test_review_passes(self):
        """Test a clean change passes and writes its evidence export."""
        from policy_gate.cli import cli

        runner = CliRunner()
        with runner.isolated_filesystem():
            _write("request.json", _review_request())
            result = runner.invoke(
                cli,
                ["review", "request.json", "--output", "json", "--evidence-out", "evidence.json"],
            )

            assert result.exit_code == 0
            assert '"status": "completed"' in result.output
            with open("evidence.json") as f:
                export = json.load(f)

        assert export["schemaVersion"] == "1.0.0"
        assert export["evidenceBundle"]["linkedResource"]["kind"] == "review"
        assert export["inputs"]["commitSha"] == "0123456789abcdef"

    def test_review_blocked(self):
        """Test a blocked change exits 1."""
        from policy_gate.cli import cli

        before = "\n".join(["try:", "    work()", "except Exception:", "    raise"] + ["x = 1"] * 296)
        after = "\n".join(["x = 1"] * 400)
        request = _review_request(
            [{"path": "svc.py", "content": after, "beforeContent": before}]
        )

        runner = CliRunner()
        with runner.isolated_filesystem():
            _write("request.json", request)
            _write("policy-gate.yaml", "policy:\n  default_tier: moderate\n")
            result = runner.invoke(cli, ["review", "request.json", "--config", "policy-gate.yaml"])

        assert result.exit_code == 1
        assert "Blocked" in result.output

    def test_review_usage_limit(self):
        """Test a usage limit exits 2 with its remediation."""
        from policy_gate.cli import cli
        from policy_gate.errors import LimitStatus, UsageLimitExceededError

        runner = CliRunner()
        with runner.isolated_filesystem():
            _write("request.json", _review_request())
            with patch("policy_gate.cli._review_async", new_callable=AsyncMock) as mock_review:
                mock_review.side_effect = UsageLimitExceededError(
                    LimitStatus.RATE_LIMITED, "Too many reviews"
                )
                result = runner.invoke(cli, ["review", "request.json"])

        assert result.exit_code == 2
        assert "rate_limited" in result.output

    def test_review_invalid_request(self):
        """Test a request missing required fields exits 1."""
        from policy_gate.cli import cli

        runner = CliRunner()
        with runner.isolated_filesystem():
            _write("request.json", {"repositoryId": "repo-1"})
            result = runner.invoke(cli, ["review", "request.json"])

        assert result.exit_code == 1
        assert "Invalid review request" in result.output

    def test_evidence_show(self):
        """Test an evidence export is summarized."""
        from policy_gate.cli import cli

        runner = CliRunner()
        with runner.isolated_filesystem():
            _write("request.json", _review_request())
            runner.invoke(cli, ["review", "request.json", "--evidence-out", "evidence.json"])
            result = runner.invoke(cli, ["evidence", "show", "evidence.json"])

        assert result.exit_code == 0
        assert "Schema version" in result.output
        assert "1.0.0" in result.output

    def test_evidence_show_rejects_other_json(self):
        """Test a file that is not an export exits 1."""
        from policy_gate.cli import cli

        runner = CliRunner()
        with runner.isolated_filesystem():
            _write("other.json", {"hello": "world"})
            result = runner.invoke(cli, ["evidence", "show", "other.json"])

        assert result.exit_code == 1
        assert "Not an evidence export" in result.output


class TestConfigCommands:
    """Tests for `config validate` and `config show`."""

    def test_config_validate_command(self):
        """Test config validate command."""
        from policy_gate.cli import cli
        from policy_gate.config import Config

        runner = CliRunner()

        with patch("policy_gate.cli.load_config") as mock_load:
            mock_load.return_value = Config()

            result = runner.invoke(cli, ["config", "validate"])

        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_config_validate_invalid(self):
        """Test config validate with invalid config."""
        from policy_gate.cli import cli
        from policy_gate.config import Config

        runner = CliRunner()
        config = Config()
        config.policy.default_tier = "paranoid"

        with patch("policy_gate.cli.load_config") as mock_load:
            mock_load.return_value = config

            result = runner.invoke(cli, ["config", "validate"])

        assert result.exit_code == 1
        assert "paranoid" in result.output

    def test_config_validate_load_error(self):
        """Test a config that cannot be loaded is reported."""
        from policy_gate.cli import cli

        runner = CliRunner()

        with patch("policy_gate.cli.load_config") as mock_load:
            mock_load.side_effect = ValueError("bad yaml")

            result = runner.invoke(cli, ["config", "validate"])

        assert result.exit_code == 1
        assert "Error loading config" in result.output

    @pytest.mark.parametrize("tier", ["basic", "maximum"])
    def test_config_show(self, tier):
        """Test config show prints the policy settings."""
        from policy_gate.cli import cli
        from policy_gate.config import Config
        from policy_gate.models.policy import EnforcementTier

        runner = CliRunner()
        config = Config()
        config.policy.default_tier = EnforcementTier(tier)

        with patch("policy_gate.cli.load_config", MagicMock(return_value=config)):
            result = runner.invoke(cli, ["config", "show"])

        assert result.exit_code == 0
        assert tier in result.output
