"""
apiforge — CLI Tests
=====================

What we test:
    - `generate` lists the new endpoints and rejects unknown operations
    - `analyze` and `health` report over the built-in endpoint set
    - `docs` prints to stdout or writes a file
"""

import json

from click.testing import CliRunner

from apiforge.cli import cli


class TestCli:
    def setup_method(self):
        self.runner = CliRunner()

    def test_generate(self):
        result = self.runner.invoke(cli, ["generate", "player", "--ops", "list,get", "--version", "v2"])
        assert result.exit_code == 0, result.output
        assert "GET    /api/v2/player " in result.output
        assert "/api/v2/player/:id" in result.output
        assert "auth" in result.output

    def test_generate_public(self):
        result = self.runner.invoke(cli, ["generate", "player", "--ops", "list", "--public"])
        assert result.exit_code == 0, result.output
        assert "auth" not in result.output.splitlines()[-1]

    def test_generate_unknown_operation(self):
        result = self.runner.invoke(cli, ["generate", "player", "--ops", "list,explode"])
        assert result.exit_code != 0
        assert "explode" in result.output

    def test_analyze(self):
        result = self.runner.invoke(cli, ["analyze"])
        assert result.exit_code == 0, result.output
        assert "Total Endpoints: 18" in result.output
        assert "v1: 18" in result.output

    def test_health(self):
        result = self.runner.invoke(cli, ["health"])
        assert result.exit_code == 0, result.output
        assert "API Status: HEALTHY" in result.output
        assert "Coverage: 100.0%" in result.output

    def test_docs_stdout(self):
        result = self.runner.invoke(cli, ["docs", "openapi", "--stdout"])
        assert result.exit_code == 0, result.output
        assert json.loads(result.output)["openapi"] == "3.0.0"

    def test_docs_to_file(self, tmp_path):
        target = tmp_path / "api.md"
        result = self.runner.invoke(cli, ["docs", "markdown", "-o", str(target)])
        assert result.exit_code == 0, result.output
        assert target.read_text(encoding="utf-8").startswith("# ")

    def test_docs_unknown_format(self):
        result = self.runner.invoke(cli, ["docs", "yaml"])
        assert result.exit_code == 2
