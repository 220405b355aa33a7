"""
Tests for the command line interface
"""

import json
import pytest

import sys
from pathlib import Path
from click.testing import CliRunner

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from cli.main_cli import main_cli
from tests.test_utils import SCENARIO_LINES, TempWorkspace, create_project_files


@pytest.fixture
def cli_runner():
    return CliRunner()


@pytest.fixture
def workspace():
    with TempWorkspace() as path:
        create_project_files(path)
        yield path


def test_help_commands(cli_runner):
    result = cli_runner.invoke(main_cli, ['--help'])
    assert result.exit_code == 0
    assert "Claude Supervisor" in result.output

    for command in ('supervise', 'watch', 'classify', 'configure'):
        result = cli_runner.invoke(main_cli, [command, '--help'])
        assert result.exit_code == 0


def test_classify_shows_matches(cli_runner):
    result = cli_runner.invoke(main_cli, ['classify', 'npm error: command not found', 'Starting session...'])

    assert result.exit_code == 0
    assert "command_not_found" in result.output
    assert "No issues" in result.output


def test_watch_prints_suggested_responses(cli_runner, workspace):
    config_file = workspace / "config.json"
    config_file.write_text(json.dumps({"min_response_interval": 0}))
    transcript = workspace / "transcript.log"
    transcript.write_text("\n".join(SCENARIO_LINES) + "\n")

    result = cli_runner.invoke(main_cli, [
        'watch', '-i', str(transcript), '-w', str(workspace), '-c', str(config_file),
    ])

    assert result.exit_code == 0, result.output
    assert "responseReady" in result.output
    assert "add todo items" in result.output
    assert "Yes, please proceed." in result.output
    assert (workspace / "CLAUDE.md").exists()


def test_watch_rejects_missing_working_dir(cli_runner, workspace):
    transcript = workspace / "transcript.log"
    transcript.write_text("Starting session...\n")

    result = cli_runner.invoke(main_cli, ['watch', '-i', str(transcript), '-w', str(workspace / "missing")])

    assert result.exit_code == 1
    assert "does not exist" in result.output


def test_watch_rejects_invalid_config(cli_runner, workspace):
    config_file = workspace / "config.json"
    config_file.write_text(json.dumps({"delivery": "fax"}))
    transcript = workspace / "transcript.log"
    transcript.write_text("Starting session...\n")

    result = cli_runner.invoke(main_cli, ['watch', '-i', str(transcript), '-w', str(workspace), '-c', str(config_file)])

    assert result.exit_code == 1
    assert "Invalid supervisor configuration" in result.output


def test_supervise_reports_missing_command(cli_runner, workspace):
    result = cli_runner.invoke(main_cli, [
        'supervise', '-w', str(workspace), '--log-file', str(workspace / "logs" / "run.log"),
        '/nonexistent/claude-binary',
    ])

    assert result.exit_code == 1


def test_configure_non_interactive(cli_runner, workspace):
    config_file = workspace / "supervisor_config.json"

    result = cli_runner.invoke(main_cli, [
        'configure', '--config-file', str(config_file), '--non-interactive',
        '--mode', 'strict', '--claude-command', 'claude --verbose',
    ])

    assert result.exit_code == 0, result.output
    saved = json.loads(config_file.read_text())
    assert saved["mode"] == "strict"
    assert saved["claude_command"] == ["claude", "--verbose"]
    assert saved["min_response_interval"] == 3.0
