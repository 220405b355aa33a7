"""
Main CLI Interface for Claude Supervisor
"""

import asyncio
import click
import json
import os
import sys
from pathlib import Path
from typing import List, Optional
from rich.console import Console
from rich.prompt import Prompt
from rich.panel import Panel

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from supervision import (
    ConfigurationError, PatternClassifier, SupervisionConfig, SupervisionMode,
    SupervisionSession, SupervisionSetupError,
)
from utils.config import DEFAULT_CONFIG_FILE, build_config, save_config
from utils.logging import setup_logging, get_default_log_file
from .interface import SupervisionInterface


MODE_CHOICES = [mode.value for mode in SupervisionMode]


@click.group()
@click.version_option(version="0.1.0")
def main_cli():
    """Claude Supervisor - watches a coding assistant and keeps it moving"""
    pass


def _resolve_working_dir(console: Console, working_dir: Optional[str]) -> str:
    if working_dir:
        working_dir = os.path.abspath(working_dir)
        if not os.path.isdir(working_dir):
            console.print(f"[red]Error: Working directory does not exist: {working_dir}[/red]")
            sys.exit(1)
        return working_dir
    return os.getcwd()


def _load_config(console: Console, config_file: Optional[str], **overrides) -> SupervisionConfig:
    try:
        return build_config(config_file, **overrides)
    except ConfigurationError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)


def _read_requirements(requirements: Optional[str]) -> Optional[str]:
    if not requirements:
        return None
    return Path(requirements).read_text(encoding="utf-8")


@main_cli.command()
@click.argument('command', nargs=-1)
@click.option('--working-dir', '-w', default=None, help='Project directory (default: current directory)')
@click.option('--requirements', '-r', type=click.Path(exists=True, dir_okay=False), help='Requirements document')
@click.option('--mode', '-m', type=click.Choice(MODE_CHOICES), default=None, help='Supervision mode')
@click.option('--config-file', '-c', default=None, help='Configuration file path')
@click.option('--log-file', default=None, help='Log file (default: logs/supervisor_<timestamp>.log)')
@click.option('--json-log', default=None, help='Also write a JSON-lines session log to this file')
@click.option('--pty/--no-pty', 'use_pty', default=True, help='Run the assistant under a pseudo-terminal (default: on)')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
def supervise(command, working_dir, requirements, mode, config_file, log_file, json_log, use_pty, verbose):
    """Launch the assistant and supervise it, answering through its terminal.

    COMMAND defaults to the configured claude command.
    """
    console = Console(stderr=True)
    working_dir = _resolve_working_dir(console, working_dir)
    config = _load_config(console, config_file, mode=mode, delivery="direct", use_pty=use_pty,
                          log_level="DEBUG" if verbose else None)
    setup_logging(config.log_level, log_file or get_default_log_file(), console_output=verbose,
                  json_file=json_log)

    command = list(command) or config.claude_command
    console.print(Panel.fit(
        f"🚀 Supervising: {' '.join(command)}\n"
        f"Working Directory: {working_dir}\n"
        f"Mode: {config.mode.value}",
        title="Claude Supervisor"
    ))

    interface = SupervisionInterface(console, verbose)
    try:
        status = asyncio.run(_run_supervised(working_dir, config, command,
                                             _read_requirements(requirements), interface))
    except SupervisionSetupError as e:
        console.print(f"[red]❌ {e}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]👋 Supervision interrupted[/yellow]")
        return

    interface.show_status(status)


async def _run_supervised(working_dir: str, config: SupervisionConfig, command: List[str],
                          requirements_text: Optional[str], interface: SupervisionInterface):
    session = SupervisionSession(working_dir, config)
    session.channel.subscribe(interface.on_event)
    await session.start(requirements_text, command=command)
    try:
        await session.wait_closed()
    finally:
        await session.stop("interrupted")
    return session.get_status()


@main_cli.command()
@click.option('--input', '-i', 'input_file', type=click.Path(exists=True, dir_okay=False),
              help='Read output from a file instead of stdin')
@click.option('--working-dir', '-w', default=None, help='Project directory (default: current directory)')
@click.option('--requirements', '-r', type=click.Path(exists=True, dir_okay=False), help='Requirements document')
@click.option('--mode', '-m', type=click.Choice(MODE_CHOICES), default=None, help='Supervision mode')
@click.option('--config-file', '-c', default=None, help='Configuration file path')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose output')
def watch(input_file, working_dir, requirements, mode, config_file, verbose):
    """Observe assistant output and print suggested responses"""
    console = Console()
    working_dir = _resolve_working_dir(console, working_dir)
    config = _load_config(console, config_file, mode=mode, delivery="emit",
                          log_level="DEBUG" if verbose else None)
    setup_logging(config.log_level, console_output=verbose)

    interface = SupervisionInterface(console, verbose)
    status = asyncio.run(_run_observer(working_dir, config, input_file,
                                       _read_requirements(requirements), interface))
    interface.show_status(status)


async def _run_observer(working_dir: str, config: SupervisionConfig, input_file: Optional[str],
                        requirements_text: Optional[str], interface: SupervisionInterface):
    session = SupervisionSession(working_dir, config)
    session.channel.subscribe(interface.on_event)
    await session.start(requirements_text)

    loop = asyncio.get_running_loop()
    stream = open(input_file, 'r', encoding='utf-8', errors='replace') if input_file else sys.stdin
    try:
        while True:
            line = await loop.run_in_executor(None, stream.readline)
            if not line:
                break
            await session.feed(line)
        await session.end_of_input()
    finally:
        if input_file:
            stream.close()
        await session.stop("input_closed")
    return session.get_status()


@main_cli.command()
@click.argument('lines', nargs=-1, required=True)
def classify(lines):
    """Show which patterns match the given output lines"""
    console = Console()
    interface = SupervisionInterface(console)
    classifier = PatternClassifier()
    for line in lines:
        interface.show_issues(line, classifier.analyze(line))


@main_cli.command()
@click.option('--config-file', default=DEFAULT_CONFIG_FILE, help='Configuration file path')
@click.option('--non-interactive', is_flag=True, help='Use default values without prompting')
@click.option('--mode', type=click.Choice(MODE_CHOICES), default=None, help='Supervision mode (non-interactive mode)')
@click.option('--claude-command', default=None, help='Assistant command line (non-interactive mode)')
def configure(config_file, non_interactive, mode, claude_command):
    """Write supervisor settings to a configuration file"""

    console = Console()
    config = SupervisionConfig()

    if non_interactive:
        settings = {
            "mode": mode or config.mode.value,
            "claude_command": claude_command.split() if claude_command else config.claude_command,
        }
    else:
        console.print(Panel.fit("🔧 Supervisor Configuration", title="Setup"))
        settings = {
            "mode": Prompt.ask("Supervision mode", choices=MODE_CHOICES, default=config.mode.value),
            "claude_command": Prompt.ask("Assistant command", default=" ".join(config.claude_command)).split(),
            "min_response_interval": float(Prompt.ask("Minimum seconds between responses",
                                                      default=str(config.min_response_interval))),
        }

    config = _load_config(console, None, **settings)
    if save_config(json.loads(config.model_dump_json()), config_file):
        console.print(f"[green]✅ Configuration saved to {config_file}[/green]")
    else:
        console.print(f"[red]❌ Could not save configuration to {config_file}[/red]")
        sys.exit(1)


def main():
    """Entry point for claude-supervisor console script"""
    main_cli()


if __name__ == '__main__':
    main()
