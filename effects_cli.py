#!/usr/bin/env python3
"""
CLI module for Raster FX - Command-Line Interface

Runs a list of raster effects described in a JSON file against an input
image (or synthesizes one) and writes every result to an output directory.
Uses Rich for terminal output.
"""

import sys
import logging
import argparse
import json
from pathlib import Path
from typing import Optional, List, Dict, Any

# Rich imports for terminal output
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn
from rich.panel import Panel
from rich.table import Table

# Local imports
from effects_lib import EffectMode, ImageEffects
from diff_codec import DifferentialCodec
from raster import Raster
from config_manager import ConfigManager
from utils import get_image_info, sanitize_filename, split_extension, validate_image_file


# Initialize Rich console
console = Console()

# Logger instance
logger = logging.getLogger('raster_fx')

# Name of the pseudo-effect that dumps a delta stream instead of filtering
DIFF_CODEC = "diff_codec"


def setup_logging(verbose: bool = False, quiet: bool = False, log_file: Optional[str] = None):
    """
    Setup logging with Rich handler for terminal output.

    Args:
        verbose: Enable verbose (DEBUG) logging
        quiet: Suppress all but ERROR messages
        log_file: Optional path to log file
    """
    # Determine logging level
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    handlers = []

    # Rich handler for console output
    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        markup=True,
        rich_tracebacks=True
    )
    handlers.append(rich_handler)

    # File handler if specified
    if log_file:
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setFormatter(
            logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        )
        handlers.append(file_handler)

    # Setup root logger
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True
    )

    logger.setLevel(level)
    return logger


class CLIProgress:
    """
    Rich progress bar over the effect list.
    """

    def __init__(self, total: int):
        """
        Args:
            total: Number of effects to run
        """
        self.total = total
        self.progress = None
        self.task = None

    def __enter__(self):
        """Setup progress bar."""
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console
        )
        self.progress.__enter__()
        self.task = self.progress.add_task("Running effects...", total=self.total)
        return self

    def __exit__(self, *args):
        """Cleanup progress bar."""
        if self.progress:
            self.progress.__exit__(*args)

    def advance(self, message: str):
        if self.progress and self.task is not None:
            self.progress.update(self.task, advance=1, description=message)


# ==================== Config Schema & Validation ====================

VALID_EFFECTS = [mode.value for mode in EffectMode] + [DIFF_CODEC]


class ConfigValidationError(Exception):
    """Raised when config validation fails."""
    pass


def _needs_input(effect: str) -> bool:
    return effect == DIFF_CODEC or not ImageEffects.is_generator(EffectMode(effect))


def validate_config(config: Dict[str, Any], config_path: Path) -> Dict[str, Any]:
    """
    Validate configuration and return normalized config.

    Args:
        config: Raw config dictionary
        config_path: Path to config file (for resolving relative paths)

    Returns:
        Validated and normalized config

    Raises:
        ConfigValidationError: If validation fails
    """
    errors = []

    if not isinstance(config, dict):
        raise ConfigValidationError("Configuration must be a JSON object")

    if "output_dir" not in config:
        errors.append("Missing required field: 'output_dir'")

    effects = config.get("effects")
    if not isinstance(effects, list) or not effects:
        errors.append("'effects' must be a non-empty list")
        effects = []

    needs_input = False
    for i, step in enumerate(effects):
        where = f"effects[{i}]"
        if not isinstance(step, dict):
            errors.append(f"'{where}' must be an object/dictionary")
            continue

        effect = step.get("effect")
        if effect not in VALID_EFFECTS:
            errors.append(f"Invalid effect in '{where}': '{effect}'. Must be one of: {VALID_EFFECTS}")
            continue

        if "output" not in step:
            errors.append(f"Missing required field: '{where}.output'")

        params = step.get("parameters", {})
        if not isinstance(params, dict):
            errors.append(f"'{where}.parameters' must be an object/dictionary")
        elif effect == DIFF_CODEC:
            if params:
                errors.append(f"'{where}': {DIFF_CODEC} takes no parameters")
        else:
            known = ImageEffects.get_mode_parameters(EffectMode(effect)) or {}
            for key in params:
                if key not in known:
                    errors.append(f"Unknown parameter '{key}' in '{where}' (valid: {sorted(known)})")

        needs_input = needs_input or _needs_input(effect)

    if needs_input and "input" not in config:
        errors.append("Missing required field: 'input' (needed by a non-generator effect)")

    # If any errors, raise
    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  • {e}" for e in errors)
        raise ConfigValidationError(error_msg)

    # Normalize paths (resolve relative to config file)
    config_dir = config_path.parent

    output_dir = Path(config["output_dir"])
    if not output_dir.is_absolute():
        output_dir = (config_dir / output_dir).resolve()
    config["output_dir"] = str(output_dir)

    if "input" in config:
        input_path = Path(config["input"])
        if not input_path.is_absolute():
            input_path = (config_dir / input_path).resolve()
        config["input"] = str(input_path)
        if not input_path.exists():
            raise ConfigValidationError(f"Input file not found: {config['input']}")
        if not validate_image_file(config["input"]):
            raise ConfigValidationError(f"Unsupported image type: {input_path.suffix}")
    else:
        config["input"] = None

    for step in effects:
        step.setdefault("parameters", {})

    return config


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load and validate configuration from JSON file.

    Raises:
        ConfigValidationError: If validation fails
    """
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigValidationError(f"Invalid JSON in config file:\n  Line {e.lineno}: {e.msg}")
    except OSError as e:
        raise ConfigValidationError(f"Failed to load config file: {e}")

    return validate_config(config, config_path)


# ==================== Effect Processing ====================

def run_effect(step: Dict[str, Any], input_path: Optional[str], output_dir: Path,
               settings: Optional[ConfigManager] = None) -> List[Path]:
    """
    Run one configured effect and write its output(s).

    Args:
        step: One validated entry of the 'effects' list
        input_path: Source image, None when only generators are configured
        output_dir: Directory receiving the results
        settings: Optional stored defaults merged under the step parameters

    Returns:
        Paths of the files written
    """
    effect = step["effect"]
    output_path = output_dir / sanitize_filename(step["output"])

    # Fresh raster for every effect; nothing carries over between steps
    raster = Raster.from_file(input_path) if _needs_input(effect) else None

    if effect == DIFF_CODEC:
        stream = DifferentialCodec.encode(raster)
        stem, ext = split_extension(output_path.name)
        csv_path = output_path.with_name(f"{stem}.csv")
        image_path = output_path.with_name(f"{stem}{ext}")
        DifferentialCodec.visualize(stream, raster.width, raster.height).save(image_path)
        DifferentialCodec.save(stream, csv_path)
        logger.info(f"[green]✓[/] {effect}: {len(stream)} deltas → [cyan]{csv_path.name}[/]")
        return [image_path, csv_path]

    params = settings.effect_defaults(effect) if settings else {}
    params.update(step["parameters"])

    effects = ImageEffects(effect, params)
    result = effects.apply_effect(raster)
    result.save(output_path)
    logger.info(f"[green]✓[/] {effect} {effects.resolved_parameters()} → [cyan]{output_path.name}[/]")
    return [output_path]


def run_effects(config: Dict[str, Any], settings: Optional[ConfigManager] = None) -> bool:
    """
    Run every configured effect; a failing effect is logged and skipped.

    Returns:
        True if all effects succeeded
    """
    output_dir = Path(config["output_dir"])
    output_dir.mkdir(parents=True, exist_ok=True)

    failures = 0
    with CLIProgress(len(config["effects"])) as progress:
        for step in config["effects"]:
            try:
                written = run_effect(step, config["input"], output_dir, settings)
                if settings:
                    for path in written:
                        settings.add_recent_file(str(path))
            except Exception as e:
                failures += 1
                logger.error(f"Effect '{step['effect']}' failed: {e}", exc_info=True)
            progress.advance(step["effect"])

    if settings:
        if config["input"]:
            settings.update_last_path("input", config["input"])
        settings.update_last_path("output", str(output_dir / "_"))
        settings.save()

    return failures == 0


def show_banner():
    """Display application banner."""
    banner = """
[bold cyan]╔═══════════════════════════════════════╗[/]
[bold cyan]║[/]        [bold white]Raster FX CLI[/] [dim]- v1.0[/]         [bold cyan]║[/]
[bold cyan]║[/]   Neighborhood & Synthesis Effects    [bold cyan]║[/]
[bold cyan]╚═══════════════════════════════════════╝[/]
"""
    console.print(banner)


def show_effects():
    """Print every effect with its parameters and defaults."""
    table = Table(title="Available Effects", border_style="cyan")
    table.add_column("Effect", style="cyan")
    table.add_column("Parameter")
    table.add_column("Default", style="yellow")
    table.add_column("Description", style="dim")

    for mode in EffectMode:
        params = ImageEffects.get_mode_parameters(mode) or {}
        first = True
        for key, info in params.items():
            table.add_row(mode.value if first else "", key, str(info['default']), info['description'])
            first = False
    table.add_row(DIFF_CODEC, "", "", "Writes a delta visualization image and a .csv stream")
    console.print(table)


def show_recent(settings: ConfigManager):
    """Print the last used directories and the recent output files."""
    table = Table(title="Recent Outputs", border_style="cyan")
    table.add_column("#", style="dim")
    table.add_column("File", style="cyan")
    for i, path in enumerate(settings.get_recent_files(), 1):
        table.add_row(str(i), path)

    console.print(f"Last input directory:  [cyan]{settings.get_last_path('input') or '-'}[/]")
    console.print(f"Last output directory: [cyan]{settings.get_last_path('output') or '-'}[/]")
    console.print(table)


def show_help():
    """Display detailed help information."""
    help_text = """
[bold cyan]Raster FX CLI - Usage[/]

[bold]Basic Usage:[/]
  raster-fx <run.json>              Run the effects listed in a JSON file
  raster-fx --help                  Show this help
  raster-fx --example-config        Generate example config
  raster-fx --list-effects          List effects and their parameters
  raster-fx --recent --settings F   Show recent outputs from a settings file

[bold]Options:[/]
  --verbose, -v     Enable verbose output
  --quiet, -q       Suppress all but error messages
  --log-file FILE   Write log to file
  --settings FILE   Stored effect defaults (created if missing)
  --clear-recent    Forget the recent outputs stored in --settings

[bold]Config File Format:[/]
  JSON file with 'input', 'output_dir' and an 'effects' list.
  Use --example-config to generate a template.
"""
    console.print(help_text)
    show_effects()


def generate_example_config():
    """Generate and print an example configuration file."""
    example = {
        "_comment": "Raster FX CLI Configuration",
        "input": "images/logo.png",
        "output_dir": "output",
        "effects": [
            {"effect": "convolution", "parameters": {"kernel": "sharpen"}, "output": "sharpen.png"},
            {"effect": "convolution", "parameters": {"kernel": "edge_detection"}, "output": "edges.png"},
            {"effect": "box_blur", "parameters": {"size": 15}, "output": "box_blur.png"},
            {"effect": "difference_of_gaussians", "output": "dog.png"},
            {"effect": "kuwahara", "parameters": {"radius": 4}, "output": "kuwahara.png"},
            {"effect": "ordered_dither", "parameters": {"color_mode": "mono"}, "output": "dither_mono.png"},
            {"effect": "mandelbrot", "parameters": {"max_iterations": 100}, "output": "mandelbrot.png"},
            {"effect": "diff_codec", "output": "diff.png"}
        ]
    }

    example_json = json.dumps(example, indent=4)

    console.print("\n[bold cyan]Example Configuration:[/]\n")
    console.print(Panel(example_json, title="run.json", border_style="cyan"))
    console.print("\n[dim]Save this to a .json file and modify as needed.[/]\n")


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Raster FX CLI - Neighborhood & Synthesis Effects",
        add_help=False  # We'll handle help ourselves
    )

    parser.add_argument('config', nargs='?', help='Path to JSON configuration file')
    parser.add_argument('--help', '-h', action='store_true', help='Show help')
    parser.add_argument('--example-config', action='store_true', help='Generate example config')
    parser.add_argument('--list-effects', action='store_true', help='List effects')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--quiet', '-q', action='store_true', help='Quiet mode (errors only)')
    parser.add_argument('--log-file', type=str, help='Log to file')
    parser.add_argument('--settings', type=str, help='Stored effect defaults (JSON)')
    parser.add_argument('--recent', action='store_true', help='Show recent outputs (needs --settings)')
    parser.add_argument('--clear-recent', action='store_true', help='Clear recent outputs (needs --settings)')

    args = parser.parse_args(argv)

    # Handle special commands first (before logging setup)
    if args.help:
        show_banner()
        show_help()
        sys.exit(0)

    if args.example_config:
        show_banner()
        generate_example_config()
        sys.exit(0)

    if args.list_effects:
        show_effects()
        sys.exit(0)

    if args.recent or args.clear_recent:
        if not args.settings:
            console.print("[bold red]Error:[/] --recent and --clear-recent need --settings FILE\n")
            sys.exit(1)
        settings = ConfigManager(args.settings)
        if args.clear_recent:
            settings.clear_recent_files()
            settings.save()
            console.print("[green]✓[/] Recent outputs cleared")
        if args.recent:
            show_recent(settings)
        sys.exit(0)

    setup_logging(verbose=args.verbose, quiet=args.quiet, log_file=args.log_file)

    if not args.quiet:
        show_banner()

    if not args.config:
        console.print("[bold red]Error:[/] No configuration file specified.\n")
        console.print("Usage: raster-fx <run.json>")
        console.print("       raster-fx --help\n")
        sys.exit(1)

    config_path = Path(args.config)
    if not config_path.exists():
        logger.error(f"Configuration file not found: {config_path}")
        sys.exit(1)

    logger.info(f"Loading configuration from: [cyan]{config_path}[/]")

    try:
        config = load_config(config_path)
    except ConfigValidationError as e:
        logger.error(f"[bold red]{e}[/]")
        sys.exit(1)

    logger.info("[green]✓[/] Configuration validated")
    logger.info(f"Input:   [cyan]{config['input'] or '(generated)'}[/]")
    if config["input"]:
        info = get_image_info(config["input"])
        if info:
            logger.info(f"Image size: [cyan]{info['width']}x{info['height']}[/] ({info['format']})")
    logger.info(f"Output:  [cyan]{config['output_dir']}[/]")
    logger.info(f"Effects: [yellow]{', '.join(s['effect'] for s in config['effects'])}[/]")

    settings = ConfigManager(args.settings) if args.settings else None

    success = run_effects(config, settings)

    if success:
        logger.info("[bold green]✓ Processing complete![/]")
        sys.exit(0)
    else:
        logger.error("[bold red]✗ Some effects failed![/]")
        sys.exit(1)


if __name__ == "__main__":
    main()
