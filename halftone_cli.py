#!/usr/bin/env python3
"""
Halftone Lab CLI - Command-Line Interface

Runs halftoning pipelines on single images or whole folders, driven by
a JSON job file. Uses Rich for terminal output.
"""

import sys
import logging
import argparse
import json
from pathlib import Path
from typing import Optional, List, Dict, Any

from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, BarColumn, TaskProgressColumn
from rich.panel import Panel
from rich.table import Table

from config_manager import ConfigManager
from halftone_algorithm import HalftoneAlgorithm
from module_registry import ModuleRegistry, build_algorithm, create_default_registry
from utils import IMAGE_EXTENSIONS, get_image_info, load_grayscale_image, save_image, validate_image_file


console = Console()

logger = logging.getLogger('halftone_lab')


def setup_logging(verbose: bool = False, quiet: bool = False, log_file: Optional[str] = None):
    """
    Setup logging with Rich handler for terminal output.

    Args:
        verbose: Enable verbose (DEBUG) logging
        quiet: Suppress all but ERROR messages
        log_file: Optional path to log file
    """
    if quiet:
        level = logging.ERROR
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    handlers = [RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        markup=True,
        rich_tracebacks=True
    )]

    if log_file:
        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setFormatter(
            logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        )
        handlers.append(file_handler)

    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=handlers,
        force=True
    )
    logger.setLevel(level)
    return logger


class CLIProgressCallback:
    """
    Rich progress bar usable as the progress_callback of a halftone run
    (called with a fraction 0.0-1.0).
    """

    def __init__(self, description: str = "Halftoning..."):
        self.description = description
        self.progress = None
        self.task = None

    def __enter__(self):
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            console=console
        )
        self.progress.__enter__()
        self.task = self.progress.add_task(self.description, total=100)
        return self

    def __exit__(self, *args):
        if self.progress:
            self.progress.__exit__(*args)

    def __call__(self, fraction: float):
        self.update(fraction)

    def update(self, fraction: float, message: Optional[str] = None):
        if self.progress and self.task is not None:
            self.progress.update(self.task, completed=fraction * 100,
                                 description=message or self.description)

    def finish(self):
        if self.progress and self.task is not None:
            self.progress.update(self.task, completed=100, description="Complete!")


# ==================== Job Schema & Validation ====================

VALID_MODES = ["image", "folder"]


class ConfigValidationError(Exception):
    """Raised when job file validation fails."""
    pass


def _resolve(path_value: str, base_dir: Path) -> str:
    path = Path(path_value)
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    return str(path)


def validate_config(config: Dict[str, Any], config_path: Path,
                    registry: ModuleRegistry,
                    defaults: Optional[ConfigManager] = None) -> Dict[str, Any]:
    """
    Validate a job and return it normalized.

    The algorithm section is built once with the registry so that unknown
    module types and parameters are reported before any image is loaded.

    Args:
        config: Raw job dictionary
        config_path: Path to the job file (relative paths resolve against it)
        registry: Module registry used to build the algorithm
        defaults: User preferences providing the default algorithm

    Returns:
        Validated and normalized job

    Raises:
        ConfigValidationError: If validation fails
    """
    errors = []

    if not isinstance(config, dict):
        raise ConfigValidationError("Job file must contain a JSON object")

    if "input" not in config:
        errors.append("Missing required field: 'input'")
    if "output" not in config:
        errors.append("Missing required field: 'output'")

    mode = config.get("mode")
    if mode and mode not in VALID_MODES:
        errors.append(f"Invalid mode: '{mode}'. Must be one of: {VALID_MODES}")

    if "algorithm" not in config and defaults is not None:
        config["algorithm"] = defaults.get_default_algorithm()
    algorithm = config.setdefault("algorithm", {})
    if not isinstance(algorithm, dict):
        errors.append("'algorithm' must be an object/dictionary")
    else:
        for section in ("pre", "post"):
            if section in algorithm and not isinstance(algorithm[section], dict):
                errors.append(f"'algorithm.{section}' must be an object/dictionary")
        if not errors:
            try:
                build_algorithm(registry, algorithm)
            except KeyError as e:
                errors.append(f"Invalid algorithm: {e.args[0] if e.args else e}")
            except (ValueError, TypeError) as e:
                errors.append(f"Invalid algorithm: {e}")

    if "bilevel" in config and not isinstance(config["bilevel"], bool):
        errors.append("'bilevel' must be true or false")

    if errors:
        error_msg = "Configuration validation failed:\n" + "\n".join(f"  • {e}" for e in errors)
        raise ConfigValidationError(error_msg)

    config_dir = config_path.parent
    config["input"] = _resolve(config["input"], config_dir)
    config["output"] = _resolve(config["output"], config_dir)

    if not Path(config["input"]).exists():
        raise ConfigValidationError(f"Input file/directory not found: {config['input']}")

    config.setdefault("mode", None)
    config.setdefault("bilevel", False)
    return config


def load_config(config_path: Path, registry: ModuleRegistry,
                defaults: Optional[ConfigManager] = None) -> Dict[str, Any]:
    """
    Load and validate a job from a JSON file.

    Raises:
        ConfigValidationError: If loading or validation fails
    """
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            config = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigValidationError(f"Invalid JSON in config file:\n  Line {e.lineno}: {e.msg}")
    except OSError as e:
        raise ConfigValidationError(f"Failed to load config file: {e}")

    return validate_config(config, config_path, registry, defaults)


def detect_mode(input_path: Path) -> str:
    """Detect "image" or "folder" mode from the input path."""
    if input_path.is_dir():
        return "folder"
    ext = input_path.suffix.lower()
    if ext in IMAGE_EXTENSIONS:
        return "image"
    raise ConfigValidationError(f"Cannot determine mode for file extension: {ext}")


# ==================== Image Processing ====================

def process_single_image(algorithm: HalftoneAlgorithm, input_path: Path, output_path: Path,
                         bilevel: bool = False, show_progress: bool = True) -> bool:
    """
    Halftone one image file.

    Returns:
        True if successful, False otherwise
    """
    info = get_image_info(str(input_path))
    if info is None:
        logger.error(f"Cannot read image: {input_path}")
        return False

    try:
        logger.info(f"Loading image: [cyan]{input_path.name}[/]")
        logger.info(f"Image: [cyan]{info['width']}x{info['height']}[/] {info['format']} ({info['mode']})")
        image = load_grayscale_image(str(input_path))

        if show_progress:
            with CLIProgressCallback(f"Halftoning {input_path.name}...") as progress:
                algorithm.run(image, progress)
                progress.finish()
        else:
            algorithm.run(image)

        logger.info(f"Saving to: [cyan]{output_path}[/]")
        save_image(image, str(output_path), bilevel=bilevel)

        size_kb = output_path.stat().st_size / 1024
        logger.info(f"[bold green]✓ Image saved successfully![/] ({size_kb:.1f} KB)")
        return True

    except (OSError, ValueError) as e:
        logger.error(f"Failed to process image: {e}", exc_info=True)
        return False


def process_folder(algorithm: HalftoneAlgorithm, input_dir: Path, output_dir: Path,
                   bilevel: bool = False, show_progress: bool = True) -> bool:
    """
    Halftone every image in a folder (not recursive) into output_dir.

    Returns:
        True if all images succeeded
    """
    files = sorted(p for p in input_dir.iterdir()
                   if p.is_file() and validate_image_file(str(p)))
    if not files:
        logger.warning(f"No images found in {input_dir}")
        return False

    logger.info(f"Found [cyan]{len(files)}[/] images")
    failed: List[Path] = []
    for path in files:
        if not process_single_image(algorithm, path, output_dir / path.name, bilevel, show_progress):
            failed.append(path)

    if failed:
        logger.error(f"{len(failed)} of {len(files)} images failed: {', '.join(p.name for p in failed)}")
    return not failed


def show_banner():
    """Display application banner."""
    banner = """
[bold cyan]╔═══════════════════════════════════════╗[/]
[bold cyan]║[/]      [bold white]Halftone Lab CLI[/] [dim]- v1.0[/]      [bold cyan]║[/]
[bold cyan]║[/]  Digital Halftoning Toolkit           [bold cyan]║[/]
[bold cyan]╚═══════════════════════════════════════╝[/]
"""
    console.print(banner)


def show_help():
    """Display detailed help information."""
    help_text = """
[bold cyan]Halftone Lab CLI - Usage[/]

[bold]Basic Usage:[/]
  halftone-lab <job.json>               Process with JSON job file
  halftone-lab --help                   Show this help
  halftone-lab --example-config         Generate example job file
  halftone-lab --list-modules           List available modules

[bold]Options:[/]
  --verbose, -v       Enable verbose output
  --quiet, -q         Suppress all but error messages
  --log-file FILE     Write log to file
  --preferences FILE  User preferences file (default algorithm, recent files)

[bold]Examples:[/]
  # Floyd-Steinberg on a single image
  halftone-lab jobs/floyd.json

  # SFC clustering with verbose output
  halftone-lab -v jobs/sfc.json
"""
    console.print(help_text)


def show_modules(registry: ModuleRegistry):
    """Print registered modules and their parameters."""
    for category, entries in registry.describe().items():
        table = Table(title=category, title_style="bold cyan", show_lines=False)
        table.add_column("type", style="cyan")
        table.add_column("parameters")
        table.add_column("description", style="dim")
        for entry in entries:
            params = list(entry.parameter_info) + [f"{s} (module)" for s in entry.submodules]
            table.add_row(entry.tag, ", ".join(params) or "-", entry.description)
        console.print(table)


def generate_example_config():
    """Generate and print an example job file."""
    example = {
        "_comment": "Halftone Lab job",
        "input": "path/to/input.png",
        "output": "path/to/output.png",
        "mode": "image",
        "bilevel": False,
        "algorithm": {
            "method": {
                "type": "sfc_clustering",
                "max_cell_size": 7,
                "min_cell_size": 2,
                "use_cluster_positioning": True,
                "use_adaptive_clustering": True,
                "error_filter": {"type": "vector_error", "matrix": "next_pixel"},
                "scanning_order": {"type": "hilbert"}
            },
            "pre": {
                "resize": {"factor": 2.0, "interpolation": "bicubic"},
                "dot_gain": {"type": "gamma", "gamma": 1.2},
                "sharpen": {"amount": 0.1}
            },
            "post": {
                "smoothen": {"radius": 5}
            },
            "supersampling": True
        }
    }

    example_json = json.dumps(example, indent=4)

    console.print("\n[bold cyan]Example Configuration:[/]\n")
    console.print(Panel(example_json, title="job.json", border_style="cyan"))
    console.print("\n[dim]Save this to a .json file and modify as needed. "
                  "Use --list-modules for all module types.[/]\n")


def main(argv: Optional[List[str]] = None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Halftone Lab CLI - Digital Halftoning Toolkit",
        add_help=False
    )

    parser.add_argument('config', nargs='?', help='Path to JSON job file')
    parser.add_argument('--help', '-h', action='store_true', help='Show help')
    parser.add_argument('--example-config', action='store_true', help='Generate example job file')
    parser.add_argument('--list-modules', action='store_true', help='List available modules')
    parser.add_argument('--verbose', '-v', action='store_true', help='Verbose output')
    parser.add_argument('--quiet', '-q', action='store_true', help='Quiet mode (errors only)')
    parser.add_argument('--log-file', type=str, help='Log to file')
    parser.add_argument('--preferences', type=str, default=None,
                        help='User preferences file')

    args = parser.parse_args(argv)
    registry = create_default_registry()

    if args.help:
        show_banner()
        show_help()
        sys.exit(0)

    if args.example_config:
        show_banner()
        generate_example_config()
        sys.exit(0)

    if args.list_modules:
        show_modules(registry)
        sys.exit(0)

    preferences = ConfigManager(args.preferences) if args.preferences else None
    log_file = args.log_file or (preferences.get("defaults", "log_file") if preferences else None)
    setup_logging(verbose=args.verbose, quiet=args.quiet, log_file=log_file)

    if not args.quiet:
        show_banner()

    if not args.config:
        console.print("[bold red]Error:[/] No job file specified.\n")
        console.print("Usage: halftone-lab <job.json>")
        console.print("       halftone-lab --help\n")
        sys.exit(1)

    config_path = Path(args.config)
    if not config_path.exists():
        logger.error(f"Configuration file not found: {config_path}")
        sys.exit(1)

    logger.info(f"Loading configuration from: [cyan]{config_path}[/]")

    try:
        config = load_config(config_path, registry, preferences)
    except ConfigValidationError as e:
        logger.error(f"[bold red]{e}[/]")
        sys.exit(1)

    logger.info("[green]✓[/] Configuration validated")

    if not config["mode"]:
        try:
            config["mode"] = detect_mode(Path(config["input"]))
            logger.info(f"Auto-detected mode: [cyan]{config['mode']}[/]")
        except ConfigValidationError as e:
            logger.error(f"{e}")
            sys.exit(1)

    algorithm = build_algorithm(registry, config["algorithm"])
    logger.info(f"Input:  [cyan]{config['input']}[/]")
    logger.info(f"Output: [cyan]{config['output']}[/]")
    logger.info(f"Mode:   [cyan]{config['mode']}[/]")
    logger.info("Stages: " + " → ".join(f"[yellow]{label}[/]" for label, _ in algorithm.stages()))
    logger.info("")

    show_progress = not args.quiet
    input_path, output_path = Path(config["input"]), Path(config["output"])
    if config["mode"] == "image":
        success = process_single_image(algorithm, input_path, output_path,
                                       config["bilevel"], show_progress)
    else:
        success = process_folder(algorithm, input_path, output_path,
                                 config["bilevel"], show_progress)

    if preferences is not None:
        preferences.update_last_path("input", config["input"])
        preferences.update_last_path("output", config["output"])
        preferences.update_last_path("job", str(config_path.resolve()))
        preferences.add_recent_file(str(config_path.resolve()))
        preferences.save()

    if success:
        logger.info("")
        logger.info("[bold green]✓ Processing complete![/]")
        sys.exit(0)
    else:
        logger.error("")
        logger.error("[bold red]✗ Processing failed![/]")
        sys.exit(1)


if __name__ == "__main__":
    main()
