import argparse
import logging
import os
import sys

from AtomCSS.Build.formatter import CSS_FORMATS
from AtomCSS.Classes.build_manager import BuildManager
from AtomCSS.Classes.config import CONFIG_FILE, WRITE_MODES, ConfigError, Settings, create_default_config

# SETTINGS
WATCH_PATHS = ["."]
OUTPUT_FILE = "style.css"
INCLUDE_CONFIG = False

# THIS FILE "atom.py" runs AtomCSS
# - Pass one or more files or directories to scan; directories are walked recursively.
# - AtomCSS writes a single CSS file.
# - INCLUDE_CONFIG:
#     - Defaults to False.
#     - Set to True (or pass -c) to use an 'atom-config.json' file.
#     - The file is created with starter settings when it does not exist.
# - Requires 'watchdog' and 'beautifulsoup4'.

logger = logging.getLogger("atomcss")


class ColorFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;41m",
        "RESET": "\033[0m",
    }

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        c = self.COLORS.get(record.levelname, "")
        return f"{c}{base}{self.COLORS['RESET']}"


def setup_logging(debug: bool) -> None:
    handler = logging.StreamHandler(sys.stderr)
    if sys.stderr.isatty():
        handler.setFormatter(ColorFormatter("%(asctime)s %(levelname)s %(message)s"))
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)


def main():
    parser = argparse.ArgumentParser(description="Generate atomic CSS from class names in markup files.")
    parser.add_argument("input_paths", nargs="*", help=f"Files or directories to scan (default: {' '.join(WATCH_PATHS)})")
    parser.add_argument("-o", "--output", help=f"Output CSS file (default: {OUTPUT_FILE})")
    parser.add_argument("-b", "--build", action="store_true", help="Perform a single build and exit")
    parser.add_argument("-c", "--config", action="store_const", const=True, default=INCLUDE_CONFIG,
                        help=f"Include and use {CONFIG_FILE} (default: {INCLUDE_CONFIG})")
    parser.add_argument("--config-file", default=CONFIG_FILE, help=f"Configuration file path (default: {CONFIG_FILE})")
    parser.add_argument("--mode", choices=WRITE_MODES, help="Write mode")
    parser.add_argument("--format", choices=CSS_FORMATS, help="CSS output format")
    parser.add_argument("--debug", action="store_true", help="Verbose logging")
    args = parser.parse_args()
    setup_logging(args.debug)

    if args.config and not os.path.exists(args.config_file):
        try:
            create_default_config(args.config_file)
        except OSError as e:
            logger.error("Error creating config file: %s", e)
            sys.exit(1)

    overrides = {
        "input_paths": args.input_paths or None,
        "output_file": args.output,
        "write_mode": args.mode,
        "css_format": args.format,
    }
    try:
        settings = Settings.load(args.config_file, args.config, **overrides)
    except ConfigError as e:
        logger.error("Invalid configuration:")
        for violation in e.violations:
            logger.error("  - %s", violation)
        sys.exit(1)

    build_manager = BuildManager(settings, overrides)
    try:
        if args.build:
            build_manager.build()
        else:
            build_manager.watch()
    except OSError as e:
        logger.error("Error during build: %s", e)
        sys.exit(1)


# RUN ATOMCSS
if __name__ == "__main__":
    main()
