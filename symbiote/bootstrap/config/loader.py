import argparse
import os
from functools import lru_cache
from pathlib import Path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="symbiote",
        description=(
            "Run a Symbiote conformance session.\n\n"
            "Two independent implementations of the same data catalog exchange\n"
            "randomly generated values and check that each side decodes and\n"
            "re-encodes exactly what the other produced."
        ),
        formatter_class=argparse.RawTextHelpFormatter
    )

    parser.add_argument(
        "role",
        choices=["first", "second", "topics"],
        help=(
            "first  → connect to a second party and drive one session.\n"
            "second → listen for first parties, one session per connection.\n"
            "topics → print the locally available topics and exit."
        ),
    )

    parser.add_argument(
        "-c", "--config",
        type=str,
        help="Path to a Symbiote configuration file"
    )

    parser.add_argument(
        "-l", "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=(
            "Logging verbosity.\n"
            "DEBUG    → every protocol message sent and received.\n"
            "INFO     → negotiation, topic progress and summaries (default).\n"
            "WARNING  → failed trials and timeouts.\n"
            "ERROR    → aborted sessions only.\n"
        ),
    )

    parser.add_argument(
        "--once",
        action="store_true",
        help="second only: stop after the first session and exit with its status."
    )

    parser.add_argument(
        "-f", "--format",
        type=str,
        default="yaml",
        choices=["json", "yaml"],
        help="Output format of session reports."
    )

    return parser


@lru_cache
def get_cli_args() -> argparse.Namespace:
    return build_parser().parse_args()


def resolve_configfile(cli_value: str | None) -> Path | None:
    # Priority: CLI > ENV > default file in current working directory
    raw = cli_value or os.getenv("SYMBIOTECONFIG")

    if raw is None:
        file = Path.cwd() / "symbiote.yaml"
        return file if file.is_file() else None

    file = Path(raw)
    if not file.is_file():
        raise SystemExit(
            f"[config] Configuration file not found: '{file}'.\n"
            "  - Use --config <file.yaml>\n"
            "  - Or set the SYMBIOTECONFIG environment variable\n"
            "  - Or place a 'symbiote.yaml' file in the current working directory."
        )

    return file
