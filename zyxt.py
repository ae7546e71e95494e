import argparse
import sys
from pathlib import Path

from zyxt.zyxt_config import load_config
from zyxt.zyxt_errors import CliError
from zyxt.zyxt_primitives import UNIT_T
from zyxt.zyxt_printer import Printer
from zyxt.zyxt_runtime import ScriptRunner

BANNER = "Zyxt REPL v0.1"


# A basic input prompt; tests replace it.
def read_line(prompt: str) -> str:
    sys.stdout.write(prompt)
    sys.stdout.flush()
    return sys.stdin.readline()


def _print_value(printer: Printer, value) -> None:
    if value is not None and value.ty != UNIT_T:
        print(printer.pformat(value))


def run_script_file(file_path: str, config) -> int:
    """Run a Zyxt script file non-interactively and return its exit status."""
    p = Path(file_path)
    if p.is_dir():
        print(f"Error: {CliError.file_is_directory(file_path).message}", file=sys.stderr)
        return 1
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: {CliError.file_not_found(file_path).message}", file=sys.stderr)
        return 1
    runner = ScriptRunner(config)
    result = runner.handle_script(source, filename=str(file_path))
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        return result.exit_code
    _print_value(Printer(), result.value)
    return result.exit_code


def repl(config) -> int:
    """Read lines until `exit` or end of input, running each against one runner."""
    print(BANNER)
    print("Type 'exit' or press Ctrl+D to quit.")

    runner = ScriptRunner(config)
    printer = Printer()
    while True:
        try:
            raw = read_line(">> ")
            if raw == "":
                raise EOFError
            line = raw.strip()

            if not line:
                continue
            if line == "exit":
                break

            result = runner.handle_script(line, filename="<repl>")
            if result.status == 'error':
                print(result.format_error(), file=sys.stderr)
                continue
            _print_value(printer, result.value)

        except EOFError:
            print("\nExiting.")
            break
    return 0


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="zyxt", description="Zyxt language CLI")
    parser.add_argument("-v", "--verbose", action="count", default=None,
                        help="Increase debug output (repeat for more)")
    parser.add_argument("--config", help="Path to a zyxt.yaml run configuration")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_run = subparsers.add_parser("run", help="Run a Zyxt script")
    parser_run.add_argument("filename", help="Script to run")

    subparsers.add_parser("repl", help="Start the interactive REPL")
    return parser


def main(argv=None) -> int:
    """Run a script file for `run`, otherwise start the interactive REPL."""
    args = build_arg_parser().parse_args(argv)
    try:
        config = load_config(args.config)
    except FileNotFoundError:
        print(f"Error: {CliError.file_not_found(args.config).message}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    config = config.merged(verbosity=args.verbose)

    if args.command == "run":
        return run_script_file(args.filename, config)
    return repl(config)


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\nExiting.")
