import asyncio
import sys
from pathlib import Path

from funlang.funlang_runtime import ScriptRunner
from funlang.funlang_debugger import Debugger

async def run_script_file(file_path: str):
    """Run a Fun program file non-interactively and exit with appropriate status."""
    runner = ScriptRunner()
    p = Path(file_path)
    try:
        source = p.read_text(encoding="utf-8")
    except FileNotFoundError:
        print(f"Error: file not found: {file_path}", file=sys.stderr)
        raise SystemExit(1)
    result = await runner.handle_script(source)
    # Print program output (from `print` / `println`)
    sys.stdout.write(result.output())
    sys.stdout.flush()
    if result.status == 'error':
        print(result.format_error(), file=sys.stderr)
        raise SystemExit(1)

async def main():
    """Run a program file when provided, otherwise start the debugger on stdin."""
    if len(sys.argv) > 1:
        arg = sys.argv[1]
        if not arg.startswith("-"):
            await run_script_file(arg)
            return

    debugger = Debugger(sys.stdout)
    await debugger.run(sys.stdin)

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting.")
