import io
import pytest
from pathlib import Path

from funlang.funlang_debugger import Debugger

PROGRAM = Path(__file__).parent / "resources" / "debug_program.fun"
BROKEN = Path(__file__).parent / "resources" / "broken_program.fun"


async def transcript(*commands: str) -> str:
    """Feeds commands to a fresh Debugger and returns everything it wrote."""
    output = io.StringIO()
    debugger = Debugger(output)
    await debugger.run(io.StringIO("\n".join(commands)))
    return output.getvalue()

# --- Breakpoint table ---

@pytest.mark.asyncio
async def test_list_and_remove_breakpoints():
    out = await transcript(
        f"load {PROGRAM}",
        "list",
        "breakpoint 1",
        "condition 6 t > 3",
        "list",
        "remove 6",
        "list",
    )
    assert out == (
        ">Program loaded.\n"
        ">List of breakpoints:\n"
        "\n"
        ">>>List of breakpoints:\n"
        "   At line 1, condition: empty\n"
        "   At line 6, condition: t > 3\n"
        "\n"
        ">>List of breakpoints:\n"
        "   At line 1, condition: empty\n"
        "\n"
        ">"
    )

@pytest.mark.asyncio
async def test_breakpoints_are_listed_in_line_order():
    out = await transcript("breakpoint 9", "breakpoint 2", "condition 5 x", "list")
    assert out == (
        ">>>>List of breakpoints:\n"
        "   At line 2, condition: empty\n"
        "   At line 5, condition: x\n"
        "   At line 9, condition: empty\n"
        "\n"
        ">"
    )

@pytest.mark.asyncio
async def test_overwrite_and_missing_breakpoint_warnings():
    out = await transcript("breakpoint 3", "condition 3 a == 1", "remove 4", "list")
    assert out == (
        ">>Warning: breakpoint at line 3 was overwritten\n"
        ">Warning: there is no breakpoints on line 4\n"
        ">List of breakpoints:\n"
        "   At line 3, condition: a == 1\n"
        "\n"
        ">"
    )

@pytest.mark.asyncio
async def test_load_clears_breakpoints():
    out = await transcript("breakpoint 3", f"load {PROGRAM}", "list")
    assert out == ">>Program loaded.\n>List of breakpoints:\n\n>"

# --- Running ---

@pytest.mark.asyncio
async def test_run_evaluate_continue():
    out = await transcript(
        f"load {PROGRAM}",
        "breakpoint 8",
        "run",
        "evaluate 2+2",
        "continue",
    )
    assert out == (
        ">Program loaded.\n"
        ">>5\n"
        "line=8,elementType=FunctionCall>=4\n"
        "line=8,elementType=FunctionCall>line=8,elementType=Identifier>"
    )

@pytest.mark.asyncio
async def test_conditional_breakpoints():
    out = await transcript(
        f"load {PROGRAM}",
        "condition 8 t == 5",
        "condition 7 t == 7",
        "run",
        "continue",
    )
    assert out == (
        ">Program loaded.\n"
        ">>>5\n"
        "line=8,elementType=FunctionCall>line=8,elementType=Identifier>"
    )

@pytest.mark.asyncio
async def test_stop_discards_the_run():
    out = await transcript(
        f"load {PROGRAM}",
        "breakpoint 8",
        "run",
        "stop",
        "continue",
        "evaluate t",
    )
    assert out == (
        ">Program loaded.\n"
        ">>5\n"
        "line=8,elementType=FunctionCall>"
        ">Error: there is nothing to continue\n"
        ">Error: command isn't available now - run any program first\n"
        ">"
    )

@pytest.mark.asyncio
async def test_evaluate_sees_the_suspended_scope():
    out = await transcript(
        f"load {PROGRAM}",
        "condition 6 t > 3",
        "run",
        "evaluate t",
        "evaluate step(t) * 10",
        "stop",
    )
    assert out == (
        ">Program loaded.\n"
        ">>line=6,elementType=BinaryExpression>=4\n"
        "line=6,elementType=BinaryExpression>=50\n"
        "line=6,elementType=BinaryExpression>>"
    )

@pytest.mark.asyncio
async def test_continue_runs_to_completion():
    out = await transcript(
        f"load {PROGRAM}",
        "breakpoint 8",
        "run",
        "remove 8",
        "continue",
        "run",
    )
    assert out == (
        ">Program loaded.\n"
        ">>5\n"
        "line=8,elementType=FunctionCall>"
        "line=8,elementType=FunctionCall>5 6\n"
        ">5\n5 6\n"
        ">"
    )

@pytest.mark.asyncio
async def test_breakpoint_deep_in_recursion(tmp_path):
    program = tmp_path / "depth.fun"
    program.write_text(
        "fun depth(n) {\n"
        "    if (n == 0) { return 0 }\n"
        "    return depth(n - 1) + 1\n"
        "}\n"
        "println(depth(500))\n"
    )
    out = await transcript(
        f"load {program}",
        "condition 2 n == 0",
        "run",
        "evaluate n",
        "remove 2",
        "continue",
    )
    assert out == (
        ">Program loaded.\n"
        ">>line=2,elementType=Block>=0\n"
        "line=2,elementType=Block>line=2,elementType=Block>500\n"
        ">"
    )

@pytest.mark.asyncio
async def test_runtime_error_returns_to_idle():
    out = await transcript(f"load {BROKEN}", "run", "continue")
    assert out == (
        ">Program loaded.\n"
        ">1\n"
        "Error: UnknownIdentifier at line 3\n"
        ">Error: there is nothing to continue\n"
        ">"
    )

@pytest.mark.asyncio
async def test_failed_evaluate_keeps_the_program_suspended():
    out = await transcript(
        f"load {PROGRAM}",
        "breakpoint 8",
        "run",
        "evaluate nope + 1",
        "evaluate 1 / 0",
        "evaluate (",
        "evaluate t",
    )
    assert out == (
        ">Program loaded.\n"
        ">>5\n"
        "line=8,elementType=FunctionCall>Error: UnknownIdentifier at line 1\n"
        "line=8,elementType=FunctionCall>Error: ArithmeticError at line 1\n"
        "line=8,elementType=FunctionCall>Error: SyntaxError at line 1\n"
        "line=8,elementType=FunctionCall>=5\n"
        "line=8,elementType=FunctionCall>"
    )

# --- Command errors ---

@pytest.mark.asyncio
async def test_run_without_program():
    out = await transcript("run")
    assert out == ">Error: no program loaded\n>"

@pytest.mark.asyncio
async def test_run_while_running_and_load_while_running():
    out = await transcript(f"load {PROGRAM}", "breakpoint 8", "run", "run", f"load {PROGRAM}")
    suspended = "line=8,elementType=FunctionCall>"
    assert out == (
        ">Program loaded.\n"
        ">>5\n"
        f"{suspended}Error: program is already running\n"
        f"{suspended}Error: program is already running\n"
        f"{suspended}"
    )

@pytest.mark.asyncio
async def test_argument_errors():
    out = await transcript(
        "breakpoint",
        "breakpoint x",
        "remove",
        "condition 4",
        "condition",
        "load",
        "evaluate",
        "load /no/such/file.fun",
    )
    assert out == (
        ">Error: some arguments missed\n"
        ">Error: wrong types of arguments\n"
        ">Error: some arguments missed\n"
        ">Error: condition expression is missed\n"
        ">Error: some arguments missed\n"
        ">Error: some arguments missed\n"
        ">Error: some arguments missed\n"
        ">Error: file wasn't found\n"
        ">"
    )

@pytest.mark.asyncio
async def test_empty_unknown_and_extra_arguments():
    out = await transcript("", "   ", "frobnicate 1 2", "breakpoint 3 4", "list extra")
    assert out == (
        ">Warning: empty command ignored\n"
        ">Warning: empty command ignored\n"
        ">"
        ">Warning: Extra arguments were ignored\n"
        ">List of breakpoints:\n"
        "   At line 3, condition: empty\n"
        "\n"
        "Warning: Extra arguments were ignored\n"
        ">"
    )

@pytest.mark.asyncio
async def test_invalid_condition_is_not_installed():
    out = await transcript("condition 3 1 +", "list")
    assert out == (
        ">Error: SyntaxError at line 1\n"
        ">List of breakpoints:\n"
        "\n"
        ">"
    )

@pytest.mark.asyncio
async def test_evaluate_while_idle():
    out = await transcript("evaluate 1 + 1", "continue", "stop")
    assert out == (
        ">Error: command isn't available now - run any program first\n"
        ">Error: there is nothing to continue\n"
        ">>"
    )
