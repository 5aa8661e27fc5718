"""CLI UI related functions"""

import logging
import sys
from traceback import format_exception, format_stack

import colorful as cf
from texttable import Texttable

from ..results import EvalResult, Outcome

TICK = "✔"
CROSS = "✘"

UI_COLORS = {
    # --
    "teal": "#027777",
    "grey": "#777777",
    "magenta": "#9510ED",
    "red": "#991010",
}


# Flags that modify interface displays
QUIET = False
VERBOSE = False


def init(args):
    """Initialise the UI, including logging"""

    if args["--vverbose"]:
        level = "DEBUG"
    elif args["--verbose"]:
        level = "INFO"
    else:
        level = None

    global QUIET
    global VERBOSE
    QUIET = args["--quiet"]
    VERBOSE = args["--verbose"] or args["--vverbose"]

    root_logger = logging.getLogger("multirepl")

    # the palette names are used with colours off too
    cf.use_palette(UI_COLORS)
    cf.update_palette(UI_COLORS)

    if not args["--no-colours"]:
        import coloredlogs

        cf.use_true_colors()
        if level:
            coloredlogs.install(
                fmt="[%(asctime)s.%(msecs)03d] %(name)-25s %(message)s",
                datefmt="%H:%M:%S",
                level=level,
                logger=root_logger,
            )
    else:
        cf.disable()
        if level:
            logging.basicConfig(level=level)
            root_logger.setLevel(level)


## String colour modifiers


def dim(string):
    return cf.grey(string)


def good(string):
    return cf.bold_teal(string)


def bad(string):
    return cf.bold_red(string)


def primary(string):
    return cf.teal(string)


## And printing messages


def info(msg):
    if not QUIET:
        print(msg)


def print_result(index: int, result: EvalResult):
    """Show the outcome of one evaluated cell"""
    where = dim(f"[{index}] {result.module_name or '-'}")
    if result.outcome is Outcome.OK:
        if result.result_name:
            print(f"{where} {primary(result.result_name)} = {result.value!r}")
        elif not QUIET:
            print(f"{where} {TICK} {', '.join(result.bound_names)}")
    elif result.outcome is Outcome.COMPILE_ERROR:
        print(f"{where} {bad('CompileError')} {result.diagnostic}")
        if result.diagnostic.text:
            print(dim("    " + result.diagnostic.text.rstrip()))
    else:
        print(f"{where} {bad(result.error.type_name)} {result.error.message}")
        if VERBOSE:
            print(dim(result.error.traceback))


def print_table(header: list, rows: list):
    table = Texttable()
    table.set_deco(Texttable.HEADER)
    table.add_rows([header] + rows)
    print(table.draw())


## graceful exits


def exit_problem(problem: str, suggested_fix: str):
    """Exit because of a user-correctable problem"""
    print("\n" + bad(problem))
    if suggested_fix:
        print(suggested_fix)
    if not suggested_fix.endswith("\n"):
        print("")
    sys.exit(1)


def exit_bug(msg, *, data=None, traceback=None):
    """Something broke unexpectedly while running"""
    print(bad("\nUnexpected error.\n" + str(msg)))

    exc_type, exc_value, exc_traceback = sys.exc_info()

    if exc_type:
        traceback = format_exception(exc_type, exc_value, exc_traceback)
    elif traceback is None:
        traceback = format_stack(limit=4)

    if traceback:
        print("\n" + "".join(traceback))

    if data:
        print(f"Associated Data:\n{data}")

    print(dim("\nIf this persists, please report it along with the output above.\n"))
    sys.exit(2)
