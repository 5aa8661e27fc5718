"""multirepl.

Usage:
  multirepl [options] run FILE [--session=ID]
  multirepl [options] sessions
  multirepl [options] purge SESSION_ID
  multirepl --version
  multirepl -h | --help

Commands:
  run       Evaluate the cells of FILE (separated by `# %%' lines) in a session.
  sessions  List the sessions in the compiled output store.
  purge     Delete the compiled output of a session.

Options:
  --version       Show version.
  -h, --help      Show this screen.
  -q, --quiet     Be quiet.
  -v, --verbose   Be verbose.
  -V, --vverbose  Be very verbose.
  --no-colours    Disable colours in CLI output.

  --config=CONFIG   Config file to use (default: multirepl.toml)
  --master=MASTER   Cluster to use: local[N] | processes[N]  (overrides config)
  -s ID, --session=ID  Session to evaluate in  [default: 1]
"""

import logging
import re
import sys
import time
from functools import wraps
from pathlib import Path

from docopt import docopt

from .. import __version__, config
from ..cluster import from_config
from ..exceptions import UnexpectedError, UserResolvableError
from ..naming import SessionNames, parse_session_id, session_id_from_package
from ..registry import SessionRegistry
from ..store import CompiledOutputStore
from . import interface as ui
from .interface import CROSS, TICK, dim, exit_bug, exit_problem, good, init

LOG = logging.getLogger(__name__)

CELL_RE = re.compile(r"^#\s*%%")


def timed(fn):
    """Time execution of fn and print it"""

    @wraps(fn)
    def _wrapped(args, **kwargs):
        start = time.time()
        result = fn(args, **kwargs)
        end = time.time()
        if not args["--quiet"]:
            sys.stderr.write(str(dim(f"\n-- {end-start:.2f}s\n")))
        return result

    return _wrapped


def split_cells(text: str) -> list:
    """Split a file into snippets on `# %%' marker lines"""
    cells, current = [], []
    for line in text.splitlines():
        if CELL_RE.match(line):
            cells.append("\n".join(current))
            current = []
        else:
            current.append(line)
    cells.append("\n".join(current))
    return [c for c in cells if c.strip()]


def _load_config(args):
    cfg = config.load_or_default(args)
    if args["--master"]:
        cfg.cluster.master = args["--master"]
    return cfg


def _store(cfg) -> CompiledOutputStore:
    return CompiledOutputStore(cfg.store.output_dir)


@timed
def _run(args) -> int:
    cfg = _load_config(args)
    filename = Path(args["FILE"])
    try:
        text = filename.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise UserResolvableError(f"{filename} not found", "Check the path.")

    session_id = parse_session_id(args["--session"])
    cluster = from_config(cfg.cluster)
    registry = SessionRegistry(cluster, _store(cfg), store_config=cfg.store)
    failures = 0

    try:
        interpreter = registry.get_or_create(session_id, cfg.session)
        cells = split_cells(text)
        LOG.info(
            "Evaluating %d cells of %s in session %r", len(cells), filename, session_id
        )
        for i, cell in enumerate(cells):
            result = interpreter.compile_and_eval(cell)
            ui.print_result(i, result)
            if not result.ok:
                failures += 1
    finally:
        registry.close_all()
        cluster.close()

    mark = CROSS if failures else TICK
    ui.info(dim(f"\n{mark} {len(cells)} cells, {failures} failed"))
    return 1 if failures else 0


def _sessions(args) -> int:
    store = _store(_load_config(args))
    rows = []
    for package in store.session_packages():
        session_id = session_id_from_package(package)
        if session_id is None:
            continue
        lines = store.line_modules(SessionNames(session_id))
        last = lines[-1] if lines else "-"
        rows.append([repr(session_id), package, len(lines), last])

    if not rows:
        ui.info(f"No sessions in {store.root}")
    else:
        ui.print_table(["SESSION", "PACKAGE", "LINES", "LAST"], rows)
    return 0


def _purge(args) -> int:
    store = _store(_load_config(args))
    names = SessionNames(parse_session_id(args["SESSION_ID"]))
    if store.purge(names):
        ui.info(f"{TICK} Purged {good(names.package)}")
    else:
        ui.info(f"Nothing to purge for {names.package}")
    return 0


def dispatch(args) -> int:
    if args["run"]:
        return _run(args)
    elif args["sessions"]:
        return _sessions(args)
    elif args["purge"]:
        return _purge(args)
    else:
        exit_problem("Invalid command line.", __doc__)


def main():
    args = docopt(__doc__, version=__version__)
    init(args)
    LOG.debug("CLI args: %s", args)

    try:
        code = dispatch(args)
    except ValueError as exc:
        exit_problem(str(exc), "")
    except UserResolvableError as exc:
        exit_problem(exc.msg, exc.suggested_fix)
    except UnexpectedError as exc:
        exit_bug(str(exc))
    sys.exit(code)


if __name__ == "__main__":
    main()
