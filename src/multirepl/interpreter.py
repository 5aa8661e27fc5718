"""Session interpreters

An Interpreter evaluates snippets for exactly one session. Each snippet is
compiled into its own module in the shared compiled output store, named by
the session's SessionNames:

    x = 5            ->  session_1/line1.py:   x = 5
    x + 1            ->  session_1/line2.py:   from session_1.line1 import x
                                               res0 = x + 1

Earlier bindings reach later lines only through that import preamble, so a
line module is self-contained: any process that can import the store can
import it, and two sessions never see each other's names.
"""

import ast
import builtins
import importlib.util
import logging
import symtable
import sys
import threading
import traceback
from pathlib import Path
from typing import Dict, List, Optional, Set, Tuple

from .config_classes import SessionConfig
from .exceptions import NamespaceCollisionError, SessionClosedError
from .naming import SessionId, SessionNames
from .results import Diagnostic, ErrorInfo, EvalResult, Outcome, SourceSpan
from .store import CompiledOutputStore

LOG = logging.getLogger(__name__)

BUILTIN_NAMES = frozenset(dir(builtins))


class EvaluationCancelled(Exception):
    """Evaluation was cancelled"""


def _is_special(name: str) -> bool:
    # dunders (__name__, __class__, ...) and compiler-internal names (.0)
    return not name.isidentifier() or (name.startswith("__") and name.endswith("__"))


def analyse_names(source: str, filename: str) -> Tuple[Set[str], Set[str], List[str]]:
    """Find how SOURCE uses global names

    Returns (bound, mentioned, unbound_reads):
    - bound: names the snippet binds at module level
    - mentioned: every global name the snippet touches, in any scope
    - unbound_reads: global names read but not bound by the snippet, in order
    """
    table = symtable.symtable(source, filename, "exec")
    bound, mentioned, reads = set(), set(), []

    for sym in table.get_symbols():
        name = sym.get_name()
        mentioned.add(name)
        if sym.is_assigned() or sym.is_imported():
            bound.add(name)
        elif sym.is_referenced():
            reads.append(name)

    # Globals used from function and class bodies (and comprehensions)
    pending = list(table.get_children())
    while pending:
        child = pending.pop(0)
        pending.extend(child.get_children())
        for sym in child.get_symbols():
            if not sym.is_global():
                continue
            name = sym.get_name()
            mentioned.add(name)
            if sym.is_assigned():
                bound.add(name)
            elif sym.is_referenced():
                reads.append(name)

    unbound = [n for n in dict.fromkeys(reads) if n not in bound and not _is_special(n)]
    return bound, {n for n in mentioned if not _is_special(n)}, unbound


def _first_use(tree: ast.AST, name: str) -> Optional[SourceSpan]:
    """Location of the first Name node called NAME"""
    nodes = [n for n in ast.walk(tree) if isinstance(n, ast.Name) and n.id == name]
    if not nodes:
        return None
    node = min(nodes, key=lambda n: (n.lineno, n.col_offset))
    return SourceSpan(
        node.lineno, node.col_offset, node.end_lineno, node.end_col_offset
    )


def _has_star_import(tree: ast.Module) -> bool:
    return any(
        isinstance(stmt, ast.ImportFrom) and any(a.name == "*" for a in stmt.names)
        for stmt in tree.body
    )


def _future_imports(tree: ast.Module) -> int:
    """Number of leading `from __future__ import ...' statements"""
    count = 0
    for stmt in tree.body:
        if isinstance(stmt, ast.ImportFrom) and stmt.module == "__future__":
            count += 1
        else:
            break
    return count


class Interpreter:
    """Evaluates the snippets of one session

    Every collaborator is given to the constructor: the store that receives
    the compiled modules, the naming strategy and the session options.
    Evaluations are serialised; one session is a sequence.
    """

    def __init__(
        self,
        session_id: SessionId,
        store: CompiledOutputStore,
        names: Optional[SessionNames] = None,
        config: Optional[SessionConfig] = None,
    ):
        self.names = SessionNames(session_id) if names is None else names
        if self.names.session_id != session_id:
            raise ValueError(f"{self.names} does not belong to session {session_id!r}")
        self.session_id = session_id
        self.store = store
        self.config = SessionConfig() if config is None else config

        self._lock = threading.RLock()
        self._cancel = threading.Event()
        self._running = False
        self._closed = False
        self._origins: Dict[str, str] = {}  # binding name -> defining line module
        self._lines: List[str] = []
        self._results = 0

        self._package = self._load_package()
        # Resume numbering after anything a previous incarnation left behind
        self._line = store.last_line(self.names)
        LOG.info(
            "Session %r ready (%s, next line %d)",
            session_id,
            self.names.package,
            self._line + 1,
        )

    def _load_package(self):
        init = self.store.ensure_package(self.names) / "__init__.py"
        existing = sys.modules.get(self.names.package)
        if existing is not None:
            origin = getattr(existing, "__file__", None)
            if origin is None or Path(origin).resolve() != init.resolve():
                raise NamespaceCollisionError(
                    f"{self.names.package} is already loaded from {origin}"
                )
            return existing

        spec = self.store.spec_for(self.names.package)
        package = importlib.util.module_from_spec(spec)
        sys.modules[self.names.package] = package
        spec.loader.exec_module(package)
        return package

    ## Accessors

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def lines(self) -> List[str]:
        """Line modules that evaluated successfully, in order"""
        return list(self._lines)

    @property
    def bindings(self) -> dict:
        """Current value of every name bound in this session"""
        with self._lock:
            return {
                name: getattr(sys.modules[origin], name)
                for name, origin in self._origins.items()
            }

    def __repr__(self):
        return f"<Interpreter session={self.session_id!r} lines={len(self._lines)}>"

    ## Evaluation

    def compile_and_eval(self, snippet: str) -> EvalResult:
        """Compile SNIPPET into a new line module of this session and run it"""
        with self._lock:
            if self._closed:
                raise SessionClosedError(
                    f"Session {self.session_id!r} has been destroyed",
                    "Create a new session to continue.",
                )
            return self._compile_and_eval(snippet)

    def _compile_and_eval(self, snippet: str) -> EvalResult:
        filename = f"<{self.names.package}>"

        try:
            tree = ast.parse(snippet, filename)
            compile(tree, filename, "exec", dont_inherit=True)
            bound, mentioned, reads = analyse_names(snippet, filename)
        except SyntaxError as exc:
            return self._compile_error(exc.msg, self._syntax_span(exc), exc.text)
        except ValueError as exc:
            # e.g. source containing null bytes
            return self._compile_error(str(exc), None, None)

        # names bound by `from m import *' are only known after running it
        star = _has_star_import(tree)
        undefined = [
            n for n in reads if n not in self._origins and n not in BUILTIN_NAMES
        ]
        if undefined and not star:
            name = undefined[0]
            return self._compile_error(
                f"name '{name}' is not defined", _first_use(tree, name), None
            )

        if not tree.body:
            return EvalResult(Outcome.OK, self.session_id)

        result_name = None
        last = tree.body[-1]
        if isinstance(last, ast.Expr):
            result_name = self.names.result_name(self._results)
            self._results += 1
            assign = ast.Assign(
                targets=[ast.Name(id=result_name, ctx=ast.Store())], value=last.value
            )
            tree.body[-1] = ast.copy_location(assign, last)
            bound.add(result_name)

        self._line += 1
        module_name = self.names.line_name(self._line)
        source = self._generate(tree, module_name, mentioned)
        path = self.store.write(module_name, source)
        LOG.info("Session %r: compiled %s", self.session_id, module_name)

        return self._run(module_name, path, bound, result_name, star)

    def _generate(self, tree: ast.Module, module_name: str, mentioned) -> str:
        """Module source for TREE, importing the earlier bindings it uses"""
        by_origin: Dict[str, List[str]] = {}
        for name in sorted(mentioned):
            if name in self._origins:
                by_origin.setdefault(self._origins[name], []).append(name)

        preamble = [
            ast.ImportFrom(
                module=origin, names=[ast.alias(name=n) for n in names], level=0
            )
            for origin, names in sorted(by_origin.items())
        ]
        at = _future_imports(tree)
        tree.body[at:at] = preamble
        ast.fix_missing_locations(tree)

        header = f"# {module_name}: session {self.session_id!r}, line {self._line}\n"
        return header + ast.unparse(tree) + "\n"

    def _run(self, module_name, path, bound, result_name, star=False) -> EvalResult:
        spec = importlib.util.spec_from_file_location(module_name, path)
        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module

        try:
            self._exec(spec, module)
        except (Exception, SystemExit) as exc:
            self._discard(module_name)
            LOG.info("Session %r: %s raised %r", self.session_id, module_name, exc)
            if self.config.propagate_exceptions:
                raise
            return EvalResult(
                Outcome.RUNTIME_ERROR,
                self.session_id,
                module_name=module_name,
                error=ErrorInfo(
                    type_name=type(exc).__name__,
                    message=str(exc),
                    traceback="".join(traceback.format_exception(exc)),
                ),
            )
        except BaseException:
            self._discard(module_name)
            raise

        setattr(self._package, module_name.rpartition(".")[2], module)
        self._lines.append(module_name)

        if star:
            bound = bound | {n for n in module.__dict__ if not n.startswith("_")}

        new_names = []
        for name in sorted(bound):
            if name in module.__dict__:
                self._origins[name] = module_name
                new_names.append(name)
            else:
                self._origins.pop(name, None)  # deleted

        return EvalResult(
            Outcome.OK,
            self.session_id,
            module_name=module_name,
            value=module.__dict__.get(result_name) if result_name else None,
            result_name=result_name,
            bound_names=tuple(new_names),
        )

    def _exec(self, spec, module):
        tracing = self.config.cancellable and sys.gettrace() is None
        self._running = True
        try:
            if tracing:
                sys.settrace(self._trace)
            try:
                spec.loader.exec_module(module)
            finally:
                if tracing:
                    sys.settrace(None)
        finally:
            self._running = False
            self._cancel.clear()

    def _trace(self, frame, event, arg):
        if self._cancel.is_set():
            self._cancel.clear()
            raise EvaluationCancelled(f"Session {self.session_id!r}: cancelled")
        return self._trace

    def _discard(self, module_name):
        sys.modules.pop(module_name, None)

    def _compile_error(self, message, span, text) -> EvalResult:
        LOG.info("Session %r: compile error: %s", self.session_id, message)
        return EvalResult(
            Outcome.COMPILE_ERROR,
            self.session_id,
            diagnostic=Diagnostic(message=message, span=span, text=text),
        )

    @staticmethod
    def _syntax_span(exc: SyntaxError) -> Optional[SourceSpan]:
        if exc.lineno is None:
            return None
        # SyntaxError offsets are 1-based
        return SourceSpan(
            exc.lineno,
            max((exc.offset or 1) - 1, 0),
            getattr(exc, "end_lineno", None),
            max(exc.end_offset - 1, 0) if getattr(exc, "end_offset", None) else None,
        )

    ## Lifecycle

    def cancel(self) -> bool:
        """Cancel the evaluation in progress, if any

        The running snippet sees EvaluationCancelled at its next traced line.
        Evaluations started while another tracer (debugger, coverage) is
        active can't be interrupted. Return whether something was running.
        """
        if not self._running:
            return False
        LOG.info("Session %r: cancelling", self.session_id)
        self._cancel.set()
        return True

    def close(self):
        """Drop all in-memory state. Artifacts stay in the store."""
        self.cancel()
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._origins.clear()
            for name in [n for n in sys.modules if self.names.owns(n)]:
                del sys.modules[name]
        LOG.info("Session %r closed", self.session_id)
