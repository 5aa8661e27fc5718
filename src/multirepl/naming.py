"""Per-session names for generated modules

Every snippet a session evaluates becomes one module in the compiled output
store, named ``<package>.line<N>``. The package is derived from the session
id alone, so two sessions can never produce the same module name:

    session 1        -> session_1.line1, session_1.line2, ...
    session "alice"  -> session_s616c696365.line1, ...

Integer ids keep their digits, string tokens are hex encoded behind an "s", so
the two families cannot meet, and the trailing dot of the prefix stops
``session_1.`` from matching anything in ``session_12``.
"""

import re
from typing import Optional, Union

SessionId = Union[int, str]

PACKAGE_PREFIX = "session_"
LINE_PREFIX = "line"
RESULT_PREFIX = "res"

_LINE_RE = re.compile(rf"^{LINE_PREFIX}([1-9][0-9]*)$")


def validate_session_id(session_id) -> SessionId:
    """Check that SESSION_ID can name a session, and return it"""
    if isinstance(session_id, bool):
        raise ValueError(f"Session id cannot be a bool: {session_id!r}")
    if isinstance(session_id, int):
        if session_id < 0:
            raise ValueError(f"Session id must be non-negative: {session_id}")
        return session_id
    if isinstance(session_id, str):
        if not session_id:
            raise ValueError("Session id cannot be empty")
        return session_id
    raise ValueError(f"Session id must be an int or str, not {type(session_id)}")


def package_name(session_id: SessionId) -> str:
    """The top level package holding every module of SESSION_ID"""
    session_id = validate_session_id(session_id)
    if isinstance(session_id, int):
        return f"{PACKAGE_PREFIX}{session_id}"
    return f"{PACKAGE_PREFIX}s{session_id.encode('utf-8').hex()}"


class SessionNames:
    """Naming strategy for one session

    Everything here is a pure function of the session id and a counter owned by
    the caller.
    """

    def __init__(self, session_id: SessionId):
        self.session_id = validate_session_id(session_id)
        self.package = package_name(session_id)
        self.prefix = self.package + "."

    def line_name(self, n: int) -> str:
        """Module name of the Nth line (1-indexed)"""
        if n < 1:
            raise ValueError(f"Line numbers start at 1, got {n}")
        return f"{self.prefix}{LINE_PREFIX}{n}"

    def result_name(self, k: int) -> str:
        """Binding name of the Kth expression result (0-indexed)"""
        if k < 0:
            raise ValueError(f"Result numbers start at 0, got {k}")
        return f"{RESULT_PREFIX}{k}"

    def owns(self, module_name: str) -> bool:
        return module_name == self.package or module_name.startswith(self.prefix)

    def line_index(self, module_name: str) -> Optional[int]:
        """The line number of MODULE_NAME, if it is one of our line modules"""
        if not module_name.startswith(self.prefix):
            return None
        match = _LINE_RE.match(module_name[len(self.prefix) :])
        return int(match.group(1)) if match else None

    def __eq__(self, other):
        return isinstance(other, SessionNames) and other.package == self.package

    def __hash__(self):
        return hash(self.package)

    def __repr__(self):
        return f"<SessionNames {self.prefix}>"


def session_id_from_package(package: str) -> Optional[SessionId]:
    """Inverse of package_name, or None if PACKAGE isn't a session package"""
    if not package.startswith(PACKAGE_PREFIX):
        return None
    rest = package[len(PACKAGE_PREFIX) :]
    if rest.isdigit() and str(int(rest)) == rest:
        return int(rest)
    if rest.startswith("s"):
        try:
            return bytes.fromhex(rest[1:]).decode("utf-8") or None
        except ValueError:
            return None
    return None


def parse_session_id(text: str) -> SessionId:
    """Session id from the command line: digits are integer ids"""
    return int(text) if text.isdigit() else validate_session_id(text)
