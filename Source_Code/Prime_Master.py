# Version 1
#
# Prime path coverage for block-level control flow graphs.
#   - Reads one or more CFG units (FUNC sections) from a block listing file.
#   - Normalizes each unit to its live blocks, enumerates every simple path and
#     every single-loop closing path from every node, then keeps the prime paths.
#   - --indexed swaps the quadratic containment scan for a slice index.
#   - --validate runs both filters and checks the prime path properties.
#
# Notes:
#   - Enumeration is exponential on dense graphs; use --max-* limits.
#   - Units are analyzed one after another; a broken unit never stops the others.

import sys
import re
import time
import argparse

import os
import socket
import platform
import hashlib
import datetime
import json

import traceback as _traceback

# ----------------------------
# JSON-first output policy
# ----------------------------
# If --json is present anywhere in argv, stdout MUST be a single JSON object
# for both success and failure, regardless of failure stage (CLI parsing, missing file, etc).
JSON_REQUESTED = False
_JSON_EMITTED = False

import builtins as _builtins
_builtin_print = _builtins.print


def _pm_print(*args, **kwargs):
    """Human-readable output. In --json mode, route to stderr by default."""
    if JSON_REQUESTED and kwargs.get("file") is None:
        kwargs["file"] = sys.stderr
    _builtin_print(*args, **kwargs)


# Any print() in this module goes through the JSON-aware wrapper.
print = _pm_print


def _emit_json(payload: dict) -> None:
    """Emit exactly one JSON object to stdout."""
    global _JSON_EMITTED
    _JSON_EMITTED = True
    sys.stdout.write(json.dumps(payload, indent=2))
    sys.stdout.write("\n")
    sys.stdout.flush()


def _json_error_payload(*, argv, exit_code: int, message: str, error_code: str, details: dict | None = None, filename: str | None = None) -> dict:
    # Keep this minimal and stable. Extra noisy fields should go into details and be normalized in tests.
    return {
        "schema_version": "1.1",
        "run": {
            "argv": list(argv),
            "json_requested": True,
            "filename": filename,
        },
        "results": {
            "summary": {
                "exit_code": exit_code,
                "status": "ERROR",
                "message": message,
            },
            "error": {
                "code": error_code,
                "message": message,
                "details": details or {},
            },
        },
    }


class _ToolExit(Exception):
    """Structured termination with an exit code and JSON-friendly fields."""
    def __init__(self, exit_code: int, error_code: str, message: str, details: dict | None = None):
        super().__init__(message)
        self.exit_code = int(exit_code)
        self.error_code = str(error_code)
        self.message = str(message)
        self.details = details or {}


class GraphError(Exception):
    """A unit's graph violates the block listing contract (fatal for that unit only)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.error_code = "GRAPH_INVALID"
        self.message = str(message)
        self.details = details or {}


class SearchLimitReached(Exception):
    """Raised when DFS exceeds user-provided limits (time/calls/paths/nodes)."""
    pass


def _sha256_file(path):
    h = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def _utc_timestamp():
    # ISO 8601 UTC with microseconds
    return datetime.datetime.now(datetime.timezone.utc).isoformat().replace("+00:00", "Z")


def _run_id():
    # timestamp::pid
    return f"{_utc_timestamp()}::pid{os.getpid()}"


def _relpath(p):
    try:
        return os.path.relpath(p).replace("\\", "/")
    except ValueError:
        return str(p).replace("\\", "/")


def _extract_version_number():
    # Reads the leading "# Version NN" line at top of file.
    try:
        with open(__file__, "r", encoding="utf-8") as f:
            first = f.readline().strip()
    except OSError:
        return None
    m = re.search(r"Version\s+(\d+)", first)
    return int(m.group(1)) if m else None


def format_path(path):
    return " -> ".join(str(node) for node in path)


HELP_EPILOG = """
PRIME_MASTER(1)             User Commands             PRIME_MASTER(1)

NAME
    Prime_Master — compute prime paths for control flow graphs

SYNOPSIS
    prime_master.py [OPTIONS] FILE

DESCRIPTION
    Prime_Master reads block-level control flow graphs, keeps only the live
    blocks, enumerates every simple path (plus every path that closes a loop
    back to its own start node) and reports the prime paths: the paths that
    are not a proper contiguous subpath of any longer path. Prime paths are
    the test requirements of the prime path coverage criterion.

    Input format:
        - "FUNC NAME" starts a new unit (one function's CFG).
        - Block lines: "INDEX live|dead [SUCC ...]".
        - '#' starts a comment; blank lines are ignored.
        - Blocks before the first FUNC line form a unit named after the file.

    Block indices of a unit must run 0..k-1 and every successor must name a
    block of the same unit. Edges into or out of dead blocks are dropped.

FILTERS
    Default (no flag):
        Quadratic containment scan over every enumerated path.

    --indexed:
        Builds an index of every proper contiguous slice once, then tests
        each path by lookup (more memory, much less time on large path sets).

JSON OUTPUT
    --json
        Emit a single JSON object to stdout (schema_version 1.1). When enabled,
        human-readable output is suppressed and all logs/errors go to stderr.

        Rule: if --json is present anywhere in argv, Prime_Master will still emit
        a JSON object even if it fails before reading/parsing the input file
        (e.g., missing file or command-line usage errors).

VALIDATION
    --validate
        Runs both filters and checks that:
            - both filters select the same prime paths, in the same order
            - every --confirm-primes property holds

        If enumeration is stopped by --max-* limits, validation is INCONCLUSIVE.

CONFIRM-PRIMES
    --confirm-primes
        Check the computed prime paths against the enumerated paths:
            - every prime path is one of the enumerated paths
            - no prime path is a proper subpath of any enumerated path
            - every enumerated path is a subpath of some prime path

ENUMERATION LIMITS (applied to each unit separately)
    --max-seconds SECONDS
        Stop DFS after the given number of seconds.

    --max-calls COUNT
        Stop DFS after the given number of node expansions.

    --max-paths COUNT
        Stop DFS once recording another path would exceed COUNT.

    --max-nodes COUNT
        Skip enumeration for units with more than COUNT live nodes.

DIAGNOSTICS
    -v, --verbose
        Enable verbose tracing

    -t, --time
        Print elapsed execution time

EXIT STATUS
    0   Success. Every selected unit was analyzed (and confirmed, if asked).

    1   Failure. Invalid or missing input, an invalid unit graph, a failed
        --confirm-primes check, or failed validation.

    2   Inconclusive. Some unit stopped early due to a search limit and
        nothing failed.

    130 Interrupted by user (Ctrl+C / SIGINT).

SEE ALSO

    Ammann & Offutt, Introduction to Software Testing (prime path coverage)
"""


class CfgUnit:
    """One analyzed unit: the block listing of a single function body."""

    def __init__(self, name, line_no=None):
        self.name = name
        self.line_no = line_no
        self.entries = []               # (index, live, succs, line_no) in file order

    def add_block(self, index, live, succs, line_no=None):
        self.entries.append((index, live, list(succs), line_no))

    def block_table(self):
        """Return [(live, succs)] ordered by block index.

        Raises GraphError if indices repeat or do not run 0..k-1.
        """
        by_index = {}
        for index, live, succs, line_no in self.entries:
            if index in by_index:
                raise GraphError(
                    f"Duplicate block index {index} in unit '{self.name}'.",
                    details={"unit": self.name, "block": index, "line": line_no},
                )
            by_index[index] = (live, succs)

        expected = list(range(len(by_index)))
        if sorted(by_index) != expected:
            missing = sorted(set(expected) - set(by_index))
            raise GraphError(
                f"Block indices of unit '{self.name}' must be contiguous from 0.",
                details={"unit": self.name, "missing": missing, "indices": sorted(by_index)},
            )
        return [by_index[i] for i in expected]

    # ---------------------------------------------------------------------
    # FILE PARSING
    # ---------------------------------------------------------------------
    @staticmethod
    def load_units(filename, verbose: bool = False):
        try:
            with open(filename, 'r', encoding="utf-8") as file:
                lines = file.read().splitlines()
        except FileNotFoundError:
            # In --json mode, stdout must still be JSON. Raise a structured error and let main handle formatting.
            raise _ToolExit(
                exit_code=1,
                error_code="INPUT_NOT_FOUND",
                message=f"File '{filename}' not found.",
                details={"path": filename},
            )
        except UnicodeDecodeError as e:
            raise _ToolExit(
                exit_code=1,
                error_code="INPUT_INVALID",
                message="Input file is not valid UTF-8 text.",
                details={"path": filename, "reason": str(e)},
            )

        if not lines or all(line.strip() == "" for line in lines):
            raise _ToolExit(
                exit_code=1,
                error_code="INPUT_EMPTY",
                message="Input file is empty or contains only whitespace.",
                details={"path": filename},
            )

        units = []
        names = set()
        current = None
        block_lines = 0

        for line_no, raw in enumerate(lines, 1):
            line = raw.split("#", 1)[0].strip()
            if not line:
                continue

            # Detect control characters (tabs are ordinary separators)
            if any((ord(c) < 32 and c != "\t") or ord(c) == 127 for c in line):
                raise _ToolExit(
                    exit_code=1,
                    error_code="INPUT_INVALID",
                    message=f"Line {line_no} contains control characters.",
                    details={"line": raw, "line_no": line_no, "path": filename},
                )

            parts = line.split()

            if parts[0] == "FUNC":
                if len(parts) != 2:
                    raise _ToolExit(
                        exit_code=1,
                        error_code="INPUT_INVALID",
                        message=f"Unit header '{line}' is malformed. Expected format: 'FUNC NAME'",
                        details={"line": raw, "line_no": line_no, "path": filename},
                    )
                name = parts[1]
                if not re.match(r'^[\w.-]+$', name):
                    raise _ToolExit(
                        exit_code=1,
                        error_code="INPUT_INVALID",
                        message=f"Invalid unit name: '{name}' (contains spaces or special characters)",
                        details={"name": name, "line_no": line_no, "path": filename},
                    )
                if name in names:
                    raise _ToolExit(
                        exit_code=1,
                        error_code="INPUT_INVALID",
                        message=f"Duplicate unit name detected: '{name}'",
                        details={"name": name, "line_no": line_no, "path": filename},
                    )
                names.add(name)
                current = CfgUnit(name, line_no)
                units.append(current)
                continue

            if len(parts) < 2:
                raise _ToolExit(
                    exit_code=1,
                    error_code="INPUT_INVALID",
                    message=f"Block definition '{line}' is incomplete. Expected format: 'INDEX live|dead [SUCC ...]'",
                    details={"line": raw, "line_no": line_no, "path": filename},
                )

            index_tok, status, succ_toks = parts[0], parts[1].lower(), parts[2:]
            bad = [t for t in [index_tok] + succ_toks if not re.match(r'^\d+$', t)]
            if bad:
                raise _ToolExit(
                    exit_code=1,
                    error_code="INPUT_INVALID",
                    message=f"Invalid block index '{bad[0]}' on line {line_no} (must be a non-negative integer)",
                    details={"line": raw, "line_no": line_no, "token": bad[0], "path": filename},
                )
            if status not in ("live", "dead"):
                raise _ToolExit(
                    exit_code=1,
                    error_code="INPUT_INVALID",
                    message=f"Invalid block status '{parts[1]}' on line {line_no}. Expected 'live' or 'dead'",
                    details={"line": raw, "line_no": line_no, "path": filename},
                )

            if current is None:
                current = CfgUnit(os.path.splitext(os.path.basename(filename))[0], line_no)
                names.add(current.name)
                units.append(current)
            current.add_block(int(index_tok), status == "live", [int(t) for t in succ_toks], line_no)
            block_lines += 1

        if block_lines == 0:
            raise _ToolExit(
                exit_code=1,
                error_code="INPUT_INVALID",
                message="No units or blocks defined in the input file.",
                details={"path": filename},
            )

        if verbose:
            blocks = sum(len(u.entries) for u in units)
            print(f"[INFO] Parsed input: units={len(units)}, blocks={blocks}")

        return units


class PrimePathGraph:
    def __init__(self, n: int = 0, verbose: bool = False):
        # Graph representation (dense node ids 0..n-1)
        self.n = n
        self.graph = [[] for _ in range(n)]     # ordered successor lists
        self.block_ids = list(range(n))         # node id -> original block index

        # Path enumeration output
        self.paths = []                         # every simple and closing path (can be huge)

        # Verbose tracing controls
        self.verbose = verbose
        self.dfs_calls = 0                      # counts node expansions
        self.max_depth_seen = 0

        # Optional DFS limits (None means "no limit")
        self.max_seconds = None
        self.max_calls = None
        self.max_paths = None
        self._dfs_t0 = None                     # internal timer start for max_seconds

    def add_edge(self, u, v):
        if not (0 <= u < self.n) or not (0 <= v < self.n):
            raise GraphError(
                f"Edge {u} -> {v} refers to a node outside 0..{self.n - 1}.",
                details={"u": u, "v": v, "n": self.n},
            )
        self.graph[u].append(v)

    # ---------------------------------------------------------------------
    # NORMALIZATION
    # ---------------------------------------------------------------------
    @classmethod
    def from_blocks(cls, blocks, verbose: bool = False):
        """Build the live-node graph from [(live, succs)] indexed by block.

        Live blocks are renumbered 0..n-1 in block order; edges touching a
        dead block are dropped. A successor outside the block range is fatal.
        """
        count = len(blocks)
        for index, (_, succs) in enumerate(blocks):
            for succ in succs:
                if not (0 <= succ < count):
                    raise GraphError(
                        f"Block {index} has successor {succ} outside 0..{count - 1}.",
                        details={"block": index, "successor": succ, "block_count": count},
                    )

        live_blocks = [index for index, (live, _) in enumerate(blocks) if live]
        node_of = {block: node for node, block in enumerate(live_blocks)}

        g = cls(len(live_blocks), verbose=verbose)
        g.block_ids = live_blocks
        dropped = 0
        for node, block in enumerate(live_blocks):
            for succ in blocks[block][1]:
                if succ in node_of:
                    g.add_edge(node, node_of[succ])
                else:
                    dropped += 1

        if verbose:
            print(f"[INFO] Normalized graph: blocks={count}, live_nodes={g.n}, "
                  f"edges={g.edge_count()}, dropped_edges={dropped}")
        return g

    @classmethod
    def from_unit(cls, unit, verbose: bool = False):
        return cls.from_blocks(unit.block_table(), verbose=verbose)

    # ---------------------------------------------------------------------
    # DIAGNOSTICS (informational only; never feed enumeration)
    # ---------------------------------------------------------------------
    def edges(self):
        return [(u, v) for u in range(self.n) for v in self.graph[u]]

    def edge_count(self):
        return sum(len(succs) for succs in self.graph)

    def initial_nodes(self):
        has_incoming = [False] * self.n
        for u in range(self.n):
            for v in self.graph[u]:
                has_incoming[v] = True
        return [i for i in range(self.n) if not has_incoming[i]]

    def final_nodes(self):
        return [i for i in range(self.n) if not self.graph[i]]

    # ---------------------------------------------------------------------
    # PATH ENUMERATION (exponential in the worst case)
    # ---------------------------------------------------------------------
    def enumerate_paths(self, starts=None):
        """Enumerate every simple path and every closing path from every node.

        starts restricts the walk to the given start nodes (default: all, ascending).
        """
        self.paths = []
        self.dfs_calls = 0
        self.max_depth_seen = 0
        self._dfs_t0 = time.perf_counter()

        if self.verbose:
            lims = []
            if self.max_seconds is not None:
                lims.append(f"max_seconds={self.max_seconds}")
            if self.max_calls is not None:
                lims.append(f"max_calls={self.max_calls}")
            if self.max_paths is not None:
                lims.append(f"max_paths={self.max_paths}")
            lims_str = (", ".join(lims)) if lims else "no limits"
            print(f"[INFO] Starting DFS path enumeration from {self.n} nodes ({lims_str})...")

        for start in (range(self.n) if starts is None else starts):
            self._walk_from(start)

        if self.verbose:
            print(f"[INFO] DFS complete: calls={self.dfs_calls}, total_paths={len(self.paths)}")

        return self.paths

    def _check_limits(self):
        if self.max_calls is not None and self.dfs_calls > self.max_calls:
            raise SearchLimitReached(f"DFS call limit exceeded ({self.max_calls}).")
        if self.max_seconds is not None:
            elapsed = time.perf_counter() - self._dfs_t0
            if elapsed > self.max_seconds:
                raise SearchLimitReached(f"Time limit exceeded ({self.max_seconds} seconds).")

    def _record(self, path):
        if self.max_paths is not None and len(self.paths) >= self.max_paths:
            raise SearchLimitReached(f"Path limit exceeded ({self.max_paths}).")
        self.paths.append(tuple(path))

    def _expand(self, path):
        self.dfs_calls += 1
        self._check_limits()
        if len(path) > self.max_depth_seen:
            self.max_depth_seen = len(path)

        if self.verbose and self.dfs_calls % 10000 == 0:
            print(f"[DFS] calls={self.dfs_calls}, paths_found={len(self.paths)}, depth={len(path)}")

        self._record(path)

    def _walk_from(self, start):
        # Explicit stack of successor iterators; path and on_path mirror it.
        path = [start]
        on_path = {start}
        self._expand(path)
        stack = [iter(self.graph[start])]

        while stack:
            for nxt in stack[-1]:
                if nxt == start and len(path) > 1:
                    self._record(path + [nxt])
                elif nxt not in on_path:
                    path.append(nxt)
                    on_path.add(nxt)
                    self._expand(path)
                    stack.append(iter(self.graph[nxt]))
                    break
            else:
                stack.pop()
                on_path.discard(path.pop())


# -------------------------------------------------------------------------
# PRIME PATH FILTERS
# -------------------------------------------------------------------------
def is_proper_subpath(sub, full):
    """True iff sub is strictly shorter than full and occurs in it contiguously."""
    if len(sub) >= len(full):
        return False
    k = len(sub)
    for i in range(len(full) - k + 1):
        if tuple(full[i:i + k]) == tuple(sub):
            return True
    return False


def is_prime_path(path, all_paths):
    for other in all_paths:
        if len(other) > len(path) and is_proper_subpath(path, other):
            return False
    return True


def proper_subpath_index(paths):
    """Every contiguous slice of every path that is shorter than its path."""
    index = set()
    for q in paths:
        q = tuple(q)
        n = len(q)
        for i in range(n):
            for j in range(i + 1, n + 1):
                if j - i < n:
                    index.add(q[i:j])
    return index


def filter_prime_paths(paths, strategy: str = "quadratic"):
    """Keep the paths that are not a proper subpath of any other path (discovery order)."""
    if strategy == "quadratic":
        return [p for p in paths if is_prime_path(p, paths)]
    if strategy == "indexed":
        index = proper_subpath_index(paths)
        return [p for p in paths if tuple(p) not in index]
    raise ValueError(f"Unknown prime path filter strategy: {strategy!r}")


def unique_paths(paths):
    seen = set()
    out = []
    for p in paths:
        t = tuple(p)
        if t not in seen:
            seen.add(t)
            out.append(p)
    return out


def confirm_primes(paths, primes):
    """Check membership, maximality and subsumption of primes against paths."""
    path_set = {tuple(p) for p in paths}
    invented = [list(p) for p in primes if tuple(p) not in path_set]

    contained = proper_subpath_index(paths)
    not_maximal = [list(p) for p in primes if tuple(p) in contained]

    covered = set()
    for r in primes:
        r = tuple(r)
        for i in range(len(r)):
            for j in range(i + 1, len(r) + 1):
                covered.add(r[i:j])
    uncovered = [list(p) for p in unique_paths(paths) if tuple(p) not in covered]

    if invented:
        reason = "prime path not among enumerated paths"
    elif not_maximal:
        reason = "prime path is a proper subpath of another path"
    elif uncovered:
        reason = "enumerated path not covered by any prime path"
    else:
        reason = None

    return {
        "enabled": True,
        "pass": reason is None,
        "failure_reason": reason,
        "invented": invented,
        "not_maximal": not_maximal,
        "uncovered": uncovered,
    }


# -------------------------------------------------------------------------
# UNIT ANALYSIS
# -------------------------------------------------------------------------
def _empty_unit_analysis(unit, strategy, options):
    return {
        "name": unit.name,
        "status": "OK",
        "message": None,
        "graph": None,
        "paths": {"path_count": 0, "paths": []},
        "prime_paths": {
            "strategy": strategy,
            "unique": bool(options.unique),
            "prime_count": 0,
            "paths": [],
        },
        "confirm_primes": {"enabled": bool(options.confirm_primes), "pass": None, "failure_reason": None},
        "validation": None,
        "error": None,
        "enumeration_stats": {"dfs_calls": None, "paths_found": None, "max_depth": None},
        "performance": {"elapsed_seconds": None, "elapsed_nanoseconds": None},
    }


def _graph_dict(graph, block_count):
    return {
        "block_count": block_count,
        "node_count": graph.n,
        "edge_count": graph.edge_count(),
        "block_ids": list(graph.block_ids),
        "edges": [[u, v] for (u, v) in graph.edges()],
        "initial": graph.initial_nodes(),
        "final": graph.final_nodes(),
    }


def analyze_unit(unit, options):
    """Run normalize -> enumerate -> filter for one unit.

    Returns (analysis_dict, graph); graph is None when the unit is invalid.
    A unit is either fully analyzed or reports no paths at all.
    """
    t0 = time.perf_counter_ns()
    strategy = "indexed" if options.indexed else "quadratic"
    analysis = _empty_unit_analysis(unit, strategy, options)
    graph = None

    def _finish():
        elapsed_ns = time.perf_counter_ns() - t0
        analysis["performance"]["elapsed_seconds"] = elapsed_ns / 1_000_000_000.0
        analysis["performance"]["elapsed_nanoseconds"] = elapsed_ns
        if graph is not None:
            analysis["enumeration_stats"] = {
                "dfs_calls": graph.dfs_calls,
                "paths_found": len(graph.paths),
                "max_depth": graph.max_depth_seen,
            }
        return analysis, graph

    try:
        graph = PrimePathGraph.from_unit(unit, verbose=options.verbose)
    except GraphError as e:
        analysis["status"] = "ERROR"
        analysis["message"] = e.message
        analysis["error"] = {"code": e.error_code, "message": e.message, "details": e.details}
        return _finish()

    analysis["graph"] = _graph_dict(graph, len(unit.entries))

    graph.max_seconds = options.max_seconds
    graph.max_calls = options.max_calls
    graph.max_paths = options.max_paths

    try:
        if options.max_nodes is not None and graph.n > options.max_nodes:
            raise SearchLimitReached(f"Node limit exceeded ({graph.n} > {options.max_nodes}).")
        paths = graph.enumerate_paths()
    except SearchLimitReached as e:
        analysis["status"] = "INCONCLUSIVE"
        analysis["message"] = f"Stopped early due to search limits: {e}"
        analysis["error"] = {"code": "SEARCH_LIMIT", "message": str(e), "details": {}}
        if options.validate:
            analysis["validation"] = {
                "status": "INCONCLUSIVE",
                "reason": f"enumeration incomplete ({e})",
                "agreement": None,
            }
        return _finish()

    if options.verbose:
        print(f"[INFO] Filtering prime paths ({strategy})...")

    primes = filter_prime_paths(paths, strategy)

    if options.validate:
        other = "quadratic" if strategy == "indexed" else "indexed"
        primes_other = filter_prime_paths(paths, other)
        agree = (primes == primes_other)
        confirmation = confirm_primes(paths, primes)
        if agree and confirmation["pass"]:
            status, reason = "PASS", "both filters produced the same valid prime paths"
        elif not agree:
            status, reason = "FAIL", f"{strategy} and {other} filters disagree"
        else:
            status, reason = "FAIL", confirmation["failure_reason"]
        analysis["validation"] = {
            "status": status,
            "reason": reason,
            "agreement": {
                "prime_paths": agree,
                "prime_count": [len(primes), len(primes_other)],
            },
        }
        analysis["confirm_primes"] = confirmation
        analysis["confirm_primes"]["enabled"] = bool(options.confirm_primes)
    elif options.confirm_primes:
        analysis["confirm_primes"] = confirm_primes(paths, primes)

    if options.verbose:
        print(f"[INFO] Prime paths: {len(primes)} of {len(paths)} paths")

    shown = unique_paths(primes) if options.unique else primes
    analysis["paths"] = {"path_count": len(paths), "paths": [list(p) for p in paths]}
    analysis["prime_paths"]["prime_count"] = len(shown)
    analysis["prime_paths"]["paths"] = [list(p) for p in shown]
    analysis["message"] = "Prime paths computed successfully"
    return _finish()


def unit_failed(analysis):
    if analysis["status"] == "ERROR":
        return True
    if analysis["confirm_primes"].get("pass") is False:
        return True
    validation = analysis.get("validation") or {}
    return validation.get("status") == "FAIL"


def overall_result(analyses):
    """Return (exit_code, status, message) for a run over several units."""
    errors = [a["name"] for a in analyses if a["status"] == "ERROR"]
    failed = [a["name"] for a in analyses if a["status"] != "ERROR" and unit_failed(a)]
    inconclusive = [a["name"] for a in analyses if a["status"] == "INCONCLUSIVE"]

    if errors:
        return 1, "ERROR", f"Invalid unit graph: {', '.join(errors)}"
    if failed:
        return 1, "FAIL", f"Prime path checks failed: {', '.join(failed)}"
    if inconclusive:
        return 2, "INCONCLUSIVE", f"Stopped early due to search limits: {', '.join(inconclusive)}"
    return 0, "OK", "Prime paths computed successfully"


# -------------------------------------------------------------------------
# REPORTING
# -------------------------------------------------------------------------
def print_unit_report(unit, graph, analysis, options):
    print(f"=== Function: {unit.name} ===")

    print("\nCFG Blocks:")
    for index, live, succs, _ in sorted(unit.entries, key=lambda e: e[0]):
        print(f"  Block {index}" + (" (live)" if live else ""))
        if succs:
            print("    -> " + ", ".join(f"Block {s}" for s in succs))

    if analysis["status"] == "ERROR":
        print(f"Error: unit '{unit.name}': {analysis['message']}", file=sys.stderr)
        print()
        return

    print("\nGraph Info:")
    print("Edges:")
    for (u, v) in graph.edges():
        print(f"  {u} {v}")
    print("Initial nodes: " + ", ".join(str(i) for i in graph.initial_nodes()))
    print("Final nodes: " + ", ".join(str(i) for i in graph.final_nodes()))

    if analysis["status"] == "INCONCLUSIVE":
        print(analysis["message"])
        print(f"Progress so far: calls={graph.dfs_calls}, paths_found={len(graph.paths)}")
        if analysis.get("validation"):
            print("Validation result: INCONCLUSIVE (enumeration did not complete within limits)")
        print()
        return

    if options.all_paths:
        print("\nAll Paths:")
        for i, path in enumerate(analysis["paths"]["paths"], 1):
            print(f"  {i}: {format_path(path)}")

    print("\nPrime Paths:")
    for i, path in enumerate(analysis["prime_paths"]["paths"], 1):
        print(f"  {i}: {format_path(path)}")

    print(f"Number of Nodes: {graph.n}")
    print(f"Number of Edges: {graph.edge_count()}")
    print(f"Number of Paths Found: {analysis['paths']['path_count']}")
    print(f"Number of Prime Paths: {analysis['prime_paths']['prime_count']}")

    confirmation = analysis["confirm_primes"]
    if options.confirm_primes or options.validate:
        print(f"=== CONFIRM-PRIMES ({unit.name}) ===")
        print(f"Prime paths not enumerated: {len(confirmation.get('invented', []))}")
        print(f"Prime paths not maximal: {len(confirmation.get('not_maximal', []))}")
        print(f"Paths not covered by a prime path: {len(confirmation.get('uncovered', []))}")
        if confirmation["pass"]:
            print("Result: PASS (prime paths are enumerated, maximal and cover every path)")
        else:
            print(f"Result: FAIL ({confirmation['failure_reason']})")

    if analysis.get("validation"):
        validation = analysis["validation"]
        print(f"Validation result: {validation['status']} ({validation['reason']})")
    print()


def make_json_payload(args, argv, analyses, exit_code, status, message, elapsed_seconds):
    filename_abs = args.filename
    payload = {
        "schema_version": "1.1",
        "tool": {
            "name": "Prime_Master",
            "version": _extract_version_number(),
            "source_file": _relpath(__file__),
        },
        "run": {
            "run_id": _run_id(),
            "timestamp_utc": _utc_timestamp(),
            "host": socket.gethostname(),
            "platform": platform.platform()
        },
        "input": {
            "file_path": _relpath(filename_abs),
            "file_name": os.path.basename(filename_abs),
            "sha256": _sha256_file(filename_abs),
            "units": [a["name"] for a in analyses],
        },
        "options": {
            "argv": list(argv),
            "filter": ("both" if args.validate else ("indexed" if args.indexed else "quadratic")),
            "unique": bool(args.unique),
            "verbose": bool(args.verbose),
            "time_enabled": bool(args.time),
            "confirm_primes": bool(args.confirm_primes),
            "validate": bool(args.validate),
            "json_enabled": True
        },
        "limits": {
            "max_seconds": args.max_seconds,
            "max_calls": args.max_calls,
            "max_paths": args.max_paths,
            "max_nodes": args.max_nodes
        },
        "results": {
            "summary": {
                "exit_code": exit_code,
                "status": status,
                "message": message,
                "unit_count": len(analyses),
                "elapsed_seconds": elapsed_seconds,
            },
            "units": analyses
        },
        "diagnostics": {
            "warnings": [],
            "enumeration_stats": {
                "dfs_calls": sum(a["enumeration_stats"]["dfs_calls"] or 0 for a in analyses),
                "paths_found": sum(a["enumeration_stats"]["paths_found"] or 0 for a in analyses),
                "max_depth": max([a["enumeration_stats"]["max_depth"] or 0 for a in analyses], default=0),
            }
        }
    }
    return payload


def build_parser(prog=None):
    parser = argparse.ArgumentParser(
        prog=prog,
        description="Compute prime paths from control flow graphs.",
        epilog=HELP_EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument("filename", help="Input CFG block listing file")
    parser.add_argument("-t", "--time", action="store_true", help="Print elapsed execution time")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose tracing while running")
    parser.add_argument("--indexed", action="store_true",
                        help="Use the slice-index filter instead of the quadratic containment scan")
    parser.add_argument("--validate", action="store_true",
                        help="Run both filters and validate the prime path properties")
    parser.add_argument("--confirm-primes", action="store_true",
                        help="Confirm the prime paths are enumerated, maximal and cover every path")
    parser.add_argument("--unique", action="store_true",
                        help="Drop repeated prime paths from the output (first occurrence kept)")
    parser.add_argument("--all-paths", action="store_true",
                        help="Also print every enumerated path (human-readable output only)")
    parser.add_argument("--unit", action="append", default=None, metavar="NAME",
                        help="Analyze only the named unit (repeatable)")
    parser.add_argument("--json", action="store_true",
                        help="Emit machine-readable JSON (schema_version 1.1) to stdout")

    parser.add_argument("--max-seconds", type=float, default=None,
                        help="Stop DFS after this many seconds (per unit)")
    parser.add_argument("--max-calls", type=int, default=None,
                        help="Stop DFS after this many node expansions (per unit)")
    parser.add_argument("--max-paths", type=int, default=None,
                        help="Stop DFS after recording this many paths (per unit)")
    parser.add_argument("--max-nodes", type=int, default=None,
                        help="Skip units with more than this many live nodes")
    return parser


def parse_args(argv=None):
    return build_parser().parse_args(argv)


def select_units(units, names):
    if not names:
        return units
    known = {u.name for u in units}
    missing = [n for n in names if n not in known]
    if missing:
        raise _ToolExit(
            exit_code=1,
            error_code="INPUT_INVALID",
            message=f"Unit '{missing[0]}' not found in input file.",
            details={"missing": missing, "available": [u.name for u in units]},
        )
    return [u for u in units if u.name in names]


def main(argv=None):
    global JSON_REQUESTED, _JSON_EMITTED
    argv = sys.argv[1:] if argv is None else list(argv)
    JSON_REQUESTED = ("--json" in argv)
    _JSON_EMITTED = False
    start_time_ns = time.perf_counter_ns()

    # Early intercept: in JSON mode, --help/-h returns one JSON object (and does not print argparse help text).
    if JSON_REQUESTED and ("--help" in argv or "-h" in argv):
        help_text = build_parser(prog=os.path.basename(__file__)).format_help()
        _emit_json({
            "schema_version": "1.1",
            "run": {"argv": argv, "tool": {"name": "Prime_Master", "version": _extract_version_number()}},
            "options": {"json": True},
            "results": {"summary": {"exit_code": 0, "status": "OK", "message": "Help text"}, "help": {"text": help_text}},
        })
        return 0

    args = None
    try:
        # Parse args. If --json was requested, emit JSON even for CLI/usage failures.
        try:
            args = parse_args(argv)
            if args.json:
                # argparse also accepts abbreviations such as --js
                JSON_REQUESTED = True
                args.verbose = False
        except SystemExit as e:
            # argparse terminated early (usage error). In JSON mode we still emit exactly one JSON object.
            if JSON_REQUESTED:
                _emit_json(_json_error_payload(
                    argv=argv,
                    exit_code=1,
                    message="Command-line usage error.",
                    error_code="CLI_USAGE",
                    details={"system_exit_code": getattr(e, "code", None)},
                ))
                return 1
            raise

        units = CfgUnit.load_units(args.filename, verbose=args.verbose)
        units = select_units(units, args.unit)

        analyses = []
        for unit in units:
            if args.verbose:
                print(f"[INFO] Analyzing unit '{unit.name}' ({len(unit.entries)} blocks)")
            analysis, graph = analyze_unit(unit, args)
            analyses.append(analysis)
            if not args.json:
                print_unit_report(unit, graph, analysis, args)

        exit_code, status, message = overall_result(analyses)
        elapsed = (time.perf_counter_ns() - start_time_ns) / 1_000_000_000.0

        if args.json:
            _emit_json(make_json_payload(
                args=args, argv=argv, analyses=analyses,
                exit_code=exit_code, status=status, message=message,
                elapsed_seconds=elapsed,
            ))
            return exit_code

        if status != "OK":
            print(f"Result: {status} ({message})")
        if args.time:
            print(f"Elapsed Time (seconds): {elapsed:.9f} (ns={int(elapsed * 1_000_000_000)})")
        return exit_code

    except _ToolExit as e:
        # Known/expected failures (missing file, parse error, etc.)
        if JSON_REQUESTED:
            _emit_json(_json_error_payload(
                argv=argv,
                exit_code=e.exit_code,
                message=e.message,
                error_code=e.error_code,
                details=e.details,
                filename=getattr(args, "filename", None),
            ))
            return e.exit_code
        # Non-JSON mode: human-readable to stderr
        print(f"Error: {e.message}", file=sys.stderr)
        return e.exit_code

    except KeyboardInterrupt:
        # Ctrl+C / SIGINT
        if JSON_REQUESTED:
            _emit_json(_json_error_payload(
                argv=argv,
                exit_code=130,
                message="Interrupted by user (Ctrl+C / SIGINT).",
                error_code="INTERRUPTED",
                filename=getattr(args, "filename", None),
            ))
            return 130
        print("Error: Interrupted by user.", file=sys.stderr)
        return 130

    except Exception as e:
        # Unexpected crash: keep traceback on stderr; JSON envelope on stdout if requested.
        if not JSON_REQUESTED or _JSON_EMITTED:
            raise
        _traceback.print_exc(file=sys.stderr)
        _emit_json(_json_error_payload(
            argv=argv,
            exit_code=1,
            message=f"Internal error: {type(e).__name__}",
            error_code="INTERNAL",
            details={"exception_type": type(e).__name__},
            filename=getattr(args, "filename", None),
        ))
        return 1


if __name__ == "__main__":
    sys.exit(main())
