"""
Text apply pipeline - normalize, validate, parse and swap the schema graph
"""
import logging
import threading
import time
from typing import Callable, List, Optional, Tuple

from .errors import ApplyInProgressError, SchemaSyncError, ValidationError
from .schema_model import SchemaGraph, Settings
from .sql_normalizer import normalize_sql
from .sql_parser import parse_sql
from .sql_validator import ValidationResult, validate_sql

logger = logging.getLogger(__name__)


class SchemaStore:
    """In-memory holder of the current graph, its SQL text and editor settings"""

    def __init__(self, graph: Optional[SchemaGraph] = None, settings: Optional[Settings] = None,
                 sql: str = ''):
        self._graph = graph or SchemaGraph()
        self.settings = settings or Settings()
        self.sql = sql
        self._lock = threading.RLock()
        # held for the whole duration of an apply, including the typing reveal
        self.apply_lock = threading.Lock()

    @property
    def is_applying(self) -> bool:
        return self.apply_lock.locked()

    def snapshot(self) -> SchemaGraph:
        with self._lock:
            return self._graph.copy()

    def replace_graph(self, graph: SchemaGraph, sql: Optional[str] = None):
        """Swap in a whole new graph in one step"""
        with self._lock:
            self._graph = graph
            if sql is not None:
                self.sql = sql
        logger.info(f"Schema graph replaced: {graph}")

    def update_graph(self, edit: Callable[[SchemaGraph], None]) -> SchemaGraph:
        """
        Apply a manual edit to a copy of the graph and store the result

        Raises:
            ApplyInProgressError: a SQL apply is running
        """
        # an apply holds apply_lock from its snapshot until replace_graph
        if not self.apply_lock.acquire(blocking=False):
            raise ApplyInProgressError("Schema is being updated from SQL; try again when it finishes")
        try:
            with self._lock:
                graph = self._graph.copy()
                edit(graph)
                self._graph = graph
                return graph.copy()
        finally:
            self.apply_lock.release()


class ApplyResult:
    """Graph produced by an apply, with the SQL actually parsed and every warning"""

    def __init__(self, graph: SchemaGraph, sql: str, warnings: Optional[List[str]] = None):
        self.graph = graph
        self.sql = sql
        self.warnings = list(warnings or [])

    def to_dict(self):
        return {"graph": self.graph.to_dict(), "sql": self.sql, "warnings": list(self.warnings)}

    def __repr__(self):
        return f"ApplyResult({self.graph}, warnings={len(self.warnings)})"


def prepare_sql(sql: str, fix: bool = True) -> Tuple[str, ValidationResult]:
    """
    Normalize then validate SQL text

    Returns:
        Tuple of (text to parse, validation result)

    Raises:
        ValidationError: blocking findings were reported
    """
    text = normalize_sql(sql) if fix and sql else sql
    if fix and text != sql:
        logger.info("SQL was auto-fixed before validation")
    result = validate_sql(text)
    if not result.is_valid:
        raise ValidationError(result.findings)
    return text, result


def apply_sql(sql: str, previous: Optional[SchemaGraph] = None, fix: bool = True) -> ApplyResult:
    """Run the whole pipeline without touching any store"""
    text, validation = prepare_sql(sql, fix=fix)
    graph, parse_warnings = parse_sql(text, previous)
    return ApplyResult(graph, text, validation.warnings + parse_warnings)


class SqlApplyController:
    """
    Applies user-edited or AI-suggested SQL to a SchemaStore

    Only one apply runs at a time. AI text is revealed chunk by chunk before
    it is parsed, and can be cancelled until the graph is committed.
    """

    def __init__(self, store: SchemaStore, chunk_size: int = 48, interval: float = 0.015,
                 sleep: Optional[Callable[[float], None]] = None, fix: bool = True):
        if chunk_size < 1:
            raise ValueError("chunk_size must be positive")
        self.store = store
        self.chunk_size = chunk_size
        self.interval = interval
        self.sleep = sleep or time.sleep
        self.fix = fix
        self.applied_sql = store.sql
        self.editable_sql = store.sql
        self.error: Optional[str] = None
        self._cancel = threading.Event()

    @property
    def is_applying(self) -> bool:
        return self.store.is_applying

    def _acquire(self):
        if not self.store.apply_lock.acquire(blocking=False):
            raise ApplyInProgressError("Another SQL apply is already running")

    def _commit(self, sql: str) -> ApplyResult:
        try:
            result = apply_sql(sql, self.store.snapshot(), fix=self.fix)
        except ValidationError as e:
            self.error = str(e)
            logger.warning(f"SQL apply rejected: {e}")
            raise
        except SchemaSyncError as e:
            self.error = f"Failed to parse SQL: {e}"
            logger.warning(self.error)
            raise

        self.store.replace_graph(result.graph, result.sql)
        self.applied_sql = result.sql
        self.editable_sql = result.sql
        self.error = None
        for warning in result.warnings:
            logger.info(f"Apply warning: {warning}")
        return result

    def apply_text(self, sql: str) -> ApplyResult:
        """Apply edited SQL immediately"""
        self._acquire()
        try:
            self.editable_sql = sql
            return self._commit(sql)
        finally:
            self.store.apply_lock.release()

    def apply_ai_sql(self, sql: str, on_chunk: Optional[Callable[[str], None]] = None) -> Optional[ApplyResult]:
        """
        Reveal AI-suggested SQL in fixed-size chunks, then apply it

        Returns:
            ApplyResult, or None when cancelled before commit
        """
        self._acquire()
        self._cancel.clear()
        previous_text = self.editable_sql
        try:
            revealed = ''
            for start in range(0, len(sql), self.chunk_size):
                if self._cancel.is_set():
                    break
                chunk = sql[start:start + self.chunk_size]
                revealed += chunk
                self.editable_sql = revealed
                if on_chunk:
                    on_chunk(chunk)
                self.sleep(self.interval)

            if self._cancel.is_set():
                self.editable_sql = previous_text
                logger.info("AI SQL apply cancelled before commit")
                return None
            return self._commit(sql)
        finally:
            self._cancel.clear()
            self.store.apply_lock.release()

    def cancel(self) -> bool:
        """Stop a running reveal; returns False when nothing was running"""
        if not self.is_applying:
            return False
        self._cancel.set()
        return True
