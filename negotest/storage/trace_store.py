"""
TraceStore - Storage layer for negotest.

Keeps every persisted negotiation trace, frame by frame, keyed by
(scenario, algorithm, revision), plus the comparisons made between them.
"""

import sqlite3
import json
import logging
from pathlib import Path
from typing import Optional, List
from datetime import datetime

from negotest.errors import TraceConflictError
from negotest.models.comparison import TraceDiff
from negotest.models.trace import (
    Algorithm,
    Frame,
    FrameDirection,
    FrameKind,
    NegotiationTrace,
    extract_object_ids,
)

logger = logging.getLogger(__name__)


class TraceStore:
    """
    SQLite storage for negotiation traces.

    Traces are write-once: saving the same content again is a no-op,
    saving different content under an existing key raises
    TraceConflictError.
    """

    def __init__(self, db_path: str):
        """
        Initialize TraceStore.

        Args:
            db_path: SQLite database file (":memory:" for a private store)
        """
        self.db_path = db_path
        self.conn = sqlite3.connect(db_path, check_same_thread=False)
        self.conn.row_factory = sqlite3.Row  # Enable dict-like access
        self.conn.execute("PRAGMA foreign_keys = ON")
        self._init_schema()

    def _init_schema(self):
        """Load and execute schema.sql"""
        schema_path = Path(__file__).parent / "schema.sql"
        with open(schema_path) as f:
            self.conn.executescript(f.read())
        self.conn.commit()

    # ==================== Traces ====================

    def insert_trace(self, trace: NegotiationTrace, revision: str = "") -> int:
        """
        Persist a trace and its frames.

        Returns:
            trace_id of the stored (or already stored, identical) trace
        """
        existing = self.conn.execute("""
            SELECT trace_id, digest FROM nt_traces
            WHERE scenario = ? AND algorithm = ? AND revision = ?
        """, (trace.scenario, trace.algorithm.value, revision)).fetchone()

        if existing:
            if existing["digest"] != trace.digest:
                raise TraceConflictError(
                    f"Trace {trace.scenario}/{trace.algorithm.value}@{revision or '-'} "
                    f"already recorded with different content"
                )
            logger.debug(f"Trace {trace.scenario}/{trace.algorithm.value} unchanged")
            return existing["trace_id"]

        cursor = self.conn.execute("""
            INSERT INTO nt_traces (
                scenario, algorithm, revision, tips, tip_ids, exit_status,
                have_count, round_count, digest, names, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            trace.scenario,
            trace.algorithm.value,
            revision,
            json.dumps(list(trace.tips)),
            json.dumps(list(trace.tip_ids)),
            trace.exit_status,
            trace.have_count,
            trace.round_count,
            trace.digest,
            json.dumps(trace.names, sort_keys=True) if trace.names else None,
            int(datetime.now().timestamp()),
        ))
        trace_id = cursor.lastrowid

        self.conn.executemany("""
            INSERT INTO nt_frames (trace_id, frame_index, direction, kind, payload)
            VALUES (?, ?, ?, ?, ?)
        """, [
            (trace_id, f.index, f.direction.value, f.kind.value, f.payload)
            for f in trace.frames
        ])
        self.conn.commit()
        return trace_id

    def get_trace(self, scenario: str, algorithm: str, revision: str = "") -> Optional[NegotiationTrace]:
        """Get trace by key"""
        row = self.conn.execute("""
            SELECT * FROM nt_traces
            WHERE scenario = ? AND algorithm = ? AND revision = ?
        """, (scenario, algorithm, revision)).fetchone()

        return self._row_to_trace(row) if row else None

    def list_traces(self, scenario: Optional[str] = None, revision: Optional[str] = None) -> List[dict]:
        """List trace summaries (no frames), optionally filtered"""
        query = """
            SELECT trace_id, scenario, algorithm, revision, tips, tip_ids, exit_status,
                   have_count, round_count, digest, created_at
            FROM nt_traces WHERE 1 = 1
        """
        params = []

        if scenario:
            query += " AND scenario = ?"
            params.append(scenario)
        if revision is not None:
            query += " AND revision = ?"
            params.append(revision)

        query += " ORDER BY scenario, algorithm, revision"

        rows = self.conn.execute(query, params).fetchall()
        results = []
        for row in rows:
            result = dict(row)
            result["tips"] = json.loads(result["tips"])
            result["tip_ids"] = json.loads(result["tip_ids"])
            results.append(result)
        return results

    def delete_trace(self, scenario: str, algorithm: str, revision: str = "") -> bool:
        """Delete a trace (cascades to its frames)"""
        cursor = self.conn.execute("""
            DELETE FROM nt_traces
            WHERE scenario = ? AND algorithm = ? AND revision = ?
        """, (scenario, algorithm, revision))
        self.conn.commit()
        return cursor.rowcount > 0

    # ==================== Comparisons ====================

    def insert_comparison(self, diff: TraceDiff) -> str:
        """Store a comparison result; re-storing the same comparison is a no-op"""
        self.conn.execute("""
            INSERT OR IGNORE INTO nt_comparisons (
                comparison_id, scenario, baseline_label, candidate_label,
                identical, root_cause_index, summary, created_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            diff.comparison_id,
            diff.scenario,
            diff.baseline_label,
            diff.candidate_label,
            1 if diff.identical else 0,
            diff.root_cause_index,
            json.dumps(diff.summary(), sort_keys=True),
            int(datetime.now().timestamp()),
        ))
        self.conn.commit()
        return diff.comparison_id

    def get_comparison_summary(self, comparison_id: str) -> Optional[dict]:
        row = self.conn.execute("""
            SELECT * FROM nt_comparisons WHERE comparison_id = ?
        """, (comparison_id,)).fetchone()
        if not row:
            return None
        result = dict(row)
        result["identical"] = bool(result["identical"])
        result["summary"] = json.loads(result["summary"])
        return result

    def list_comparisons(self, scenario: Optional[str] = None, mismatched_only: bool = False) -> List[dict]:
        query = "SELECT * FROM nt_comparisons WHERE 1 = 1"
        params = []

        if scenario:
            query += " AND scenario = ?"
            params.append(scenario)
        if mismatched_only:
            query += " AND identical = 0"

        query += " ORDER BY created_at DESC"

        rows = self.conn.execute(query, params).fetchall()
        results = []
        for row in rows:
            result = dict(row)
            result["identical"] = bool(result["identical"])
            result["summary"] = json.loads(result["summary"])
            results.append(result)
        return results

    # ==================== Row → dataclass ====================

    def _row_to_trace(self, row) -> NegotiationTrace:
        frame_rows = self.conn.execute("""
            SELECT * FROM nt_frames WHERE trace_id = ? ORDER BY frame_index ASC
        """, (row["trace_id"],)).fetchall()

        frames = tuple(
            Frame(
                index=f["frame_index"],
                direction=FrameDirection(f["direction"]),
                kind=FrameKind(f["kind"]),
                payload=f["payload"],
                object_ids=extract_object_ids(f["payload"]),
            )
            for f in frame_rows
        )
        return NegotiationTrace(
            scenario=row["scenario"],
            algorithm=Algorithm(row["algorithm"]),
            tips=tuple(json.loads(row["tips"])),
            tip_ids=tuple(json.loads(row["tip_ids"])),
            frames=frames,
            exit_status=row["exit_status"],
            names=json.loads(row["names"]) if row["names"] else {},
        )

    # ==================== Lifecycle ====================

    def close(self):
        self.conn.close()
