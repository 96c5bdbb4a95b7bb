# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Append-only ledger — sequencing, partial lines, incremental fold."""

import json
import threading
from typing import List

import pytest

from patterns.ledger import EventLog, Ledger
from patterns.schemas import LedgerEvent, ReverieModel, load_validated


class Tally(ReverieModel):
    user_id: str
    values: List[int] = []
    applied_seq: int = 0


class TallyLedger(Ledger[Tally]):
    category = "tally"
    summary_schema = Tally

    def __init__(self):
        super().__init__()
        self.applied = 0

    def empty(self, user_id):
        return Tally(user_id=user_id)

    def apply(self, summary, event):
        self.applied += 1
        summary.values.append(event.data["v"])


@pytest.fixture
def log(tmp_path):
    return EventLog(tmp_path / "log" / "events.jsonl")


class TestEventLog:

    def test_append_assigns_positions(self, log):
        ids = [log.append("x", {"v": i}) for i in range(3)]
        events = log.read()
        assert [e.seq for e in events] == [1, 2, 3]
        assert [e.event_id for e in events] == ids
        assert len(set(ids)) == 3

    def test_read_after_seq(self, log):
        for i in range(4):
            log.append("x", {"v": i})
        assert [e.data["v"] for e in log.read(after_seq=2)] == [2, 3]

    def test_missing_file(self, log):
        assert log.read() == []

    def test_partial_last_line_ignored(self, log):
        log.append("x", {"v": 1})
        with open(log.path, "a") as f:
            f.write('{"event_id": "half", "kind": "x"')
        assert [e.seq for e in log.read()] == [1]

    def test_corrupt_line_keeps_its_seq(self, log):
        log.append("x", {"v": 1})
        with open(log.path, "a") as f:
            f.write("not json\n")
        log.append("x", {"v": 3})
        assert [e.seq for e in log.read()] == [1, 3]

    def test_recorded_passthrough(self, log):
        log.append("x", {}, recorded="2026-01-01T00:00:00")
        assert log.read()[0].recorded == "2026-01-01T00:00:00"

    def test_concurrent_appends_keep_every_line(self, log):
        def writer(n):
            for i in range(25):
                log.append("x", {"v": n * 100 + i})

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        events = log.read()
        assert len(events) == 100
        assert len({e.data["v"] for e in events}) == 100


class TestLedger:

    def test_load_folds_and_persists(self):
        ledger = TallyLedger()
        for v in (1, 2, 3):
            ledger.append("u1", "x", {"v": v})
        summary = ledger.load("u1")
        assert summary.values == [1, 2, 3]
        assert summary.applied_seq == 3

        saved = load_validated(ledger.summary_path("u1"), Tally)
        assert saved.applied_seq == 3

    def test_incremental_fold(self):
        ledger = TallyLedger()
        ledger.append("u1", "x", {"v": 1})
        ledger.load("u1")
        ledger.append("u1", "x", {"v": 2})
        summary = ledger.load("u1")
        assert summary.values == [1, 2]
        assert ledger.applied == 2  # first event not re-applied

    def test_no_pending_is_noop(self):
        ledger = TallyLedger()
        ledger.append("u1", "x", {"v": 1})
        ledger.load("u1")
        ledger.load("u1")
        assert ledger.applied == 1

    def test_corrupt_summary_replays(self):
        ledger = TallyLedger()
        ledger.append("u1", "x", {"v": 1})
        ledger.load("u1")
        ledger.summary_path("u1").write_text("{broken")
        assert ledger.load("u1").values == [1]

    def test_rebuild(self):
        ledger = TallyLedger()
        ledger.append("u1", "x", {"v": 5})
        ledger.load("u1")
        assert ledger.rebuild("u1").values == [5]

    def test_exists(self):
        ledger = TallyLedger()
        assert not ledger.exists("u1")
        ledger.append("u1", "x", {"v": 1})
        assert ledger.exists("u1")

    def test_unsafe_user_id_stays_in_category(self):
        ledger = TallyLedger()
        ledger.append("../escape", "x", {"v": 1})
        path = ledger.log("../escape").path
        assert path.parent.parent == ledger.paths.data_dir / "tally"
        assert ledger.load("../escape").values == [1]

    def test_log_lines_are_json(self):
        ledger = TallyLedger()
        ledger.append("u1", "x", {"v": 1})
        line = ledger.log("u1").path.read_text().splitlines()[0]
        raw = json.loads(line)
        assert set(raw) == {"event_id", "kind", "recorded", "data"}
        assert LedgerEvent.model_validate(raw).kind == "x"
