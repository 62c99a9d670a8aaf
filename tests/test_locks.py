"""Tests for per-slug locking."""

import threading
import time

import pytest

from sitedrop.errors import OperationTimeout
from sitedrop.locks import Cancellation, SlugLocks


class TestSlugLocks:
    """Tests for SlugLocks.hold."""

    def test_same_slug_serialized(self):
        """Two holders of one slug never overlap."""
        locks = SlugLocks()
        events = []

        def worker(tag):
            with locks.hold("site"):
                events.append(f"{tag}-start")
                time.sleep(0.05)
                events.append(f"{tag}-end")

        threads = [threading.Thread(target=worker, args=(t,)) for t in ("a", "b")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert events[0].split("-")[0] == events[1].split("-")[0]
        assert events[2].split("-")[0] == events[3].split("-")[0]

    def test_different_slugs_independent(self):
        """Holding one slug does not block another."""
        locks = SlugLocks()
        acquired = threading.Event()

        with locks.hold("one"):
            def other():
                with locks.hold("two"):
                    acquired.set()

            thread = threading.Thread(target=other)
            thread.start()
            assert acquired.wait(timeout=2)
            thread.join()

    def test_released_on_exception(self):
        """An exception inside the block frees the slug."""
        locks = SlugLocks()
        try:
            with locks.hold("boom"):
                raise RuntimeError("fail")
        except RuntimeError:
            pass
        assert locks.active_count() == 0
        with locks.hold("boom"):
            assert locks.active_count() == 1

    def test_active_count_while_waiting(self):
        """A slug stays counted while a second thread waits on it."""
        locks = SlugLocks()
        waiting = threading.Event()
        done = threading.Event()

        def waiter():
            waiting.set()
            with locks.hold("busy"):
                done.set()

        with locks.hold("busy"):
            thread = threading.Thread(target=waiter)
            thread.start()
            assert waiting.wait(timeout=2)
            assert locks.active_count() == 1
        thread.join()
        assert done.is_set()
        assert locks.active_count() == 0


class TestCancellation:
    """Tests for Cancellation."""

    def test_fresh_token_runs(self):
        cancellation = Cancellation()
        cancellation.check()
        cancellation.commit()
        assert not cancellation.cancelled

    def test_cancel_stops_check_and_commit(self):
        cancellation = Cancellation()
        assert cancellation.cancel() is True
        assert cancellation.cancelled
        with pytest.raises(OperationTimeout):
            cancellation.check()
        with pytest.raises(OperationTimeout):
            cancellation.commit()

    def test_commit_wins_over_later_cancel(self):
        """Once committed, the worker is allowed to finish."""
        cancellation = Cancellation()
        cancellation.commit()
        assert cancellation.cancel() is False
        assert not cancellation.cancelled
        cancellation.check()

    def test_exactly_one_side_wins(self):
        """Racing cancel and commit never both succeed."""
        for _ in range(200):
            cancellation = Cancellation()
            barrier = threading.Barrier(2)
            outcome = {}

            def committer():
                barrier.wait()
                try:
                    cancellation.commit()
                    outcome["committed"] = True
                except OperationTimeout:
                    outcome["committed"] = False

            def canceller():
                barrier.wait()
                outcome["cancelled"] = cancellation.cancel()

            threads = [threading.Thread(target=committer), threading.Thread(target=canceller)]
            for t in threads:
                t.start()
            for t in threads:
                t.join()

            assert outcome["committed"] != outcome["cancelled"]
