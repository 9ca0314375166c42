import asyncio

import pytest

from i18n_pipeline.batch import BatchConfig, BatchProcessor
from i18n_pipeline.errors import ParseError


def _processor(**kwargs):
    params = dict(max_concurrent=2, delay_between_batches=0, retry_attempts=2, retry_base_delay=0)
    params.update(kwargs)
    return BatchProcessor(BatchConfig(**params))


class TestBatchProcessor:

    def test_process_items_in_order(self):
        async def double(item):
            await asyncio.sleep(0.01 * (5 - item))
            return item * 2

        results = asyncio.run(_processor().process_batch([1, 2, 3, 4, 5], double))

        assert len(results) == 5
        assert all(r.success for r in results)
        assert [r.result for r in results] == [2, 4, 6, 8, 10]

    def test_odd_indices_fail_once_then_succeed(self):
        attempts = {}

        async def flaky(item):
            attempts[item] = attempts.get(item, 0) + 1
            if item % 2 == 1 and attempts[item] == 1:
                raise RuntimeError(f"first try failed for {item}")
            return f"ok-{item}"

        results = asyncio.run(_processor().process_batch([0, 1, 2, 3, 4], flaky))

        assert [r.success for r in results] == [True] * 5
        assert [r.result for r in results] == ["ok-0", "ok-1", "ok-2", "ok-3", "ok-4"]
        assert [r.retry_count for r in results] == [0, 1, 0, 1, 0]
        assert sum(attempts.values()) == 7

    def test_retry_exhaustion(self):
        calls = []

        async def always_fails(item):
            calls.append(item)
            raise RuntimeError(f"failure #{len(calls)}")

        results = asyncio.run(_processor().process_batch(["x"], always_fails))

        assert len(calls) == 3
        assert results[0].success is False
        assert str(results[0].error) == "failure #3"
        assert results[0].retry_count == 2

    def test_failure_does_not_abort_siblings(self):
        async def fails_on_b(item):
            if item == "b":
                raise RuntimeError("boom")
            return item.upper()

        results = asyncio.run(_processor(retry_attempts=0).process_batch(["a", "b", "c", "d"], fails_on_b))
        assert [r.success for r in results] == [True, False, True, True]
        assert results[3].result == "D"

    def test_synchronous_raise_is_handled_like_async(self):
        def sync_processor(item):
            if item == 1:
                raise ValueError("sync failure")
            return item

        results = asyncio.run(_processor(retry_attempts=1).process_batch([0, 1], sync_processor))
        assert results[0].success and results[0].result == 0
        assert not results[1].success
        assert isinstance(results[1].error, ValueError)

    def test_respects_max_concurrent(self):
        state = {"running": 0, "peak": 0}

        async def tracked(item):
            state["running"] += 1
            state["peak"] = max(state["peak"], state["running"])
            await asyncio.sleep(0.02)
            state["running"] -= 1
            return item

        asyncio.run(_processor().process_batch(list(range(7)), tracked))
        assert state["peak"] == 2

    def test_empty_input(self):
        async def never(item):
            raise AssertionError("should not be called")

        assert asyncio.run(_processor().process_batch([], never)) == []

    def test_no_retry_exceptions_fail_immediately(self):
        calls = []

        async def bad_reply(item):
            calls.append(item)
            raise ParseError("unmatched reply")

        results = asyncio.run(_processor().process_batch([1], bad_reply, no_retry=(ParseError,)))
        assert len(calls) == 1
        assert results[0].retry_count == 0
        assert isinstance(results[0].error, ParseError)

    def test_backoff_and_inter_batch_delays(self, monkeypatch):
        delays = []

        async def fake_sleep(seconds):
            delays.append(seconds)

        monkeypatch.setattr("i18n_pipeline.batch.asyncio.sleep", fake_sleep)
        attempts = {}

        async def flaky(item):
            attempts[item] = attempts.get(item, 0) + 1
            if item == 0 and attempts[item] <= 2:
                raise RuntimeError("retry me")
            return item

        processor = _processor(delay_between_batches=0.5, retry_attempts=3, retry_base_delay=1.0)
        results = asyncio.run(processor.process_batch([0, 1, 2], flaky))

        assert all(r.success for r in results)
        # backoff 1s puis 2s pour l'élément 0, puis une pause entre les deux fenêtres
        assert delays == [1.0, 2.0, 0.5]

    def test_on_outcome_stop_cancels_remaining_windows(self):
        seen = []
        started = []

        async def work(item):
            started.append(item)
            return item

        def on_outcome(index, response):
            seen.append(index)
            return index != 2

        results = asyncio.run(_processor().process_batch([0, 1, 2, 3, 4, 5], work, on_outcome=on_outcome))

        assert seen == [0, 1, 2]
        assert sorted(started) == [0, 1, 2, 3]
        assert len(results) == 6
        assert [r.cancelled for r in results] == [False, False, False, False, True, True]
        assert results[3].success

    def test_on_outcome_does_not_wait_for_slower_siblings(self):
        events = []

        async def work(item):
            if item == 1:
                await asyncio.sleep(0.1)
            events.append(f"done-{item}")
            return item

        def on_outcome(index, response):
            events.append(f"outcome-{index}")

        asyncio.run(_processor().process_batch([0, 1], work, on_outcome=on_outcome))

        assert events == ["done-0", "outcome-0", "done-1", "outcome-1"]

    def test_on_outcome_follows_input_order(self):
        seen = []

        async def work(item):
            # l'élément 0 termine en dernier
            await asyncio.sleep(0.05 if item == 0 else 0)
            return item

        asyncio.run(
            _processor(max_concurrent=3).process_batch([0, 1, 2], work, on_outcome=lambda i, r: seen.append(i))
        )
        assert seen == [0, 1, 2]

    def test_async_on_outcome(self):
        seen = []

        async def on_outcome(index, response):
            seen.append((index, response.result))

        async def work(item):
            return item * 10

        asyncio.run(_processor().process_batch([1, 2, 3], work, on_outcome=on_outcome))
        assert seen == [(0, 10), (1, 20), (2, 30)]

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            BatchProcessor(BatchConfig(max_concurrent=0))
