"""Tests for ResponseRegistry and DeliverySlot."""

import threading
import time

import pytest

from site_worker.errors import DuplicateSequence, WorkerChannelClosed, WorkerTimeout
from site_worker.ipc.registry import DeliverySlot, ResponseRegistry


class TestDeliverySlot:
    def test_put_then_wait(self):
        slot = DeliverySlot(1)
        assert slot.put("hello")
        assert slot.done
        assert slot.wait() == "hello"

    def test_first_put_wins(self):
        slot = DeliverySlot(1)
        slot.put("first")
        assert not slot.put("second")
        assert slot.wait() == "first"

    def test_close_wakes_waiter(self):
        slot = DeliverySlot(5)
        slot.close("worker died")
        with pytest.raises(WorkerChannelClosed, match="#5.*worker died"):
            slot.wait()

    def test_close_after_put_is_ignored(self):
        slot = DeliverySlot(1)
        slot.put("data")
        assert not slot.close()
        assert slot.delivered
        assert slot.wait() == "data"

    def test_closed_slot_is_done_but_not_delivered(self):
        slot = DeliverySlot(1)
        assert not slot.delivered
        slot.close("request abandoned")
        assert slot.done
        assert not slot.delivered

    def test_wait_timeout(self):
        slot = DeliverySlot(3)
        with pytest.raises(WorkerTimeout) as excinfo:
            slot.wait(timeout=0.01)
        assert excinfo.value.seq == 3
        assert excinfo.value.timeout == 0.01

    def test_put_from_another_thread(self):
        slot = DeliverySlot(1)
        t = threading.Timer(0.05, slot.put, args=("late",))
        t.start()
        assert slot.wait(timeout=2) == "late"
        t.join()


class TestResponseRegistry:
    def test_register_and_deliver(self):
        registry = ResponseRegistry()
        slot = registry.register(1)
        assert registry.pending == 1
        assert registry.deliver(1, "payload")
        assert registry.pending == 0
        assert slot.wait(timeout=1) == "payload"

    def test_duplicate_sequence(self):
        registry = ResponseRegistry()
        registry.register(1)
        with pytest.raises(DuplicateSequence):
            registry.register(1)

    def test_sequence_reusable_after_delivery(self):
        registry = ResponseRegistry()
        registry.register(1)
        registry.deliver(1, "x")
        registry.register(1)  # Should not raise

    def test_unknown_sequence_discarded(self):
        registry = ResponseRegistry()
        assert registry.deliver(42, "nobody asked") is False

    def test_second_delivery_discarded(self):
        registry = ResponseRegistry()
        slot = registry.register(1)
        registry.deliver(1, "first")
        assert registry.deliver(1, "second") is False
        assert slot.wait() == "first"

    def test_discard_removes_entry(self):
        registry = ResponseRegistry()
        slot = registry.register(1)
        registry.discard(1)
        assert len(registry) == 0
        assert registry.deliver(1, "late") is False
        with pytest.raises(WorkerChannelClosed):
            slot.wait(timeout=0)

    def test_close_fails_pending(self):
        registry = ResponseRegistry()
        slots = [registry.register(seq) for seq in (1, 2, 3)]
        assert registry.close("output closed") == 3
        assert registry.closed
        for slot in slots:
            with pytest.raises(WorkerChannelClosed, match="output closed"):
                slot.wait(timeout=1)

    def test_register_after_close(self):
        registry = ResponseRegistry()
        registry.close("gone")
        with pytest.raises(WorkerChannelClosed, match="gone"):
            registry.register(1)

    def test_close_is_idempotent(self):
        registry = ResponseRegistry()
        registry.register(1)
        assert registry.close("first") == 1
        assert registry.close("second") == 0

    def test_close_wakes_blocked_thread(self):
        registry = ResponseRegistry()
        slot = registry.register(1)
        errors = []

        def waiter():
            try:
                slot.wait()
            except WorkerChannelClosed as exc:
                errors.append(exc)

        t = threading.Thread(target=waiter)
        t.start()
        time.sleep(0.05)
        registry.close("worker exited")
        t.join(timeout=2)
        assert not t.is_alive()
        assert len(errors) == 1

    def test_concurrent_register_and_deliver(self):
        registry = ResponseRegistry()
        results = {}

        def caller(seq):
            slot = registry.register(seq)
            results[seq] = slot.wait(timeout=5)

        threads = [threading.Thread(target=caller, args=(seq,)) for seq in range(1, 51)]
        for t in threads:
            t.start()
        delivered = set()
        deadline = time.monotonic() + 5
        while len(delivered) < 50 and time.monotonic() < deadline:
            for seq in range(1, 51):
                if seq not in delivered and registry.deliver(seq, f"r{seq}"):
                    delivered.add(seq)
        for t in threads:
            t.join(timeout=5)

        assert results == {seq: f"r{seq}" for seq in range(1, 51)}
