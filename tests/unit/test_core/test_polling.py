# SPDX-License-Identifier: LGPL-3.0-or-later
from __future__ import annotations

import pytest

from fakes.fake_clock import FakeClock
from hypergen2.core.polling import poll_until


def _poll(probe, clk, **kw):
    kw.setdefault("interval_s", 10)
    kw.setdefault("timeout_s", 60)
    return poll_until(probe, clock=clk, sleep=clk.sleep, show_progress=False, **kw)


@pytest.mark.unit
class TestPollUntil:
    def test_immediate_success_never_sleeps(self):
        clk = FakeClock()
        out = _poll(lambda: "ready", clk)

        assert out.succeeded
        assert out.value == "ready"
        assert out.attempts == 1
        assert clk.sleeps == []

    def test_accept_predicate(self):
        clk = FakeClock()
        values = iter(["NoContact", "Lost", "OkApplicationsHealthy"])
        out = _poll(lambda: next(values), clk, accept=lambda v: v.startswith("Ok"))

        assert out.succeeded
        assert out.attempts == 3
        assert out.elapsed_s == 20

    def test_timeout_is_bounded(self):
        clk = FakeClock()
        out = _poll(lambda: None, clk, interval_s=30, timeout_s=600)

        assert out.timed_out
        assert out.attempts == 21
        assert clk.now == 600

    def test_probe_errors_count_as_not_yet(self):
        clk = FakeClock()
        calls = {"n": 0}

        def probe():
            calls["n"] += 1
            if calls["n"] < 3:
                raise RuntimeError("az throttled")
            return {"id": "x"}

        out = _poll(probe, clk)
        assert out.succeeded and out.value == {"id": "x"}

    def test_last_error_kept_on_timeout(self):
        clk = FakeClock()

        def probe():
            raise RuntimeError("unreachable")

        out = _poll(probe, clk, timeout_s=20)
        assert not out.succeeded
        assert out.last_error == "RuntimeError: unreachable"

    def test_zero_timeout_probes_once(self):
        clk = FakeClock()
        out = _poll(lambda: None, clk, timeout_s=0)
        assert out.attempts == 1 and clk.sleeps == []

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            _poll(lambda: 1, FakeClock(), interval_s=0)
