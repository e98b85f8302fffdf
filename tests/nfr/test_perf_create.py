"""
NFR: creation throughput and latency

How to run (opt-in):
    RUN_NFR=1 pytest tests/nfr/test_perf_create.py -vv
Optional thresholds:
    NFR_TARGET_CREATE_QPS=1000     # assert create QPS >= 1000 (example)
    NFR_TARGET_CREATE_P95_MS=5     # assert p95 latency per create <= 5 ms

Notes:
    - Uses an in-memory LinkManager for deterministic measurements.
    - Does not assert unless env vars are set.
"""

import os
import statistics
import time

import pytest

from vlink.manager.link_manager import LinkManager
from vlink.storage.storage import Storage

pytestmark = pytest.mark.nfr


def _should_run():
    return os.getenv("RUN_NFR") == "1"


@pytest.mark.skipif(not _should_run(), reason="NFR tests are opt-in; set RUN_NFR=1 to enable")
def test_create_throughput_and_latency(capsys):
    manager = LinkManager(storage=Storage())

    n = 2000
    latencies_ms = []

    t0 = time.perf_counter()
    for i in range(n):
        s = time.perf_counter()
        code = manager.allocate(f"https://example.com/resource/{i}")
        latencies_ms.append((time.perf_counter() - s) * 1000.0)
        assert code
    total_s = time.perf_counter() - t0

    qps = n / total_s
    p95 = statistics.quantiles(latencies_ms, n=100)[94]

    with capsys.disabled():
        print(f"\nCreate N={n} -> total {total_s:.3f}s, QPS={qps:.1f}, p95={p95:.2f}ms", flush=True)

    qps_target = os.getenv("NFR_TARGET_CREATE_QPS")
    p95_target_ms = os.getenv("NFR_TARGET_CREATE_P95_MS")
    if qps_target:
        assert qps >= float(qps_target), f"Create QPS {qps:.1f} < target {qps_target}"
    if p95_target_ms:
        assert p95 <= float(p95_target_ms), f"Create p95 {p95:.2f}ms > target {p95_target_ms}ms"
