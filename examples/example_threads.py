#!/usr/bin/env python3
"""Trace worker threads into two consecutive windows."""

from __future__ import annotations

import threading
import time

from perfetto_tracing import PerfettoTracing, TracingConfig


def main() -> None:
    with PerfettoTracing(TracingConfig.from_env()) as tracing:
        now = tracing.now()
        tracing.add_trace_window("warmup", 200, start_time=now)
        tracing.add_trace_window("steady", 400, start_time=now + 200_000_000)  # +200 ms

        @tracing.traced
        def sleep_a_bit(ms: float) -> None:
            time.sleep(ms / 1000.0)

        def worker(index: int) -> None:
            for step in range(50):
                with tracing.trace_scope("step", {"worker": str(index), "step": str(step)}):
                    sleep_a_bit(5)
                tracing.trace_value(f"worker{index}.step", step)

        threads = [threading.Thread(target=worker, args=(i,), name=f"worker-{i}") for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        print(f"Dropped at window boundaries: {tracing.dropped_events}")

    print(f"Traces written to {tracing.config.trace_directory}. Load them in https://ui.perfetto.dev")


if __name__ == "__main__":
    main()
