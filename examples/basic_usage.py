"""Basic usage: trace a function, a lambda and a counter into one window."""

from __future__ import annotations

from perfetto_tracing import PerfettoTracing, TracingConfig, trace_function, trace_lambda, trace_value


def some_func() -> None:
    with trace_function():
        def show(i: int) -> None:
            with trace_lambda("print"):
                print(i)

        for i in range(10):
            show(i)
            trace_value("i", i)


def main() -> None:
    tracing = PerfettoTracing.init_global_tracing(TracingConfig.from_env())
    tracing.add_trace_window("MyApplicationTrace", 100)

    with trace_function():
        some_func()

    # also runs at interpreter exit; explicit here so the file exists below
    tracing.shutdown()
    print(f"Trace saved to {tracing.writer.path_for('MyApplicationTrace')}. Import it at https://ui.perfetto.dev")


if __name__ == "__main__":
    main()
