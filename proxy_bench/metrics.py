from prometheus_client import Counter, Gauge, Histogram

M_ROUNDS = Counter("proxy_bench_rounds_total", "Probe round trips completed")
M_ROUND_TRIP = Histogram("proxy_bench_round_trip_seconds", "Probe round-trip latency")
M_SESSION_FAILURES = Counter("proxy_bench_session_failures_total", "Sessions ended by an error", ["kind"])

M_PROXY_CONNECTIONS = Counter("proxy_bench_proxy_connections_total", "Client connections accepted by the proxy")
M_PROXY_ACTIVE = Gauge("proxy_bench_proxy_active_tunnels", "Tunnels currently open")
M_PROXY_DIAL_FAILURES = Counter("proxy_bench_proxy_dial_failures_total", "Failed dials to an app target")
M_PROXY_BYTES = Counter("proxy_bench_proxy_bytes_total", "Bytes forwarded", ["direction"])
