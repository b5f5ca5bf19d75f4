import json, time

from svc_obs import init, shutdown, get_logger
from svc_obs.propagation import inject_trace
from svc_obs.tracing import start_span

def main():
    telemetry = init(service_name="py-producer", collector_endpoint="localhost:4317")
    log = get_logger("producer")

    with start_span("signals.publish", {"topic": "dev/signals/v1", "symbol": "AAPL"}, tracer=telemetry.get_tracer()):
        log.info("publishing signal", event="signals.emit", symbol="AAPL")
        headers = inject_trace({}, propagator=telemetry.propagator)
        with open("bus_headers.json", "w") as f:
            json.dump(headers, f, indent=2)
        print("wrote bus_headers.json:", headers)  # should include 'traceparent'
        time.sleep(0.5)

    shutdown()

if __name__ == "__main__":
    main()
