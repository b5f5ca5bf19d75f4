import json, time

from opentelemetry import context

from svc_obs import init, shutdown, get_logger
from svc_obs.propagation import extract_trace
from svc_obs.tracing import start_span

def main():
    telemetry = init(service_name="py-consumer", collector_endpoint="localhost:4317")
    log = get_logger("consumer")
    with open("bus_headers.json") as f:
        headers = json.load(f)

    token = context.attach(extract_trace(headers, propagator=telemetry.propagator))
    try:
        with start_span("signals.consume", {"topic": "dev/signals/v1"}, tracer=telemetry.get_tracer()):
            log.info("consumed signal", event="signals.consume", action="forward_to_oms")
            time.sleep(0.5)
    finally:
        context.detach(token)

    shutdown()

if __name__ == "__main__":
    main()
