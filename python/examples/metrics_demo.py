import random, time

from svc_obs import init, shutdown, get_logger

def main():
    telemetry = init(service_name="py-metrics", collector_endpoint="localhost:4317")
    log = get_logger("metrics_demo")

    for i in range(10):
        with telemetry.metrics.track_request({"route": "/orders"}):
            time.sleep(0.05 + random.random() * 0.1)
        if i % 4 == 0:
            telemetry.metrics.increment_error_counter(attributes={"route": "/orders", "reason": "risk_check"})
        log.info("request handled", iteration=i)

    time.sleep(1.0)
    report = shutdown()
    print("shutdown ok:", bool(report))

if __name__ == "__main__":
    main()
