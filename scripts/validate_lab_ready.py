import argparse
import json
import time
from typing import Any

import requests


class LabValidationError(RuntimeError):
    pass


def req(base_url: str, method: str, path: str, **kwargs: Any) -> requests.Response:
    url = f"{base_url.rstrip('/')}{path}"
    response = requests.request(method, url, timeout=20, **kwargs)
    return response


def req_json(base_url: str, method: str, path: str, expected: tuple[int, ...] = (200,), **kwargs: Any) -> Any:
    response = req(base_url, method, path, **kwargs)
    try:
        payload = response.json()
    except Exception as exc:
        raise LabValidationError(f"{method} {path} returned non-JSON body: {response.text[:300]}") from exc

    if response.status_code not in expected:
        raise LabValidationError(
            f"{method} {path} failed with HTTP {response.status_code}: {json.dumps(payload, default=str)}"
        )
    return payload


def ensure_api_up(base_url: str) -> None:
    response = req(base_url, "GET", "/")
    if response.status_code != 200:
        raise LabValidationError(f"API is not reachable at {base_url} (HTTP {response.status_code})")


def wait_for(base_url: str, path: str, key: str, value: str, timeout_seconds: float) -> dict[str, Any]:
    deadline = time.time() + timeout_seconds
    while True:
        payload = req_json(base_url, "GET", path)
        if payload.get(key) == value:
            return payload
        if time.time() > deadline:
            raise LabValidationError(f"Timed out waiting for {path} {key}={value} (last: {payload.get(key)})")
        time.sleep(0.5)


def run_validation(base_url: str, host_count: int, timeout_seconds: float) -> dict[str, Any]:
    """Walk the standard OSA scenario: setup, VMs, host failure, guard, recovery."""
    report: dict[str, Any] = {"base_url": base_url, "checks": []}

    ensure_api_up(base_url)
    req_json(base_url, "POST", "/lab/reset")
    req_json(base_url, "POST", "/lab/scenario", json={"scenario": "STANDARD"})
    req_json(base_url, "POST", "/lab/cluster")

    host_ids = [f"h{i}" for i in range(1, host_count + 1)]
    req_json(base_url, "POST", "/lab/hosts", json={"host_ids": host_ids})
    for host_id in host_ids:
        req_json(base_url, "POST", f"/hosts/{host_id}/vsan-traffic")
        host = req_json(base_url, "GET", f"/hosts/{host_id}")
        for disk in host["disks"]:
            role = "Cache" if disk["tier"] == "Cache" else "Capacity"
            req_json(base_url, "POST", f"/hosts/{host_id}/disks/{disk['id']}/claim", json={"role": role})

    req_json(base_url, "POST", "/lab/deploy")
    wait_for(base_url, "/lab", "phase", "OPERATION", timeout_seconds)
    report["checks"].append("vsan_deployed")

    req_json(base_url, "POST", "/vms/deploy", json={"policy": "RAID1_FTT1"})
    vms = req_json(base_url, "GET", "/vms")
    report["vm_count"] = len(vms)
    report["capacity_after_deploy"] = req_json(base_url, "GET", "/capacity")

    req_json(base_url, "POST", "/failures", json={"kind": "HOST", "target_id": host_ids[0]})
    report["health_after_failure"] = req_json(base_url, "GET", "/health")
    if report["health_after_failure"]["state"] != "Critical":
        raise LabValidationError("Cluster did not turn Critical after host failure")
    report["checks"].append("host_failure")

    req_json(base_url, "POST", "/failures", expected=(409,), json={"kind": "HOST", "target_id": host_ids[1]})
    report["checks"].append("ftt_guard")

    req_json(base_url, "POST", "/failures/recover", json={"kind": "HOST", "target_id": host_ids[0]})
    report["health_after_recovery"] = wait_for(base_url, "/health", "state", "Healthy", timeout_seconds)
    report["checks"].append("resync_complete")

    report["recent_events"] = [e["line"] for e in req_json(base_url, "GET", "/events", params={"limit": 10})]
    return report


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Validate lab readiness (setup, deploy VMs, fail host, FTT guard, recover)"
    )
    parser.add_argument("--base-url", default="http://127.0.0.1:8010", help="FastAPI base URL")
    parser.add_argument("--hosts", type=int, default=3, help="Hosts to add to the standard cluster")
    parser.add_argument("--timeout", type=float, default=60.0, help="Seconds to wait for each workflow")
    parser.add_argument("--output", default="", help="Optional JSON report output path")
    args = parser.parse_args()

    report = run_validation(base_url=args.base_url, host_count=args.hosts, timeout_seconds=args.timeout)
    pretty = json.dumps(report, indent=2, default=str)
    print(pretty)

    if args.output:
        with open(args.output, "w", encoding="utf-8") as handle:
            handle.write(pretty)
            handle.write("\n")


if __name__ == "__main__":
    main()
