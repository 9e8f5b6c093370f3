"""
vSAN Lab Service Launcher

Starts the lab control plane (vsanlab.service) under uvicorn.

Usage:
    python scripts/run_lab_service.py --host 0.0.0.0 --port 8010

Environment Variables:
    VSANLAB_API_PORT: API port (default: 8010)
    VSANLAB_BIND_HOST: Bind address (default: 0.0.0.0)
    VSANLAB_LOG_LEVEL: Process log level (default: INFO)
"""
import argparse
import os
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import uvicorn


def main() -> None:
    parser = argparse.ArgumentParser(description="Run the vSAN lab control-plane service")
    parser.add_argument("--host", default=os.getenv("VSANLAB_BIND_HOST", "0.0.0.0"))
    parser.add_argument("--port", type=int, default=int(os.getenv("VSANLAB_API_PORT", "8010")))
    args = parser.parse_args()

    print("=" * 60)
    print("vSAN Master Lab Control Plane")
    print("=" * 60)
    print(f"API Address: {args.host}:{args.port}")
    print("State store: in-memory (lost on restart)")
    print("=" * 60)

    # Single worker: the control plane is the only owner of lab state
    uvicorn.run("vsanlab.service:app", host=args.host, port=args.port, reload=False, workers=1)


if __name__ == "__main__":
    main()
