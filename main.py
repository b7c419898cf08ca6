"""Story Designer — dev launcher. Starts the backend in watch mode."""

import argparse
import os
import signal
import subprocess
import sys
from pathlib import Path

from dotenv import load_dotenv

ROOT = Path(__file__).parent
load_dotenv(ROOT / ".env")

HOST = os.getenv("HOST", "0.0.0.0")
BACKEND_PORT = os.getenv("BACKEND_PORT", "13013")


def main():
    parser = argparse.ArgumentParser(description="Story Designer dev launcher")
    parser.add_argument("--data-dir", type=Path, default=None,
                        help="Data storage directory (default: ./data)")
    parser.add_argument("--demo", action="store_true",
                        help="Recreate the demo story before starting")
    parser.add_argument("--mcp", action="store_true",
                        help="Run the MCP server on stdio instead of the HTTP backend")
    args = parser.parse_args()

    if args.demo or args.data_dir:
        from backend import storage
        data_dir = args.data_dir or Path("data")
        storage.init_storage(data_dir)
        if args.demo:
            from backend.demo import create_demo_data
            summary = create_demo_data()
            print(f"Demo story written to {summary.path}")

    # Build env for the subprocess so the backend picks up the same data dir
    env = os.environ.copy()
    if args.data_dir:
        env["DATA_DIR"] = str(args.data_dir.resolve())

    if args.mcp:
        command = [sys.executable, "-m", "backend.mcp_server"]
    else:
        print(f"Starting backend on http://localhost:{BACKEND_PORT} ...")
        command = [sys.executable, "-m", "uvicorn", "backend.app:app", "--reload",
                   "--host", HOST, "--port", BACKEND_PORT]
    proc = subprocess.Popen(command, cwd=ROOT, env=env)

    def shutdown(*_):
        print("\nShutting down...")
        proc.terminate()
        proc.wait()
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown)
    signal.signal(signal.SIGTERM, shutdown)
    proc.wait()


if __name__ == "__main__":
    main()
