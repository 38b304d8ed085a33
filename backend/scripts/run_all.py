#!/usr/bin/env python3
"""Launch the capture server and the Profiler Agent side by side.

Usage:
    # From the backend/ directory with the venv activated:
    python scripts/run_all.py              # server + agent
    python scripts/run_all.py --no-agent   # server only (no uAgents / Almanac)

Each service gets its own spawned process; a child that dies is started
again after MONITOR_INTERVAL seconds.

Ports (see config/settings.py):
    SERVER_PORT          FastAPI capture server   (default 8000)
    PROFILER_AGENT_PORT  Profiler Agent           (default 8006)
"""

from __future__ import annotations

import argparse
import logging
import multiprocessing
import signal
import sys
import time
from pathlib import Path
from typing import Callable

# backend/ must be importable for `student_analytics.…`
_backend_dir = Path(__file__).resolve().parent.parent
if str(_backend_dir) not in sys.path:
    sys.path.insert(0, str(_backend_dir))

from student_analytics.config.settings import (  # noqa: E402
    EVENT_STORE_BACKEND,
    PROFILER_AGENT_PORT,
    SERVER_HOST,
    SERVER_PORT,
    STUDENT_ID,
    WORKSPACE_DIR,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-7s  %(name)-22s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("run_all")

MONITOR_INTERVAL = 5  # seconds
MAX_RESTARTS = 3


def serve_api():
    import uvicorn

    uvicorn.run("student_analytics.server:app", host=SERVER_HOST, port=SERVER_PORT, log_level="info")


def serve_profiler():
    from student_analytics.agents.profiler_agent import create_profiler_agent

    agent = create_profiler_agent(port=PROFILER_AGENT_PORT)
    logger.info("Profiler agent %s listening on %d", agent.address, PROFILER_AGENT_PORT)
    agent.run()


def _spawn(name: str, target: Callable[[], None]) -> multiprocessing.Process:
    proc = multiprocessing.Process(target=target, name=name, daemon=True)
    proc.start()
    logger.info("%s up (pid %d)", name, proc.pid)
    return proc


def _stop(children: dict[str, multiprocessing.Process]) -> None:
    for proc in children.values():
        if proc.is_alive():
            proc.terminate()
    for proc in children.values():
        proc.join(timeout=5)
        if proc.is_alive():
            proc.kill()


def main(argv: list[str] | None = None):
    parser = argparse.ArgumentParser(description="Run the student analytics services")
    parser.add_argument("--no-agent", action="store_true", help="Start only the FastAPI server")
    args = parser.parse_args(argv)

    services: dict[str, Callable[[], None]] = {"capture-server": serve_api}
    if not args.no_agent:
        services["profiler-agent"] = serve_profiler

    logger.info("Student %s, %s event store in %s", STUDENT_ID, EVENT_STORE_BACKEND, WORKSPACE_DIR)
    logger.info("API on http://localhost:%d%s", SERVER_PORT,
                "" if args.no_agent else f", profiler agent on port {PROFILER_AGENT_PORT}")

    children = {name: _spawn(name, target) for name, target in services.items()}
    restarts = {name: 0 for name in services}

    def _on_signal(signum, frame):
        logger.info("Signal %d received, stopping %d process(es)", signum, len(children))
        _stop(children)
        sys.exit(0)

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    while True:
        time.sleep(MONITOR_INTERVAL)
        for name, proc in list(children.items()):
            if proc.is_alive():
                continue
            if restarts[name] >= MAX_RESTARTS:
                logger.error("%s exited with code %s; restart limit reached", name, proc.exitcode)
                children.pop(name)
                continue
            restarts[name] += 1
            logger.warning("%s exited with code %s, restarting (%d/%d)",
                           name, proc.exitcode, restarts[name], MAX_RESTARTS)
            children[name] = _spawn(name, services[name])
        if not children:
            logger.error("No services left running")
            sys.exit(1)


if __name__ == "__main__":
    multiprocessing.set_start_method("spawn", force=True)
    main()
