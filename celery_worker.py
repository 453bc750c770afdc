#!/usr/bin/env python3
"""
Celery worker script for the Paaniyo marketplace.

Runs the worker that delivers email and the hourly cleanup. Pass ``--beat``
to embed the beat scheduler in the same process (single-node deployments).
"""

import sys
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

if __name__ == "__main__":
    from core.celery import celery_app

    argv = [
        "worker",
        "--loglevel=info",
        "--concurrency=4",
        "--without-gossip",
        "--without-mingle",
        "--without-heartbeat",
    ]
    if "--beat" in sys.argv[1:]:
        argv.append("--beat")

    celery_app.start(argv)
