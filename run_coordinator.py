#!/usr/bin/env python3
"""
loadfleet — Experiment Coordinator
==================================
Thin entry-point. All logic lives in src.coordinator.cli.

Usage:
    python3 run_coordinator.py --target 10.0.0.1:8000 --th-agents h1,h2 --lt-agents h3
    python3 run_coordinator.py --target 10.0.0.1:8000 --sym-agents h1 --run-agents
    python3 run_coordinator.py ... --print-agent-args
"""

from src.coordinator.cli import main

if __name__ == "__main__":
    main()
