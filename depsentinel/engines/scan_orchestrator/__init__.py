"""Scan orchestration — runs, per-repository workers, run store and repo cache."""
