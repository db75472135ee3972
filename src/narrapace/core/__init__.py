"""
Shared infrastructure for the pacing engine, the API and the CLI.

    - config.py: settings.yaml loading, pacing/playback/store/narrator sections
    - logging/: numeric-level logging with session correlation
    - metrics.py: rate, seek and persistence counters for Prometheus
"""
