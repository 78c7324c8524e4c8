"""
Core module: configuration, logging, errors and telemetry
"""
