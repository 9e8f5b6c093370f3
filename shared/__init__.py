"""
Shared utilities for the vSAN lab components.

- logging_config: process-wide logging setup
"""
