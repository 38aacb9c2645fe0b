# MIT License
# Copyright (c) 2025 Hashborn

"""
Observability Module

Provides Prometheus metrics for state exports.
"""

from .metrics import metrics_registry, get_metrics, write_metrics

__all__ = ['metrics_registry', 'get_metrics', 'write_metrics']
