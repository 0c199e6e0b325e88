"""
Module dependency ordering for axbuild.
"""

from .ordering import OrderedModule, compute_build_order, find_cycle, order_modules, topological_order

__all__ = [
    "OrderedModule",
    "compute_build_order",
    "find_cycle",
    "order_modules",
    "topological_order",
]
