from .reconciler import StateReconciler, validate_operations

__all__ = ["StateReconciler", "validate_operations"]
