# Error kinds raised by the pipeline. Each carries enough context to diagnose
# a failure without re-running (epoch, batch index, label, path).

from __future__ import annotations


class AEOutliersError(Exception):
    """Base class for all pipeline errors."""


class DimensionMismatch(AEOutliersError, ValueError):
    def __init__(self, expected: int, got, what: str = "input"):
        self.expected = expected
        self.got = got
        super().__init__(f"{what} has feature length {got}, expected {expected}")


class NumericInstability(AEOutliersError, ArithmeticError):
    """Loss or a gradient became non-finite; the update was not applied."""

    def __init__(self, message: str, epoch: int | None = None, batch_index: int | None = None):
        self.epoch = epoch
        self.batch_index = batch_index
        where = []
        if epoch is not None:
            where.append(f"epoch={epoch}")
        if batch_index is not None:
            where.append(f"batch={batch_index}")
        suffix = f" ({', '.join(where)})" if where else ""
        super().__init__(message + suffix)


class InsufficientData(AEOutliersError, ValueError):
    def __init__(self, available: int, k: int, label: int | None = None):
        self.available = available
        self.k = k
        self.label = label
        who = f"label {label}" if label is not None else "bucket"
        super().__init__(f"{who} holds {available} examples, need {k}")


class ExportFailure(AEOutliersError, OSError):
    def __init__(self, path: str, reason: str, label: int | None = None, slot: str | None = None):
        self.path = path
        self.label = label
        self.slot = slot
        super().__init__(f"could not write {path}: {reason}")
