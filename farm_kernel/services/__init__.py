"""Kernel services - stateful infrastructure shared by domain modules."""

from farm_kernel.services.sequence_service import SequenceCounter, SequenceService

__all__ = ["SequenceCounter", "SequenceService"]
