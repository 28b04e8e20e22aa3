"""Admission webhook handlers and dispatch."""

from .dispatch import AdmissionDispatcher, decode_review
from .handlers import create_dispatcher

__all__ = ["AdmissionDispatcher", "create_dispatcher", "decode_review"]
