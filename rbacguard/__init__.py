"""Admission webhook preventing privilege escalation through role templates."""

__version__ = "0.1.0"
