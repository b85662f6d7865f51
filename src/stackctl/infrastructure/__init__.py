"""Infrastructure layer — container runtime adapter and lock files.

This layer depends on stdlib and the domain error taxonomy only.
It must never import from services, commands, or output.
"""
