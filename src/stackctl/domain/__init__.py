"""Domain layer — project types, naming, compose layers and dependency order.

This layer depends on stdlib, pydantic, ruamel.yaml and networkx only.
It must never import from services, infrastructure, commands, or config.
"""
