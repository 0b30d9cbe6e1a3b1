"""CloudKit-backed shared to-do lists."""

from todoshare.services.todos import TodosService

__all__ = ["TodosService"]
