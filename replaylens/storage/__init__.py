from replaylens.storage.store import JSONFileStore, MemoryStore, PersistenceStore, WorkflowStore

__all__ = ["JSONFileStore", "MemoryStore", "PersistenceStore", "WorkflowStore"]
