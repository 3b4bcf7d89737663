"""Core data model and the WorkflowEngine orchestrator."""
