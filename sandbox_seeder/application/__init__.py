"""Application layer - validation orchestration, configuration and collaborator contracts."""
