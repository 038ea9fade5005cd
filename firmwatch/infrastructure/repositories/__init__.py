from firmwatch.infrastructure.repositories.entities import EntityRepository, model_for, to_snapshot

__all__ = ["EntityRepository", "model_for", "to_snapshot"]
