from .link_repository import LinkRepository, LinkCandidate

__all__ = ["LinkRepository", "LinkCandidate"]
