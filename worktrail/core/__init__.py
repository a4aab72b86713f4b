from .identity import ProjectIdentity, project_identity, stable_hash
from .project import ProjectContext

__all__ = ["ProjectContext", "ProjectIdentity", "project_identity", "stable_hash"]
