"""Deterministic domain ids.

``asana:<Entity>:<connection_id>:<gid>``. The same tool record always maps to
the same domain id, and entities sharing an id scheme (task/issue,
project/board, user/account) resolve to the same id.
"""

PLUGIN_NAME = "asana"


class DomainIdGenerator:
    """Builds domain ids for one tool entity kind."""

    def __init__(self, entity: str):
        if not entity or ":" in entity:
            raise ValueError(f"Invalid entity name for id generation: {entity!r}")
        self.prefix = f"{PLUGIN_NAME}:{entity}"

    def generate(self, connection_id: int, gid: str) -> str:
        return f"{self.prefix}:{connection_id}:{gid}"


project_ids = DomainIdGenerator("AsanaProject")
task_ids = DomainIdGenerator("AsanaTask")
user_ids = DomainIdGenerator("AsanaUser")
story_ids = DomainIdGenerator("AsanaStory")
