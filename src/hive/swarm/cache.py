"""实例级可见性缓存

identity -> 可见项目 ID 集合。由 TaskService 持有，项目写入时整体失效。
"""


class VisibilityCache:
    """身份可见项目缓存"""

    def __init__(self) -> None:
        self._entries: dict[str, frozenset[str]] = {}

    def get(self, identity: str) -> frozenset[str] | None:
        return self._entries.get(identity)

    def put(self, identity: str, project_ids: set[str]) -> frozenset[str]:
        value = frozenset(project_ids)
        self._entries[identity] = value
        return value

    def invalidate(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
