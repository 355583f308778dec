"""
Role hierarchy traversal.

Roles are loaded into an arena keyed by role id, each node holding its
parent as an optional id. Walks are iterative and guarded by a visited set,
so a corrupted parent chain is cut instead of looping.
"""
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import CycleDetected, InvalidInput, NotFound
from app.features.roles.models import Role
from app.utils import get_logger


log = get_logger(__name__)


@dataclass(frozen=True)
class RoleNode:
    id: int
    name: str
    department_id: int
    parent_id: Optional[int]
    is_global: bool

    @classmethod
    def from_role(cls, role: Role) -> "RoleNode":
        return cls(
            id=role.id,
            name=role.name,
            department_id=role.department_id,
            parent_id=role.parent_role_id,
            is_global=role.is_global,
        )


class RoleHierarchyStore:
    """
    Read side of the role forest for one database session.

    Only live (not soft-deleted) roles are visible. A role whose parent has
    been deleted is treated as a root.
    """

    def __init__(self, db: AsyncSession):
        self._db = db
        self._arena: dict[int, RoleNode] = {}
        self._absent: set[int] = set()

    async def _load(self, role_id: int) -> Optional[RoleNode]:
        if role_id in self._arena:
            return self._arena[role_id]
        if role_id in self._absent:
            return None
        result = await self._db.execute(
            select(Role).where(Role.id == role_id, Role.deleted_at.is_(None))
        )
        role = result.scalar_one_or_none()
        if role is None:
            self._absent.add(role_id)
            return None
        node = RoleNode.from_role(role)
        self._arena[role_id] = node
        return node

    async def _require(self, role_id: int) -> RoleNode:
        if not role_id or role_id <= 0:
            raise InvalidInput("role id must be positive")
        node = await self._load(role_id)
        if node is None:
            raise NotFound(f"role {role_id} not found")
        return node

    async def get_role(self, role_id: int) -> Role:
        """Return the live Role row or raise NotFound."""
        await self._require(role_id)
        result = await self._db.execute(select(Role).where(Role.id == role_id))
        return result.scalar_one()

    async def get_children(self, role_id: int) -> list[RoleNode]:
        await self._require(role_id)
        result = await self._db.execute(
            select(Role).where(Role.parent_role_id == role_id, Role.deleted_at.is_(None))
        )
        children = []
        for role in result.scalars():
            node = RoleNode.from_role(role)
            self._arena[node.id] = node
            children.append(node)
        return children

    async def get_descendants(self, role_id: int) -> list[RoleNode]:
        """Transitive closure below role_id, the role itself first."""
        root = await self._require(role_id)
        found = [root]
        visited = {root.id}
        frontier = [root.id]
        while frontier:
            result = await self._db.execute(
                select(Role).where(Role.parent_role_id.in_(frontier), Role.deleted_at.is_(None))
            )
            next_frontier = []
            for role in result.scalars():
                if role.id in visited:
                    log.warning("Role %s reached twice while walking descendants of %s", role.id, role_id)
                    continue
                node = RoleNode.from_role(role)
                self._arena[node.id] = node
                visited.add(node.id)
                found.append(node)
                next_frontier.append(node.id)
            frontier = next_frontier
        return found

    async def get_ancestor_chain(self, role_id: int) -> list[RoleNode]:
        """The role, its parent, grandparent, ... up to the root."""
        node = await self._require(role_id)
        chain = [node]
        visited = {node.id}
        while node.parent_id is not None:
            if node.parent_id in visited:
                log.warning("Cycle in stored role hierarchy at role %s; chain cut", node.parent_id)
                break
            parent = await self._load(node.parent_id)
            if parent is None:
                break
            chain.append(parent)
            visited.add(parent.id)
            node = parent
        return chain

    async def ensure_acyclic(self, role_id: Optional[int], parent_id: Optional[int]) -> None:
        """
        Reject a parent assignment that would make role_id its own ancestor.

        role_id is None for a role that does not exist yet, which can only
        fail if the proposed parent is unknown.

        Raises:
            NotFound: the proposed parent does not exist
            CycleDetected: role_id appears in the proposed parent's chain
        """
        if parent_id is None:
            return
        if role_id is not None and parent_id == role_id:
            raise CycleDetected(f"role {role_id} cannot be its own parent")
        chain = await self.get_ancestor_chain(parent_id)
        if role_id is None:
            return
        if any(node.id == role_id for node in chain):
            raise CycleDetected(f"role {parent_id} is a descendant of role {role_id}")
        if await self._raw_chain_reaches(parent_id, role_id):
            raise CycleDetected(f"role {parent_id} reaches role {role_id} through a deleted ancestor")

    async def _raw_chain_reaches(self, start_id: int, role_id: int) -> bool:
        """
        Follow stored parent pointers from start_id, soft-deleted rows included.

        The live chain stops at a deleted role, but its parent pointer is
        still on disk and would close a loop if the role were restored.
        """
        visited: set[int] = set()
        current: Optional[int] = start_id
        while current is not None and current not in visited:
            if current == role_id:
                return True
            visited.add(current)
            result = await self._db.execute(select(Role.parent_role_id).where(Role.id == current))
            current = result.scalar_one_or_none()
        return False

    def forget(self, role_id: int) -> None:
        """Drop a cached node after the row changed in this session."""
        self._arena.pop(role_id, None)
        self._absent.discard(role_id)
