"""Project directory: read-only access to a company's projects.

Used by the rule matcher (auto-detect lookup) and by the confidence scorer
(candidate list). Batch runs take an in-memory snapshot once per run.
"""

from dataclasses import dataclass

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from txrouter.models.project import Project


@dataclass(frozen=True)
class ProjectRef:
    id: int
    name: str
    code: str | None = None


class ProjectDirectory:
    """Database-backed directory scoped to one company."""

    def __init__(self, db: AsyncSession, company_id: int):
        self.db = db
        self.company_id = company_id

    async def lookup(self, code_or_name: str) -> int | None:
        """Resolve a project code (preferred) or exact project name, case-insensitively."""
        needle = code_or_name.strip().lower()
        if not needle:
            return None
        result = await self.db.execute(
            select(Project.id, Project.code).where(
                Project.company_id == self.company_id,
                Project.is_active.is_(True),
                or_(func.lower(Project.code) == needle, func.lower(Project.name) == needle),
            ).order_by(Project.id)
        )
        rows = result.all()
        for project_id, code in rows:
            if code is not None and code.lower() == needle:
                return project_id
        return rows[0][0] if rows else None

    async def list_candidates(self) -> list[ProjectRef]:
        result = await self.db.execute(
            select(Project).where(
                Project.company_id == self.company_id,
                Project.is_active.is_(True),
            ).order_by(Project.id)
        )
        return [ProjectRef(id=p.id, name=p.name, code=p.code) for p in result.scalars().all()]

    async def exists(self, project_id: int) -> bool:
        result = await self.db.execute(
            select(Project.id).where(
                Project.id == project_id,
                Project.company_id == self.company_id,
                Project.is_active.is_(True),
            )
        )
        return result.scalar_one_or_none() is not None

    async def snapshot(self) -> "DirectorySnapshot":
        return DirectorySnapshot(await self.list_candidates())


class DirectorySnapshot:
    """In-memory directory, safe to share across concurrent evaluations."""

    def __init__(self, projects: list[ProjectRef]):
        self.projects = sorted(projects, key=lambda p: p.id)
        self._by_code: dict[str, int] = {}
        self._by_name: dict[str, int] = {}
        for p in self.projects:
            if p.code:
                self._by_code.setdefault(p.code.strip().lower(), p.id)
            self._by_name.setdefault(p.name.strip().lower(), p.id)

    async def lookup(self, code_or_name: str) -> int | None:
        needle = code_or_name.strip().lower()
        return self._by_code.get(needle) or self._by_name.get(needle)

    async def list_candidates(self) -> list[ProjectRef]:
        return list(self.projects)

    async def exists(self, project_id: int) -> bool:
        return any(p.id == project_id for p in self.projects)
