"""项目管理。

ProjectManager 持有全部 Project（id -> Project）以及可选的“当前项目” id。
删除项目时可选择级联删除其下会话，或仅解除会话与项目的关联。
"""

import copy
from typing import Any, Dict, List, Optional

from chat_core.domain.exceptions import NotFoundError, ValidationError
from chat_core.domain.models import Project, generate_id, now_ms
from chat_core.domain.store import SETTING_CURRENT_PROJECT, STORE_PROJECTS, PersistencePort
from chat_core.infrastructure.logging.logger import logger
from chat_core.services.chat_manager import ChatManager

UPDATABLE_FIELDS = frozenset({"name", "description", "color", "icon", "metadata"})


class ProjectManager:
    def __init__(self, store: PersistencePort):
        self._store = store
        self.projects: Dict[str, Project] = {}
        self.current_project_id: Optional[str] = None

    def init(self) -> None:
        self.projects.clear()
        for data in self._store.get_all(STORE_PROJECTS):
            project = Project.from_dict(data)
            self.projects[project.id] = project
        current = self._store.get_setting(SETTING_CURRENT_PROJECT)
        self.current_project_id = current if current in self.projects else None

    def get(self, project_id: str) -> Optional[Project]:
        return self.projects.get(project_id)

    def require(self, project_id: str) -> Project:
        project = self.projects.get(project_id)
        if project is None:
            raise NotFoundError(code="PROJECT_NOT_FOUND", message=f"Project not found: {project_id}")
        return project

    def current_project(self) -> Optional[Project]:
        if self.current_project_id is None:
            return None
        return self.projects.get(self.current_project_id)

    def all_projects(self) -> List[Project]:
        return sorted(self.projects.values(), key=lambda p: p.updated_at, reverse=True)

    def search(self, query: str) -> List[Project]:
        needle = query.lower()
        return [p for p in self.all_projects() if needle in p.name.lower() or needle in p.description.lower()]

    def create_project(self, **data: Any) -> Project:
        project = Project.from_dict(data)
        if project.id in self.projects:
            raise ValidationError([f"Project id {project.id!r} already exists"])
        self.projects[project.id] = project
        self._store.put(STORE_PROJECTS, project.to_dict())
        logger.info("Project created", extra={"extra": {"project_id": project.id}})
        return project

    def update_project(self, project_id: str, **changes: Any) -> Project:
        project = self.require(project_id)
        unknown = sorted(set(changes) - UPDATABLE_FIELDS)
        if unknown:
            raise ValidationError([f"Unknown project field {k!r}" for k in unknown])
        if "name" in changes:
            if not (changes["name"] or "").strip():
                raise ValidationError(["Project name is required"])
            project.name = changes["name"]
        for name in ("description", "color", "icon"):
            if name in changes:
                setattr(project, name, changes[name] or "")
        if "metadata" in changes:
            project.metadata = dict(changes["metadata"] or {})
        project.updated_at = now_ms()
        self._store.put(STORE_PROJECTS, project.to_dict())
        return project

    def set_current(self, project_id: Optional[str]) -> None:
        """设置当前项目；传 None 表示清除。"""
        if project_id is not None:
            self.require(project_id)
        self.current_project_id = project_id
        self._store.set_setting(SETTING_CURRENT_PROJECT, project_id)

    def delete_project(
        self,
        project_id: str,
        cascade_delete_chats: bool = False,
        chat_manager: Optional[ChatManager] = None,
    ) -> None:
        """删除项目。

        - cascade_delete_chats=True: 通过 ChatManager 删除该项目下所有会话（由其自行修复当前会话）。
        - 否则: 仅把这些会话的 project_id 置空。
        项目删除后若它是当前项目，当前项目被清空而不是重新指派。
        """

        self.require(project_id)
        if chat_manager is not None:
            chats = chat_manager.chats_by_project(project_id)
            for chat in chats:
                if cascade_delete_chats:
                    chat_manager.delete_chat(chat.id)
                else:
                    chat_manager.update_chat(chat.id, project_id=None)
            logger.info(
                "Project chats detached" if not cascade_delete_chats else "Project chats deleted",
                extra={"extra": {"project_id": project_id, "chats": len(chats)}},
            )

        del self.projects[project_id]
        self._store.delete(STORE_PROJECTS, project_id)
        if self.current_project_id == project_id:
            self.set_current(None)

    def project_stats(self, project_id: str, chat_manager: ChatManager) -> Dict[str, Any]:
        chats = chat_manager.chats_by_project(project_id)
        return {
            "total_chats": len(chats),
            "total_messages": sum(len(c.messages) for c in chats),
            "last_updated": max((c.updated_at for c in chats), default=None),
        }

    def clone_project(self, project_id: str) -> Project:
        source = self.require(project_id)
        now = now_ms()
        clone = Project(
            id=generate_id("project"),
            name=f"{source.name} (Copy)",
            description=source.description,
            color=source.color,
            icon=source.icon,
            created_at=now,
            updated_at=now,
            metadata=copy.deepcopy(source.metadata),
        )
        self.projects[clone.id] = clone
        self._store.put(STORE_PROJECTS, clone.to_dict())
        return clone
