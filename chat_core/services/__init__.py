"""会话与项目实体管理。"""

from chat_core.services.chat_manager import ChatManager
from chat_core.services.project_manager import ProjectManager

__all__ = ["ChatManager", "ProjectManager"]
