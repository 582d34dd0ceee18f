"""PlayKit Core 顶层包。

该包提供玩家认证与托管 AI 服务调用的客户端实现，
包括配置加载、错误分类、token 生命周期、请求管道、
对话补全（同步/流式）、结构化对象生成、图片生成与 NPC 对话封装。
"""

from playkit_core.api.context import PlayKitContext
from playkit_core.domain.models import Message
from playkit_core.domain.results import ObjectResult, Result

__all__ = ["PlayKitContext", "Message", "Result", "ObjectResult"]
