"""配置管理模块。

支持从环境变量（前缀 PLAYKIT_）、.env 以及 playkit.yaml 加载配置，
优先级：显式传参 > 环境变量 > .env > YAML 文件。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 playkit.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("PLAYKIT_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "playkit.yaml",
        Path(__file__).resolve().parents[2] / "playkit.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class PlayKitSettings(BaseSettings):
    """SDK 配置（使用 Pydantic）。"""

    # ---- 服务端 ----
    base_url: str = Field(
        default="https://playkit.agentlandlab.com",
        description="PlayKit 服务基础 URL",
    )
    app_id: str = Field(default="", description="游戏/应用 ID，拼接在 /ai/{app_id}/v1/ 路径中")
    developer_token: Optional[str] = Field(
        default=None,
        description="开发者 token，仅用于本地测试；设置后跳过全部远程校验",
    )

    # ---- 模型与生成参数 ----
    default_chat_model: str = Field(default="default-chat", description="对话默认模型")
    default_object_model: str = Field(default="default-chat", description="结构化输出默认模型")
    default_image_model: str = Field(default="default-image", description="图片生成默认模型")
    default_temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="默认生成温度")

    # ---- 超时（秒） ----
    http_timeout: float = Field(default=30.0, ge=1.0, description="文本/玩家资料请求超时")
    stream_timeout: float = Field(default=120.0, ge=1.0, description="流式请求超时")
    image_timeout: float = Field(default=120.0, ge=1.0, description="图片生成请求超时")

    # ---- token 存储 ----
    token_storage_dir: str = Field(default=".playkit", description="应用内 token 存储目录")
    shared_token_path: str = Field(
        default_factory=lambda: str(Path.home() / ".playkit" / "shared_token.enc"),
        description="跨应用共享 token 的加密文件路径",
    )
    shared_token_key: Optional[str] = Field(
        default=None,
        description="共享 token 文件的 Fernet 密钥；为空时由本机信息派生",
    )
    shared_store_read_only: bool = Field(default=False, description="共享存储只读（Web 平台）")
    local_expiry_check: bool = Field(default=True, description="是否在本地检查 token 过期时间")

    # ---- 持久化与日志 ----
    storage_root: str = Field(default=".storage", description="对话快照存储根目录")
    log_dir: str = Field(default="logs", description="日志目录")
    log_level: str = Field(default="INFO", description="日志级别")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_prefix="PLAYKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("developer_token")
    @classmethod
    def validate_developer_token(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("Developer token seems too short")
        return v

    @field_validator("base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = PlayKitSettings()

# 类型别名，让外部代码可以使用 Settings 类型
Settings = PlayKitSettings
