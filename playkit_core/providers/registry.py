"""服务端点与超时配置。

把“逻辑能力”（chat / object / image / 玩家接口）与具体 URL 路径、超时类型解耦，
上层只关心能力名，路径集中在这里维护。"""

from dataclasses import dataclass
from typing import Dict, Literal, Mapping

TimeoutKind = Literal["text", "stream", "image"]


@dataclass(frozen=True)
class EndpointConfig:
    """单个端点的配置。"""

    name: str
    path: str
    method: str = "POST"
    timeout_kind: TimeoutKind = "text"
    app_scoped: bool = True


CHAT = EndpointConfig(name="chat", path="chat")
CHAT_STREAM = EndpointConfig(name="chat_stream", path="chat", timeout_kind="stream")
OBJECT = EndpointConfig(name="object", path="generateObject")
IMAGE = EndpointConfig(name="image", path="image", timeout_kind="image")

EXCHANGE_JWT = EndpointConfig(name="exchange_jwt", path="/api/external/exchange-jwt", app_scoped=False)
PLAYER_INFO = EndpointConfig(name="player_info", path="/api/external/player-info", method="GET", app_scoped=False)


ENDPOINT_REGISTRY: Mapping[str, EndpointConfig] = {
    e.name: e for e in (CHAT, CHAT_STREAM, OBJECT, IMAGE, EXCHANGE_JWT, PLAYER_INFO)
}


def build_url(base_url: str, endpoint: EndpointConfig, app_id: str = "") -> str:
    base = base_url.rstrip("/")
    if endpoint.app_scoped:
        return f"{base}/ai/{app_id}/v1/{endpoint.path}"
    return f"{base}{endpoint.path}"


def timeout_for(settings, endpoint: EndpointConfig) -> float:
    timeouts: Dict[str, float] = {
        "text": settings.http_timeout,
        "stream": settings.stream_timeout,
        "image": settings.image_timeout,
    }
    return timeouts[endpoint.timeout_kind]


def get_endpoint(name: str) -> EndpointConfig:
    """根据名称获取 EndpointConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in ENDPOINT_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown endpoint: {name!r}")
