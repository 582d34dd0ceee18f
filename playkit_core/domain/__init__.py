"""领域层模型与协议。

包含：
- errors: 错误码分类表与 ErrorRecord。
- exceptions: 内部使用的业务异常类型。
- results: 对外返回的 Result / ObjectResult。
- models: Message / ChatRequest / ChatResult / AuthToken 等数据模型。
- conversation: 对话历史 ConversationHistory 与快照存储协议。
- schemas: 结构化输出使用的 SchemaRegistry。
- events: 显式观察者 Signal。
"""
