"""领域层模型与协议。

包含：
- models: Message / Chat / Project / ProviderConfig 等实体。
- store: 持久化端口 PersistencePort 抽象。
- exceptions: 业务异常类型定义。
"""
