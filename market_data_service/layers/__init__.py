"""
数据流分层架构
  Layer 1a – Relay        : 转发节点轮询
  Layer 1b – Acquisition  : 请求编排与降级阶梯
  Layer 2  – Cache        : 进程内短 TTL 缓存
  Layer 3  – Processing   : 序列清洗
  Layer 4  – Analysis     : 技术指标计算
"""
