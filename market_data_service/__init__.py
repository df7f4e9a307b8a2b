"""
行情数据服务
面向组合看板的行情获取与分析服务，提供 HTTP 接口

架构分层：
  转发层     (Relay)        → 通过不可信的 CORS 转发节点访问上游
  获取层     (Acquisition)  → 精确请求 + 降级阶梯，失败返回不可用标记
  缓存层     (Cache)        → 进程内短 TTL 缓存
  处理层     (Processing)   → 序列清洗、去重、排序
  分析层     (Analysis)     → 涨跌幅、均线、趋势、年化波动率
"""

__version__ = "1.0.0"
