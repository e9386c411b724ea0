"""
指标聚合服务包 (Metric Aggregation Services)

两条聚合流水线共享四个阶段 (Both pipelines share four stages):
- metric_source: 样本选取 (source selection)
- metric_shaping: 按指标族整形 (per-metric shaping)
- metric_alignment: 时间/主机透视 (alignment / pivot)
- instance_snapshot / instance_history: 默认值、派生字段与流水线组合 (defaulting, derivation, composition)
"""
