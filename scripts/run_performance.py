#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Performance Desk 每日批处理 - 定时任务入口

功能：
1. 从 CSV 加载估值序列 / 现金流 / 交易
2. 并行计算各实体的日收益、滚动收益、风险指标
3. 结果写入 RESULTS_DIR (按 key 覆盖，可重复运行)
4. 可选: 生成 markdown 报告

Usage:
    python scripts/run_performance.py --start 2025-01-01 --end 2025-12-31
    python scripts/run_performance.py --entities Portfolio:P1 --benchmark XIC:0.6,XBB:0.4 --report
"""
import argparse
import logging
import signal
import sys
import threading
import time
from datetime import date
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.settings import (
    BATCH_MAX_WORKERS,
    LOG_FORMAT,
    LOG_LEVEL,
    REPORTING_CURRENCY,
    RESULTS_DIR,
)
from performance.core.errors import PerformanceError
from performance.core.schema import (
    BenchmarkComponent,
    BenchmarkDefinition,
    DateRange,
    EntityKind,
    EntityRef,
)
from performance.benchmark.attribution import AttributionEngine
from performance.loaders import (
    load_asset_classes,
    load_flows,
    load_portfolios,
    load_price_returns,
    load_transactions,
    load_valuations,
)
from performance.report import generate_report
from performance.results.store import ResultStore
from performance.service import PerformanceService

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger(__name__)


def parse_entities(text: str):
    """'Portfolio:P1,Account:A1' -> [EntityRef, ...]"""
    refs = []
    for item in text.split(","):
        item = item.strip()
        if not item:
            continue
        kind, _, entity_id = item.partition(":")
        refs.append(EntityRef(EntityKind(kind), entity_id))
    return refs


def parse_benchmark(text: str, currency: str) -> BenchmarkDefinition:
    """'XIC:0.6,XBB:0.4' -> BenchmarkDefinition"""
    components = []
    for item in text.split(","):
        instrument, _, weight = item.strip().partition(":")
        components.append(BenchmarkComponent(instrument, weight or "1"))
    return BenchmarkDefinition(name=text, reporting_currency=currency, components=tuple(components))


def entity_costs(service, entity, transactions, portfolios, date_range):
    """Account: its own transactions. Portfolio: per-account summaries merged by currency."""
    if entity.kind == EntityKind.ACCOUNT:
        return service.summarize_costs([t for t in transactions if t.account_id == entity.id], date_range)
    if entity.kind == EntityKind.PORTFOLIO:
        portfolio = next((p for p in portfolios if p.id == entity.id), None)
        if portfolio is None:
            logger.warning(f"组合 {entity.id} 未在 portfolios.csv 中定义, 费用为空")
            return []
        return service.costs.merge(*(
            service.summarize_costs([t for t in transactions if t.account_id == account_id], date_range)
            for account_id in portfolio.account_ids
        ))
    return []


def main():
    parser = argparse.ArgumentParser(description="Performance Desk 每日批处理")
    parser.add_argument("--start", type=str, required=True, help="开始日期 YYYY-MM-DD")
    parser.add_argument("--end", type=str, default=date.today().isoformat(), help="结束日期 (默认今天)")
    parser.add_argument("--currency", type=str, default=REPORTING_CURRENCY, help="报告货币")
    parser.add_argument("--entities", type=str, help="实体列表, 例如 Portfolio:P1,Account:A1 (默认全部)")
    parser.add_argument("--benchmark", type=str, help="基准成分, 例如 XIC:0.6,XBB:0.4")
    parser.add_argument("--workers", type=int, default=BATCH_MAX_WORKERS, help="并行线程数")
    parser.add_argument("--report", action="store_true", help="生成 markdown 报告")
    parser.add_argument("--no-save", action="store_true", help="不写入结果文件")
    args = parser.parse_args()

    logger.info("=" * 60)
    logger.info("Performance Desk 批处理")
    logger.info("=" * 60)
    start_time = time.time()

    try:
        date_range = DateRange(args.start, args.end)
        currency = args.currency.upper()

        # 1. 加载数据
        portfolios = load_portfolios()
        valuations = load_valuations()
        flows = load_flows(portfolios=portfolios)
        transactions = load_transactions()

        benchmark = parse_benchmark(args.benchmark, currency) if args.benchmark else None
        prices = load_price_returns([c.instrument for c in benchmark.components]) if benchmark else None

        store = None if args.no_save else ResultStore()
        attribution = AttributionEngine(asset_class_map=load_asset_classes())
        service = PerformanceService(valuations, flows, prices=prices, attribution=attribution, store=store)

        entities = parse_entities(args.entities) if args.entities else valuations.entities()
        if not entities:
            logger.error("未找到任何估值实体")
            return 1

        # 2. 基准
        benchmark_series = None
        if benchmark is not None:
            benchmark_series = service.compute_benchmark_returns(benchmark, date_range)
            logger.info(f"基准 {benchmark.name}: {len(benchmark_series)} 天")

        # 3. 并行计算 (Ctrl+C 取消，未完成实体的结果丢弃)
        cancel_event = threading.Event()
        signal.signal(signal.SIGINT, lambda *_: cancel_event.set())
        results = service.run_batch(
            entities, date_range, currency,
            max_workers=args.workers,
            cancel_event=cancel_event,
            benchmark_series=benchmark_series,
        )

        # 4. 报告
        if args.report:
            report_dir = RESULTS_DIR / "reports"
            report_dir.mkdir(parents=True, exist_ok=True)
            for result in results.values():
                if result.status != "ok":
                    continue
                relative = None
                if benchmark_series is not None:
                    relative = service.compute_relative_performance(result.daily_returns, benchmark_series)
                markdown = generate_report(
                    result.entity, currency,
                    rolling=result.rolling,
                    monthly=service.rolling.monthly_table(result.daily_returns),
                    risk=result.risk,
                    relative=relative,
                    contributions=service.compute_contribution(result.entity, date_range.start, date_range.end, currency),
                    total_return=service.calculator.link(result.daily_returns),
                    costs=entity_costs(service, result.entity, transactions, portfolios, date_range),
                    allocation=service.compute_allocation(result.entity, date_range.end, currency),
                )
                path = report_dir / f"{result.entity.key.replace(':', '_')}_{date_range.end.isoformat()}.md"
                path.write_text(markdown, encoding="utf-8")
                logger.info(f"报告已写入 {path}")

    except PerformanceError as e:
        logger.error(f"输入错误: {e}")
        return 1

    elapsed = time.time() - start_time
    for key, result in sorted(results.items()):
        logger.info(f"  {key}: {result.status} ({len(result.daily_returns)} 天) {result.error}")
    logger.info(f"完成, 耗时 {elapsed:.1f}s")
    return 0 if all(r.status == "ok" for r in results.values()) else 2


if __name__ == "__main__":
    sys.exit(main())
