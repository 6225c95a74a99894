"""
Performance Desk 配置
"""
import os
from pathlib import Path
from dotenv import load_dotenv

# 项目根目录
PROJECT_ROOT = Path(__file__).parent.parent

# 自动加载 .env（覆盖默认参数）
load_dotenv(PROJECT_ROOT / ".env")

# 数据目录
DATA_DIR = Path(os.environ.get("PERF_DATA_DIR", PROJECT_ROOT / "data"))
VALUATION_DIR = DATA_DIR / "valuations"
LEDGER_DIR = DATA_DIR / "ledger"
RESULTS_DIR = Path(os.environ.get("PERF_RESULTS_DIR", DATA_DIR / "results"))

# 报告货币 (ISO 4217)
REPORTING_CURRENCY = os.environ.get("REPORTING_CURRENCY", "CAD").upper()

# ============ Return Calculation ============

# Interest 是否视为外部现金流 (默认: 内部收益，不做中性化)
INTEREST_IS_EXTERNAL = os.environ.get("INTEREST_IS_EXTERNAL", "false").lower() in ("1", "true", "yes")

# 缺失估值日处理: "exclude" 跳过该日 | "forward_fill" 该日收益记 0
MISSING_VALUATION_POLICY = os.environ.get("MISSING_VALUATION_POLICY", "exclude").lower()
MISSING_VALUATION_POLICIES = ("exclude", "forward_fill")

# total == securities + cash 的容差
VALUATION_TOLERANCE = float(os.environ.get("VALUATION_TOLERANCE", "0.01"))

# ============ Risk ============

# 年化因子: 252 交易日; 按自然日估值的组合可设为 365
ANNUALIZATION_FACTOR = int(os.environ.get("ANNUALIZATION_FACTOR", "252"))

# ============ Attribution ============

# 贡献之和 vs 组合收益 的可接受偏差 (50 bps)
ATTRIBUTION_TOLERANCE = float(os.environ.get("ATTRIBUTION_TOLERANCE", "0.005"))

# 未映射 symbol 的资产类别
UNCLASSIFIED_ASSET_CLASS = os.environ.get("UNCLASSIFIED_ASSET_CLASS", "Other")

# ============ Benchmark ============

SUPPORTED_REBALANCE_POLICIES = ("Daily",)

# ============ Batch ============

BATCH_MAX_WORKERS = int(os.environ.get("BATCH_MAX_WORKERS", "4"))

# ============ Logging ============

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
