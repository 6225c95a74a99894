"""
全局测试守卫: 防止测试改写真实结果文件。

ResultStore 默认写 RESULTS_DIR。测试应传 tmp_path；此 fixture 在测试开始时
记录 data/ 下受保护目录的文件清单与修改时间，结束后对比，如果文件被删除
或改写则报告警告 (不 fail，因为某些测试可能在 tmp 中操作)。
"""
import logging
import sys
import warnings
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

logger = logging.getLogger(__name__)

DATA_DIR = PROJECT_ROOT / "data"

# 需要保护的子目录
PROTECTED_DIRS = ["valuations", "ledger", "price", "results"]


def _snapshot_files() -> dict:
    """记录 data/ 下受保护目录的文件及其修改时间。"""
    files = {}
    for subdir in PROTECTED_DIRS:
        dir_path = DATA_DIR / subdir
        if dir_path.exists():
            for f in dir_path.iterdir():
                if f.is_file():
                    files[str(f.relative_to(DATA_DIR))] = f.stat().st_mtime
    return files


@pytest.fixture(autouse=True, scope="session")
def guard_real_data():
    """
    全局守卫: 记录测试开始时 data/ 目录的文件清单，
    测试结束后对比，如果文件被删除或改写则报告。
    """
    before = _snapshot_files()
    yield
    after = _snapshot_files()
    deleted = set(before) - set(after)
    touched = {k for k in before if k in after and after[k] != before[k]}
    if deleted or touched:
        msg = f"测试期间 data/ 中有文件被删除或改写: {sorted(deleted | touched)}"
        logger.error(msg)
        warnings.warn(msg, UserWarning)
