"""
Result store — idempotent JSON persistence of computed results.

Data is persisted as JSON under RESULTS_DIR, one file per result kind.
Each record is keyed by (entity, period, reporting currency); saving the
same key again overwrites it, so re-running a day never duplicates.
"""
import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from config.settings import RESULTS_DIR
from performance.core.schema import (
    ContributionRecord,
    DailyReturn,
    EntityRef,
    PeriodPerformance,
    RiskCard,
    RollingReturnSet,
    TransactionCostSummary,
)

logger = logging.getLogger(__name__)

# Result kinds (one JSON file each)
KINDS = ("daily_returns", "period_performance", "rolling", "contribution", "risk", "costs")


def result_key(entity: EntityRef, period: str, reporting_currency: str) -> str:
    return f"{entity.key}|{period}|{reporting_currency}"


class ResultStore:
    """Upsert-by-key JSON store. Writes are serialised by a lock."""

    def __init__(self, results_dir: Optional[Path] = None):
        self.results_dir = Path(results_dir or RESULTS_DIR)
        self._lock = threading.Lock()

    # -----------------------------------------------------------------------
    # Generic upsert / lookup
    # -----------------------------------------------------------------------

    def upsert(self, kind: str, records: Dict[str, dict]) -> int:
        """
        Insert or overwrite records of one kind.

        Args:
            kind: One of KINDS.
            records: {result_key: payload}.

        Returns:
            Number of records written.
        """
        if kind not in KINDS:
            raise ValueError(f"Unknown result kind '{kind}'. Expected one of {KINDS}")
        if not records:
            return 0
        with self._lock:
            data = self._load(kind)
            stamp = datetime.now().isoformat()
            for key, payload in records.items():
                data[key] = {**payload, "computed_at": stamp}
            self._save(kind, data)
        logger.info(f"Saved {len(records)} {kind} record(s) to {self._path(kind)}")
        return len(records)

    def get(self, kind: str, entity: EntityRef, period: str, reporting_currency: str) -> Optional[dict]:
        return self._load(kind).get(result_key(entity, period, reporting_currency))

    def all(self, kind: str) -> Dict[str, dict]:
        return self._load(kind)

    # -----------------------------------------------------------------------
    # Typed helpers
    # -----------------------------------------------------------------------

    def save_daily_returns(self, returns: Iterable[DailyReturn]) -> int:
        records = {
            result_key(r.entity, r.date.isoformat(), r.reporting_currency): r.to_dict()
            for r in returns
        }
        return self.upsert("daily_returns", records)

    def load_daily_returns(self, entity: EntityRef, reporting_currency: str) -> List[DailyReturn]:
        prefix = f"{entity.key}|"
        suffix = f"|{reporting_currency}"
        rows = [
            DailyReturn.from_dict(v) for k, v in self._load("daily_returns").items()
            if k.startswith(prefix) and k.endswith(suffix)
        ]
        return sorted(rows, key=lambda r: r.date)

    def save_period_performance(self, entity: EntityRef, perf: PeriodPerformance) -> int:
        period = f"{perf.start.isoformat()}..{perf.end.isoformat()}:{perf.method.value}"
        payload = {"entity": entity.to_dict(), **perf.to_dict()}
        return self.upsert("period_performance", {result_key(entity, period, perf.reporting_currency): payload})

    def save_rolling(self, entity: EntityRef, reporting_currency: str, rolling: RollingReturnSet) -> int:
        payload = {"entity": entity.to_dict(), **rolling.to_dict()}
        key = result_key(entity, rolling.as_of.isoformat(), reporting_currency)
        return self.upsert("rolling", {key: payload})

    def save_contributions(self, entity: EntityRef, records: Iterable[ContributionRecord]) -> int:
        rows = {}
        for r in records:
            period = f"{r.start.isoformat()}..{r.end.isoformat()}:{r.level.value}:{r.key}"
            rows[result_key(entity, period, r.reporting_currency)] = {"entity": entity.to_dict(), **r.to_dict()}
        return self.upsert("contribution", rows)

    def save_risk(self, entity: EntityRef, period: str, reporting_currency: str, card: RiskCard) -> int:
        payload = {"entity": entity.to_dict(), **card.to_dict()}
        return self.upsert("risk", {result_key(entity, period, reporting_currency): payload})

    def save_costs(self, entity: EntityRef, period: str, summaries: Iterable[TransactionCostSummary]) -> int:
        rows = {
            result_key(entity, period, s.currency): {"entity": entity.to_dict(), **s.to_dict()}
            for s in summaries
        }
        return self.upsert("costs", rows)

    # -----------------------------------------------------------------------
    # Internal
    # -----------------------------------------------------------------------

    def _path(self, kind: str) -> Path:
        return self.results_dir / f"{kind}.json"

    def _load(self, kind: str) -> Dict[str, dict]:
        path = self._path(kind)
        if not path.exists():
            return {}
        try:
            with open(path, "r") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            logger.error(f"Failed to load {path}: {e}")
            return {}

    def _save(self, kind: str, data: Dict[str, dict]) -> None:
        self.results_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(kind)
        tmp = path.with_suffix(".json.tmp")
        with open(tmp, "w") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=True)
        tmp.replace(path)
