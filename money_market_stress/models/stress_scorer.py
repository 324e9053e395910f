"""
Composite Money-Market Stress Score
===================================

Combines four bounded sub-scores into one 0-100 index:

    repo        0-25   |GC repo - SOFR| (pp) x 50
    credit      0-35   min(20, CP-OIS x 0.4) + min(15, CP-TBILL x 0.15)   (bps)
    fx          0-20   mean 7-day FX return volatility (%) x 10
    volatility  0-20   7-day SOFR return volatility (%) x 5

Each sub-score is clamped to its ceiling before summation; the total is
clamped to [0, 100] and rounded. Levels: critical > 70, high > 50,
medium > 30, else low.

A missing input zeroes only the sub-formula that needs it, so partial data
lowers the precision of the score, never its availability.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence

import numpy as np

from ..data.snapshot import FX_PAIRS, RateSnapshot
from ..features.spreads import SPREADS_BY_NAME, SpreadCalculator
from ..features.transforms import return_volatility, values_of

logger = logging.getLogger(__name__)

REPO_CAP = 25.0
CREDIT_CAP = 35.0
FX_CAP = 20.0
VOLATILITY_CAP = 20.0

REPO_MULTIPLIER = 50.0
FUNDING_OIS_MULTIPLIER, FUNDING_OIS_CAP = 0.4, 20.0
TED_MULTIPLIER, TED_CAP = 0.15, 15.0
FX_MULTIPLIER = 10.0
VOLATILITY_MULTIPLIER = 5.0

FX_LOOKBACK = 30
VOLATILITY_WINDOW = 7

REPO_RATE = "GCF"
BENCHMARK_RATE = "SOFR"

LEVEL_THRESHOLDS = (("critical", 70), ("high", 50), ("medium", 30))


def _clamp(value: float, ceiling: float) -> float:
    return float(np.clip(value, 0.0, ceiling))


def stress_level(score: float) -> str:
    for level, threshold in LEVEL_THRESHOLDS:
        if score > threshold:
            return level
    return "low"


@dataclass(frozen=True)
class StressComponents:
    repo: float = 0.0
    credit: float = 0.0
    fx: float = 0.0
    volatility: float = 0.0

    def total(self) -> float:
        return self.repo + self.credit + self.fx + self.volatility

    def to_dict(self) -> Dict[str, int]:
        return {
            "repo": int(round(self.repo)),
            "credit": int(round(self.credit)),
            "fx": int(round(self.fx)),
            "volatility": int(round(self.volatility)),
        }


@dataclass(frozen=True)
class StressResult:
    score: int
    level: str
    components: StressComponents
    details: Dict = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            "score": self.score,
            "level": self.level,
            "components": self.components.to_dict(),
            "details": self.details,
        }


class StressScorer:
    """
    Score a snapshot against its recent history.

    Usage:
        result = StressScorer().compute(snapshot, history_store.window())
        result.score, result.level
    """

    def __init__(self, spread_calculator: Optional[SpreadCalculator] = None):
        self.spreads = spread_calculator or SpreadCalculator()

    # ------------------------------------------------------------------
    # Sub-analyses
    # ------------------------------------------------------------------

    def analyze_repo(self, snapshot: RateSnapshot) -> Dict:
        """GC repo vs benchmark spread in percentage points, with a stress level."""
        repo = snapshot.get(REPO_RATE)
        benchmark = snapshot.get(BENCHMARK_RATE)
        analysis = {"repoSpread": None, "stressLevel": "low"}
        if repo is None or benchmark is None:
            return analysis

        spread = abs(repo - benchmark)
        analysis["repoSpread"] = round(spread, 4)
        if spread > 0.5:
            analysis["stressLevel"] = "high"
        elif spread > 0.25:
            analysis["stressLevel"] = "medium"
        return analysis

    def analyze_credit(self, spreads: Mapping[str, Optional[float]]) -> Dict:
        """Per-spread credit stress levels and the worst of them."""
        order = ["low", "medium", "high", "critical"]
        analysis = {}
        worst = "low"
        for name in ("CP-OIS", "CP-TBILL"):
            value = spreads.get(name)
            level = "low" if value is None else SPREADS_BY_NAME[name].classify(value).lower()
            analysis[name] = level
            if order.index(level) > order.index(worst):
                worst = level
        analysis["overallCreditStress"] = worst
        return analysis

    def analyze_fx(self, snapshot: RateSnapshot, history: Sequence[Mapping]) -> Dict:
        """7-day return volatility per FX pair over its last 30 history points."""
        volatility = {}
        level = "low"
        for pair in FX_PAIRS:
            series = values_of(history, pair)
            if snapshot.get(pair) is None or not series:
                continue
            vol = return_volatility(series[-FX_LOOKBACK:], VOLATILITY_WINDOW)
            volatility[pair] = round(vol, 6)
            if vol > 2.0:
                level = "high"
            elif vol > 1.0 and level == "low":
                level = "medium"
        return {"volatility": volatility, "stressLevel": level}

    # ------------------------------------------------------------------
    # Composite
    # ------------------------------------------------------------------

    def compute(self, snapshot: RateSnapshot, history: Sequence[Mapping]) -> StressResult:
        """
        Composite stress score.

        Parameters
        ----------
        snapshot : RateSnapshot
            Current rates
        history : sequence of dict
            HistoryStore window, oldest first

        Returns
        -------
        StressResult
        """
        spread_values, _ = self.spreads.compute(snapshot)

        repo_analysis = self.analyze_repo(snapshot)
        repo_score = 0.0
        if repo_analysis["repoSpread"] is not None:
            repo_score = _clamp(repo_analysis["repoSpread"] * REPO_MULTIPLIER, REPO_CAP)

        credit_analysis = self.analyze_credit(spread_values)
        credit_score = 0.0
        funding_ois = spread_values.get("CP-OIS")
        if funding_ois is not None:
            credit_score += _clamp(funding_ois * FUNDING_OIS_MULTIPLIER, FUNDING_OIS_CAP)
        ted = spread_values.get("CP-TBILL")
        if ted is not None:
            credit_score += _clamp(ted * TED_MULTIPLIER, TED_CAP)
        credit_score = _clamp(credit_score, CREDIT_CAP)

        fx_analysis = self.analyze_fx(snapshot, history)
        fx_vols = list(fx_analysis["volatility"].values())
        fx_score = _clamp(float(np.mean(fx_vols)) * FX_MULTIPLIER, FX_CAP) if fx_vols else 0.0

        benchmark_vol = return_volatility(values_of(history, BENCHMARK_RATE), VOLATILITY_WINDOW)
        volatility_score = _clamp(benchmark_vol * VOLATILITY_MULTIPLIER, VOLATILITY_CAP)

        components = StressComponents(
            repo=repo_score,
            credit=credit_score,
            fx=fx_score,
            volatility=volatility_score,
        )
        total = float(np.clip(components.total(), 0.0, 100.0))
        score = int(np.floor(total + 0.5))

        logger.debug(
            f"Stress {score}: repo={repo_score:.1f} credit={credit_score:.1f} "
            f"fx={fx_score:.1f} vol={volatility_score:.1f}"
        )

        return StressResult(
            score=score,
            level=stress_level(total),
            components=components,
            details={
                "repo": repo_analysis,
                "credit": credit_analysis,
                "fx": fx_analysis,
                "volatility": {"SOFR": round(benchmark_vol, 6)},
                "spreads": spread_values,
            },
        )
