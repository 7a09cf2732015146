"""
Tool recommendation from surface analysis.

Scores candidate tools for the finishing and clearing roles. V-bits are
preferred for finishing whenever their flutes reach the model depth; ball
nose and tapered ball nose tools qualify only when their tip fits the
tightest concave radius. Clearing tools are ranked by how many islands
they fit into.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List

from reliefcam.carve.island_detector import IslandResult
from reliefcam.carve.surface_analysis import CurvatureResult
from reliefcam.core.tools import ToolGeometry, ToolType

MAX_RESULTS = 5


class ToolRole(Enum):
    FINISHING = "finishing"
    CLEARING = "clearing"


@dataclass
class ToolCandidate:
    """A scored tool with a human-readable explanation."""

    geometry: ToolGeometry
    role: ToolRole = ToolRole.FINISHING
    score: float = 0.0
    reasoning: str = ""


@dataclass
class RecommendationInput:
    curvature: CurvatureResult = field(default_factory=CurvatureResult)
    islands: IslandResult = field(default_factory=IslandResult)
    model_depth_mm: float = 0.0
    stock_thickness_mm: float = 0.0


@dataclass
class RecommendationResult:
    finishing: List[ToolCandidate] = field(default_factory=list)
    clearing: List[ToolCandidate] = field(default_factory=list)  # Empty without islands
    needs_clearing: bool = False


def _flutes_too_short(geom: ToolGeometry, depth: float) -> bool:
    return 0.0 < geom.flute_length < depth


def score_v_bit(geom: ToolGeometry, inp: RecommendationInput) -> float:
    if _flutes_too_short(geom, inp.model_depth_mm):
        return 0.0
    score = 0.8
    angle = geom.included_angle
    if angle <= 30.0:
        score += 0.15
    elif angle <= 60.0:
        score += 0.10
    elif angle <= 90.0:
        score += 0.05
    return min(score, 1.0)


def _score_ball(geom: ToolGeometry, inp: RecommendationInput, base: float) -> float:
    if _flutes_too_short(geom, inp.model_depth_mm):
        return 0.0
    min_radius = inp.curvature.min_concave_radius
    if min_radius > 0.0 and geom.tip_radius > min_radius:
        return 0.0
    score = base
    if min_radius > 0.0 and geom.tip_radius > 0.0:
        score += 0.2 * geom.tip_radius / min_radius
    return min(score, 1.0)


def score_ball_nose(geom: ToolGeometry, inp: RecommendationInput) -> float:
    return _score_ball(geom, inp, 0.6)


def score_tapered_ball_nose(geom: ToolGeometry, inp: RecommendationInput) -> float:
    # Rigid taper ranks ahead of a plain ball nose of the same tip.
    return _score_ball(geom, inp, 0.7)


def _clearable(geom: ToolGeometry, islands: IslandResult) -> List[float]:
    """min_clear_diameter of each island the tool fits into."""
    return [i.min_clear_diameter for i in islands.islands if geom.diameter <= i.min_clear_diameter]


def score_clearing_tool(geom: ToolGeometry, inp: RecommendationInput) -> float:
    if geom.tool_type not in (ToolType.END_MILL, ToolType.BALL_NOSE):
        return 0.0
    if geom.diameter <= 0.0 or not inp.islands.islands:
        return 0.0

    deepest = max(i.depth for i in inp.islands.islands)
    if _flutes_too_short(geom, deepest):
        return 0.0

    fits = _clearable(geom, inp.islands)
    if not fits:
        return 0.0

    score = 0.7 * len(fits) / len(inp.islands.islands)
    if geom.tool_type == ToolType.END_MILL:
        score += 0.2
    tightest = min(fits)
    if tightest > 0.0:
        score += 0.1 * geom.diameter / tightest
    return min(score, 1.0)


_FINISHING_SCORERS = {
    ToolType.V_BIT: score_v_bit,
    ToolType.BALL_NOSE: score_ball_nose,
    ToolType.TAPERED_BALL_NOSE: score_tapered_ball_nose,
}


def build_reasoning(geom: ToolGeometry, role: ToolRole, inp: RecommendationInput) -> str:
    if role == ToolRole.FINISHING:
        if geom.tool_type == ToolType.V_BIT:
            text = f"V-bit {geom.included_angle:g} deg: primary carving tool, sharp tip reaches fine detail"
        elif geom.tool_type == ToolType.TAPERED_BALL_NOSE:
            text = f"Tapered ball nose R{geom.tip_radius:g}mm: rigid taper with rounded tip for smooth surfaces"
        else:
            text = f"Ball nose R{geom.tip_radius:g}mm: smooth curves, good for organic shapes"
        if inp.curvature.min_concave_radius > 0.0:
            text += f". Min feature radius: {inp.curvature.min_concave_radius:.3g}mm"
        return text

    if geom.tool_type == ToolType.END_MILL:
        text = f"Flat end mill {geom.diameter:g}mm: fast island clearing with flat bottom"
    else:
        text = f"Ball nose {geom.diameter:g}mm: island clearing with rounded profile"
    return text + f". Clears {len(_clearable(geom, inp.islands))}/{len(inp.islands.islands)} islands"


class ToolRecommender:
    """
    Ranks a candidate tool list against analysis results.

    Usage::

        rec = ToolRecommender()
        for tool in library:
            rec.add_candidate(tool)
        result = rec.recommend(RecommendationInput(curvature, islands, model_depth_mm=6.0))
    """

    def __init__(self) -> None:
        self._candidates: List[ToolGeometry] = []

    @property
    def candidates(self) -> List[ToolGeometry]:
        return list(self._candidates)

    def add_candidate(self, geometry: ToolGeometry) -> None:
        self._candidates.append(geometry)

    def clear_candidates(self) -> None:
        self._candidates.clear()

    def recommend(self, inp: RecommendationInput) -> RecommendationResult:
        result = RecommendationResult(needs_clearing=inp.islands.has_islands)

        for geom in self._candidates:
            scorer = _FINISHING_SCORERS.get(geom.tool_type)
            score = scorer(geom, inp) if scorer else 0.0
            if score > 0.0:
                result.finishing.append(
                    ToolCandidate(geom, ToolRole.FINISHING, score, build_reasoning(geom, ToolRole.FINISHING, inp))
                )

        if result.needs_clearing:
            for geom in self._candidates:
                score = score_clearing_tool(geom, inp)
                if score > 0.0:
                    result.clearing.append(
                        ToolCandidate(geom, ToolRole.CLEARING, score, build_reasoning(geom, ToolRole.CLEARING, inp))
                    )

        result.finishing = sorted(result.finishing, key=lambda c: -c.score)[:MAX_RESULTS]
        result.clearing = sorted(result.clearing, key=lambda c: -c.score)[:MAX_RESULTS]
        return result
