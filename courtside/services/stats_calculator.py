"""
Advanced-stat formulas for team box scores.

Pure functions, no I/O. Every ratio returns 0 when its denominator is not
positive. Results are unrounded; callers round with round_stat when they
persist a value.

Formulas:
    possessions = FGA + 0.44 * FTA - OREB + TOV
    ORtg        = points / possessions * 100
    DRtg        = opponent points / possessions * 100
    NetRtg      = ORtg - DRtg
    eFG%        = (FGM + 0.5 * 3PM) / FGA * 100
    TS%         = points / (2 * (FGA + 0.44 * FTA)) * 100
"""
import math
from dataclasses import dataclass

FREE_THROW_WEIGHT = 0.44


def calculate_possessions(fga: float, fta: float, oreb: float, tov: float) -> float:
    return fga + FREE_THROW_WEIGHT * fta - oreb + tov


def calculate_offensive_rating(points: float, possessions: float) -> float:
    if possessions <= 0:
        return 0.0
    return points / possessions * 100


def calculate_defensive_rating(opp_points: float, possessions: float) -> float:
    if possessions <= 0:
        return 0.0
    return opp_points / possessions * 100


def calculate_net_rating(offensive_rating: float, defensive_rating: float) -> float:
    return offensive_rating - defensive_rating


def calculate_efg_pct(fg_made: float, three_made: float, fg_attempted: float) -> float:
    if fg_attempted <= 0:
        return 0.0
    return (fg_made + 0.5 * three_made) / fg_attempted * 100


def calculate_ts_pct(points: float, fg_attempted: float, ft_attempted: float) -> float:
    true_shot_attempts = 2 * (fg_attempted + FREE_THROW_WEIGHT * ft_attempted)
    if true_shot_attempts <= 0:
        return 0.0
    return points / true_shot_attempts * 100


def calculate_pct(made: float, attempted: float) -> float:
    if attempted <= 0:
        return 0.0
    return made / attempted * 100


def round_stat(value: float, decimals: int = 1) -> float:
    """
    Round half away from zero.

    Examples:
        >>> round_stat(112.474)
        112.5
        >>> round_stat(0.25)
        0.3
        >>> round_stat(1.235, 2)
        1.24
    """
    factor = 10 ** decimals
    scaled = abs(value) * factor
    # Cancel binary representation error before the half-up step
    rounded = math.floor(round(scaled, 6) + 0.5) / factor
    return math.copysign(rounded, value) if rounded else 0.0


@dataclass(frozen=True)
class AdvancedStats:
    pace: float
    offensive_rating: float
    defensive_rating: float
    net_rating: float
    efg_pct: float
    ts_pct: float

    def rounded(self, decimals: int = 1) -> "AdvancedStats":
        return AdvancedStats(
            pace=round_stat(self.pace, decimals),
            offensive_rating=round_stat(self.offensive_rating, decimals),
            defensive_rating=round_stat(self.defensive_rating, decimals),
            net_rating=round_stat(self.net_rating, decimals),
            efg_pct=round_stat(self.efg_pct, decimals),
            ts_pct=round_stat(self.ts_pct, decimals),
        )


def compute_team_event_advanced_stats(
    score: float,
    opp_score: float,
    fga: float,
    fta: float,
    oreb: float,
    tov: float,
    fg_made: float,
    three_made: float,
) -> AdvancedStats:
    """
    Single-game advanced stats for one team.

    Pace is the team's own possession estimate for the game.

    Example:
        >>> stats = compute_team_event_advanced_stats(
        ...     score=110, opp_score=102, fga=85, fta=20, oreb=10, tov=14,
        ...     fg_made=40, three_made=12,
        ... )
        >>> round_stat(stats.pace), round_stat(stats.offensive_rating)
        (97.8, 112.5)
    """
    pace = calculate_possessions(fga, fta, oreb, tov)
    offensive_rating = calculate_offensive_rating(score, pace)
    defensive_rating = calculate_defensive_rating(opp_score, pace)
    return AdvancedStats(
        pace=pace,
        offensive_rating=offensive_rating,
        defensive_rating=defensive_rating,
        net_rating=calculate_net_rating(offensive_rating, defensive_rating),
        efg_pct=calculate_efg_pct(fg_made, three_made, fga),
        ts_pct=calculate_ts_pct(score, fga, fta),
    )
