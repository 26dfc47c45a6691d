"""Level Service.

Pure mapping from lifetime earned points to levels. Nothing here touches the
database; levels are recomputed on every read from ``total_earned``.
"""

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class LevelDefinition:
    level: int
    title: str
    points_required: int


LEVEL_DEFINITIONS: tuple[LevelDefinition, ...] = (
    LevelDefinition(1, "Neuling", 0),
    LevelDefinition(2, "Helfer", 100),
    LevelDefinition(3, "Mitgestalter", 300),
    LevelDefinition(4, "Erfolgreicher", 600),
    LevelDefinition(5, "Champion", 1000),
    LevelDefinition(6, "Experte", 1500),
    LevelDefinition(7, "Meister", 2500),
    LevelDefinition(8, "Legende", 4000),
    LevelDefinition(9, "Held", 6000),
    LevelDefinition(10, "ChoreChamp", 10000),
)


def get_level_from_points(total_earned: int) -> LevelDefinition:
    """Highest level whose threshold is reached. Level 1 is the floor."""
    current = LEVEL_DEFINITIONS[0]
    for definition in LEVEL_DEFINITIONS:
        if definition.points_required <= total_earned:
            current = definition
        else:
            break
    return current


def get_next_level(current_level: int) -> LevelDefinition | None:
    for definition in LEVEL_DEFINITIONS:
        if definition.level == current_level + 1:
            return definition
    return None


def calculate_level_progress(
    points: int,
    current_threshold: int,
    next_threshold: int,
) -> int:
    """Percent of the way from the current to the next threshold, in [0, 100]."""
    if next_threshold <= current_threshold:
        return 100
    progress = (points - current_threshold) / (next_threshold - current_threshold) * 100
    return max(0, min(100, round(progress)))


def get_level_info(total_earned: int) -> dict:
    """Payload for the ``/levels/me`` endpoint."""
    current = get_level_from_points(total_earned)
    nxt = get_next_level(current.level)

    if nxt is None:
        progress = {
            "current_points": total_earned,
            "current_level_points": current.points_required,
            "next_level_points": None,
            "points_to_next_level": 0,
            "progress_percentage": 100,
            "is_max_level": True,
        }
    else:
        progress = {
            "current_points": total_earned,
            "current_level_points": current.points_required,
            "next_level_points": nxt.points_required,
            "points_to_next_level": max(0, nxt.points_required - total_earned),
            "progress_percentage": calculate_level_progress(
                total_earned, current.points_required, nxt.points_required,
            ),
            "is_max_level": False,
        }

    return {
        "level": asdict(current),
        "next_level": asdict(nxt) if nxt is not None else None,
        "progress": progress,
        "levels": [asdict(d) for d in LEVEL_DEFINITIONS],
    }
