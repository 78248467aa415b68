"""Skill dependency graph for the practice curriculum."""

from __future__ import annotations

import json
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from schemas import DifficultyTier, SkillNode

# Completed nodes sit at full progress; locked nodes are held one short of it.
COMPLETE_PROGRESS = 100
LOCKED_PROGRESS_CAP = 99


class SkillGraphConfigError(ValueError):
    """Raised when a skill template references unknown nodes or forms a cycle."""


@dataclass(frozen=True)
class SkillTemplate:
    """Static description of one skill node."""

    id: str
    category: str
    name: str
    description: str
    difficulty_tier: DifficultyTier
    prerequisites: Tuple[str, ...] = field(default_factory=tuple)
    estimated_minutes: int = 10
    reward_xp: int = 50

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SkillTemplate":
        try:
            return cls(
                id=str(payload["id"]),
                category=str(payload["category"]),
                name=str(payload["name"]),
                description=str(payload.get("description", "")),
                difficulty_tier=DifficultyTier(payload["difficulty_tier"]),
                prerequisites=tuple(str(p) for p in payload.get("prerequisites", ())),
                estimated_minutes=int(payload.get("estimated_minutes", 10)),
                reward_xp=int(payload.get("reward_xp", 50)),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise SkillGraphConfigError(f"Invalid skill template entry: {payload!r}") from exc

    def to_node(self, *, progress: int = 0, is_unlocked: bool = False) -> SkillNode:
        return SkillNode(
            id=self.id,
            category=self.category,
            name=self.name,
            description=self.description,
            difficulty_tier=self.difficulty_tier,
            prerequisites=list(self.prerequisites),
            is_unlocked=is_unlocked,
            is_completed=progress == COMPLETE_PROGRESS,
            progress=progress,
            estimated_minutes=self.estimated_minutes,
            reward_xp=self.reward_xp,
        )


_B = DifficultyTier.BEGINNER
_I = DifficultyTier.INTERMEDIATE
_A = DifficultyTier.ADVANCED
_E = DifficultyTier.EXPERT
_M = DifficultyTier.MASTER

SKILL_TREE_TEMPLATE: Tuple[SkillTemplate, ...] = (
    # intervals
    SkillTemplate("int_1", "intervals", "Perfect Intervals", "Master perfect 4ths and 5ths", _B, (), 10, 50),
    SkillTemplate("int_2", "intervals", "Major Intervals", "Learn major 2nds, 3rds, 6ths, 7ths", _B, ("int_1",), 15, 75),
    SkillTemplate("int_3", "intervals", "Minor Intervals", "Practice minor intervals", _I, ("int_2",), 15, 100),
    SkillTemplate("int_4", "intervals", "Compound Intervals", "Intervals beyond an octave", _A, ("int_3",), 20, 150),
    SkillTemplate("int_5", "intervals", "Interval Speed Challenge", "Rapid interval identification", _E, ("int_4",), 25, 200),
    # chords
    SkillTemplate("chord_1", "chords", "Triads", "Major and minor triads", _B, (), 12, 60),
    SkillTemplate("chord_2", "chords", "Seventh Chords", "Dominant, major, minor 7ths", _I, ("chord_1", "int_2"), 18, 120),
    SkillTemplate("chord_3", "chords", "Extended Chords", "9ths, 11ths, 13ths", _A, ("chord_2",), 25, 180),
    SkillTemplate("chord_4", "chords", "Chord Progressions", "Common progressions (ii-V-I, etc)", _A, ("chord_2",), 30, 200),
    SkillTemplate("chord_5", "chords", "Jazz Harmony", "Advanced jazz chord voicings", _M, ("chord_3", "chord_4"), 40, 300),
    # scales
    SkillTemplate("scale_1", "scales", "Major Scales", "All 12 major scales", _B, (), 15, 70),
    SkillTemplate("scale_2", "scales", "Minor Scales", "Natural, harmonic, melodic minor", _I, ("scale_1",), 20, 110),
    SkillTemplate("scale_3", "scales", "Modes", "Dorian, Phrygian, Lydian, etc", _A, ("scale_2",), 30, 170),
    SkillTemplate("scale_4", "scales", "Exotic Scales", "Whole tone, diminished, etc", _E, ("scale_3",), 35, 220),
    # rhythm
    SkillTemplate("rhythm_1", "rhythm", "Basic Rhythms", "Quarter, half, whole notes", _B, (), 10, 50),
    SkillTemplate("rhythm_2", "rhythm", "Syncopation", "Off-beat rhythms", _I, ("rhythm_1",), 15, 100),
    SkillTemplate("rhythm_3", "rhythm", "Polyrhythms", "3 against 2, 4 against 3", _A, ("rhythm_2",), 25, 160),
    SkillTemplate("rhythm_4", "rhythm", "Complex Time Signatures", "5/4, 7/8, etc", _E, ("rhythm_3",), 30, 210),
    # sight reading
    SkillTemplate("sight_1", "sight_reading", "Treble Clef Reading", "Read treble clef fluently", _B, (), 12, 60),
    SkillTemplate("sight_2", "sight_reading", "Bass Clef Reading", "Read bass clef fluently", _B, (), 12, 60),
    SkillTemplate("sight_3", "sight_reading", "Grand Staff Reading", "Read both clefs simultaneously", _I, ("sight_1", "sight_2"), 20, 130),
    SkillTemplate("sight_4", "sight_reading", "Alto/Tenor Clef", "Read C clefs", _A, ("sight_3",), 25, 180),
    # ear training
    SkillTemplate("ear_1", "ear_training", "Pitch Matching", "Match single pitches", _B, (), 10, 55),
    SkillTemplate("ear_2", "ear_training", "Melodic Dictation", "Transcribe simple melodies", _I, ("ear_1", "int_2"), 20, 115),
    SkillTemplate("ear_3", "ear_training", "Harmonic Dictation", "Transcribe chord progressions", _A, ("ear_2", "chord_2"), 30, 190),
    SkillTemplate("ear_4", "ear_training", "Rhythmic Dictation", "Transcribe complex rhythms", _E, ("ear_2", "rhythm_3"), 25, 200),
)


class SkillGraph:
    """Validated prerequisite graph over a skill template.

    Adjacency is kept both ways: ``node -> prerequisites`` and the reverse
    ``node -> dependents``. The topological order is computed once during
    construction; unknown prerequisites, duplicate ids and cycles raise
    :class:`SkillGraphConfigError`.
    """

    def __init__(self, templates: Sequence[SkillTemplate]) -> None:
        self._templates: Dict[str, SkillTemplate] = {}
        for template in templates:
            if template.id in self._templates:
                raise SkillGraphConfigError(f"Duplicate skill node id: {template.id}")
            self._templates[template.id] = template

        self._prerequisites: Dict[str, Tuple[str, ...]] = {}
        self._dependents: Dict[str, List[str]] = {node_id: [] for node_id in self._templates}
        for node_id, template in self._templates.items():
            for prereq in template.prerequisites:
                if prereq not in self._templates:
                    raise SkillGraphConfigError(
                        f"Skill node {node_id} references unknown prerequisite {prereq}"
                    )
                if prereq == node_id:
                    raise SkillGraphConfigError(f"Skill node {node_id} depends on itself")
                self._dependents[prereq].append(node_id)
            self._prerequisites[node_id] = template.prerequisites

        self._order = self._topological_order()

    # ------------------------------------------------------------------
    def _topological_order(self) -> Tuple[str, ...]:
        remaining = {node_id: len(set(prereqs)) for node_id, prereqs in self._prerequisites.items()}
        ready = deque(node_id for node_id in self._templates if remaining[node_id] == 0)
        order: List[str] = []
        while ready:
            node_id = ready.popleft()
            order.append(node_id)
            for dependent in self._dependents[node_id]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    ready.append(dependent)
        if len(order) != len(self._templates):
            cyclic = sorted(node_id for node_id, count in remaining.items() if count > 0)
            raise SkillGraphConfigError(f"Skill template contains a cycle through: {', '.join(cyclic)}")
        return tuple(order)

    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._templates

    def templates(self) -> List[SkillTemplate]:
        """Templates in declaration order."""
        return list(self._templates.values())

    def get(self, node_id: str) -> Optional[SkillTemplate]:
        return self._templates.get(node_id)

    @property
    def topological_order(self) -> Tuple[str, ...]:
        return self._order

    def prerequisites_of(self, node_id: str) -> Tuple[str, ...]:
        return self._prerequisites[node_id]

    def dependents_of(self, node_id: str) -> List[str]:
        return list(self._dependents[node_id])

    def descendants(self, node_id: str) -> List[str]:
        """Every node reachable through the reverse index, in topological order."""
        seen: Set[str] = set()
        stack = list(self._dependents[node_id])
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            stack.extend(self._dependents[current])
        return [node_id for node_id in self._order if node_id in seen]

    def categories(self) -> List[str]:
        return list(dict.fromkeys(t.category for t in self._templates.values()))

    # ------------------------------------------------------------------
    def prerequisites_met(self, node_id: str, completed: Iterable[str]) -> bool:
        done = completed if isinstance(completed, (set, frozenset)) else set(completed)
        return all(prereq in done for prereq in self._prerequisites[node_id])

    def build_nodes(self, progress_by_id: Mapping[str, int]) -> List[SkillNode]:
        """Instantiate per-user nodes from seeded progress values.

        Nodes are resolved in topological order so a node's lock state only
        depends on its prerequisites. Locked nodes are capped below completion,
        which keeps every completed node's prerequisites completed.
        """
        resolved: Dict[str, SkillNode] = {}
        completed: Set[str] = set()
        for node_id in self._order:
            template = self._templates[node_id]
            progress = max(0, min(COMPLETE_PROGRESS, int(progress_by_id.get(node_id, 0))))
            unlocked = self.prerequisites_met(node_id, completed)
            if not unlocked:
                progress = min(progress, LOCKED_PROGRESS_CAP)
            node = template.to_node(progress=progress, is_unlocked=unlocked)
            if node.is_completed:
                completed.add(node_id)
            resolved[node_id] = node
        return [resolved[node_id] for node_id in self._templates]

    def propagate_unlocks(self, nodes: Dict[str, SkillNode], completed_id: str) -> List[str]:
        """Unlock dependents of ``completed_id`` whose prerequisites are now all done.

        ``nodes`` is updated in place. Returns the ids that changed state.
        """
        completed = {node_id for node_id, node in nodes.items() if node.is_completed}
        unlocked: List[str] = []
        for node_id in self.descendants(completed_id):
            node = nodes[node_id]
            if node.is_unlocked:
                continue
            if self.prerequisites_met(node_id, completed):
                node.is_unlocked = True
                unlocked.append(node_id)
        return unlocked

    # ------------------------------------------------------------------
    @classmethod
    def from_dicts(cls, entries: Iterable[Mapping[str, Any]]) -> "SkillGraph":
        return cls([SkillTemplate.from_dict(entry) for entry in entries])

    @classmethod
    def load_json(cls, path: Path) -> "SkillGraph":
        try:
            payload = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise SkillGraphConfigError(f"Cannot read skill template {path}: {exc}") from exc
        entries = payload.get("nodes") if isinstance(payload, dict) else payload
        if not isinstance(entries, list):
            raise SkillGraphConfigError(f"Skill template {path} must contain a list of nodes")
        return cls.from_dicts(entries)


DEFAULT_SKILL_GRAPH = SkillGraph(SKILL_TREE_TEMPLATE)


__all__ = [
    "COMPLETE_PROGRESS",
    "DEFAULT_SKILL_GRAPH",
    "LOCKED_PROGRESS_CAP",
    "SKILL_TREE_TEMPLATE",
    "SkillGraph",
    "SkillGraphConfigError",
    "SkillTemplate",
]
