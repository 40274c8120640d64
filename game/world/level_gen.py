# game/world/level_gen.py
"""Seeded level graph generator.

Generation runs in two phases.  The first grows a spanning tree one node at a
time: parent samples and step directions come from a single sequential
:class:`GameRNG` stream, so node ``i`` depends on every node before it.  Its
output (tree edges and positions) does not depend on ``complexity``.  Every
complexity-driven edge is queued as a link with the complexity at which it
switches on; the second phase applies the links in activation order.  A higher
complexity therefore applies a longer prefix of the same list, so it can only
add edges.

Node types, mesh variants, branch and extra-edge rolls and spawn rolls are
hashed per node, which keeps them reproducible in isolation and makes the
danger response monotonic for a fixed seed.
"""
from __future__ import annotations

import math
from collections import deque
from dataclasses import dataclass
from typing import Dict, Iterator, List, NamedTuple, Optional, Set, Tuple

import structlog

from game.procedural.chunk_tag import LevelNodeType, format_mesh_tag
from game_rng import GameRNG
from utils.hashing import U32_MASK, mix01

log = structlog.get_logger(__name__)

Vec3 = Tuple[float, float, float]

# --- Configuration ---
MAX_DEGREE = 5
PLACEMENT_ATTEMPTS = 8
MIN_SEPARATION_FACTOR = 0.45
EXTRA_EDGE_ATTEMPTS = 2
EXTRA_EDGE_BASE_REACH = 1.5
JUNCTION_EDGE_BONUS = 1.5
BRANCH_BASE = 0.18
BRANCH_SLOPE = 0.62
VARIANT_NODE_MUL = 2654435761
VARIANT_TYPE_MUL = 97

CARDINAL_DIRECTIONS: Tuple[Vec3, ...] = (
    (1.0, 0.0, 0.0),
    (-1.0, 0.0, 0.0),
    (0.0, 0.0, 1.0),
    (0.0, 0.0, -1.0),
)

# Rooms, corridors and junctions trade places as complexity moves, so they
# take the plain base step.
STEP_SCALE: Dict[LevelNodeType, float] = {
    LevelNodeType.DEAD_END: 0.85,
    LevelNodeType.SHAFT: 1.0,
}

# Per-node hash salts
SALT_NODE_TYPE = 0x1F3D5B79
SALT_ROOM_SPLIT = 0x2B7E1516
SALT_BRANCH = 0x4F1BBCDC
SALT_EXTRA_EDGES = (0x6A09E667, 0x510E527F)
SALT_SPAWN_DANGER = 0x3C6EF372
SALT_SPAWN_LOOT = 0x5BE0CD19

SPAWN_PLAYER_START = "player_start"
SPAWN_DANGER = "danger"
SPAWN_LOOT = "loot"

PLAYER_SPAWN_LIFT = 1.0
DANGER_SPAWN_LIFT = 0.5
LOOT_SPAWN_LIFT = 0.25

# (base, danger slope); Shaft and DeadEnd sit above Room/Corridor at every danger.
DANGER_SPAWN_THRESHOLDS: Dict[LevelNodeType, Tuple[float, float]] = {
    LevelNodeType.ROOM: (0.10, 0.45),
    LevelNodeType.CORRIDOR: (0.10, 0.45),
    LevelNodeType.JUNCTION: (0.12, 0.40),
    LevelNodeType.DEAD_END: (0.35, 0.55),
    LevelNodeType.SHAFT: (0.40, 0.55),
}

# (base, complexity slope)
LOOT_SPAWN_THRESHOLDS: Dict[LevelNodeType, Tuple[float, float]] = {
    LevelNodeType.ROOM: (0.20, 0.25),
    LevelNodeType.CORRIDOR: (0.08, 0.10),
    LevelNodeType.JUNCTION: (0.12, 0.20),
    LevelNodeType.DEAD_END: (0.45, 0.25),
    LevelNodeType.SHAFT: (0.15, 0.15),
}


# --- Records ---


@dataclass(frozen=True)
class LevelNode:
    id: int
    type: LevelNodeType
    position: Vec3
    connections: Tuple[int, ...]


@dataclass(frozen=True)
class LevelGraph:
    nodes: Tuple[LevelNode, ...]

    def __len__(self) -> int:
        return len(self.nodes)

    def __iter__(self) -> Iterator[LevelNode]:
        return iter(self.nodes)

    def node(self, node_id: int) -> LevelNode:
        return self.nodes[node_id]

    def degree(self, node_id: int) -> int:
        return len(self.nodes[node_id].connections)

    def edges(self) -> List[Tuple[int, int]]:
        """Undirected edges as ``(low, high)`` pairs in ascending order."""
        return sorted(
            (node.id, other)
            for node in self.nodes
            for other in node.connections
            if node.id < other
        )

    def is_connected(self) -> bool:
        if not self.nodes:
            return False
        seen = {0}
        queue = deque([0])
        while queue:
            current = queue.popleft()
            for neighbour in self.nodes[current].connections:
                if neighbour not in seen:
                    seen.add(neighbour)
                    queue.append(neighbour)
        return len(seen) == len(self.nodes)


@dataclass(frozen=True)
class LevelMeshChunk:
    node_id: int
    mesh_tag: str


@dataclass(frozen=True)
class LevelSpawnPoint:
    node_id: int
    position: Vec3
    category: str


@dataclass(frozen=True)
class LevelGenOptions:
    seed: int
    target_nodes: int
    density: float
    danger: float
    complexity: float = 0.5

    def validate(self) -> None:
        """Reject out-of-range options before any generation work happens."""
        if not isinstance(self.seed, int) or not 0 <= self.seed <= U32_MASK:
            raise ValueError(f"seed must be an unsigned 32-bit integer, got {self.seed!r}")
        if not isinstance(self.target_nodes, int) or self.target_nodes <= 1:
            raise ValueError(f"target_nodes must be an integer > 1, got {self.target_nodes!r}")
        if not (0.0 < self.density <= 1.0):
            raise ValueError(f"density must be in (0, 1], got {self.density!r}")
        if not (0.0 <= self.danger <= 1.0):
            raise ValueError(f"danger must be in [0, 1], got {self.danger!r}")
        if not (0.0 <= self.complexity <= 1.0):
            raise ValueError(f"complexity must be in [0, 1], got {self.complexity!r}")

    @property
    def base_step(self) -> float:
        return 2.0 + self.density * 4.0


@dataclass(frozen=True)
class LevelGenResult:
    graph: LevelGraph
    mesh_chunks: Tuple[LevelMeshChunk, ...]
    spawn_points: Tuple[LevelSpawnPoint, ...]


# --- Per-node hashed decisions ---


def chunk_variant(seed: int, node_id: int, node_type: LevelNodeType) -> int:
    value = (
        (seed & U32_MASK)
        ^ ((node_id * VARIANT_NODE_MUL) & U32_MASK)
        ^ ((int(node_type) * VARIANT_TYPE_MUL) & U32_MASK)
    )
    return value & 3


def junction_probability(complexity: float) -> float:
    return 0.06 + 0.22 * complexity


def shaft_probability(danger: float) -> float:
    return 0.04 + 0.26 * danger


def room_share(complexity: float) -> float:
    return 0.62 - 0.25 * complexity


def select_node_type(options: LevelGenOptions, node_id: int) -> LevelNodeType:
    """Type of an interior node.

    Junctions take the bottom of the roll and shafts the top, so raising
    complexity only turns rooms and corridors into junctions and raising
    danger only turns them into shafts.
    """
    if node_id == 0:
        return LevelNodeType.ROOM
    if node_id == options.target_nodes - 1:
        return LevelNodeType.DEAD_END

    roll = mix01(options.seed, node_id, SALT_NODE_TYPE)
    if roll < junction_probability(options.complexity):
        return LevelNodeType.JUNCTION
    if roll >= 1.0 - shaft_probability(options.danger):
        return LevelNodeType.SHAFT
    if mix01(options.seed, node_id, SALT_ROOM_SPLIT) < room_share(options.complexity):
        return LevelNodeType.ROOM
    return LevelNodeType.CORRIDOR


def junction_activation(options: LevelGenOptions, node_id: int) -> float:
    """Complexity above which ``node_id`` is a junction (``inf`` for fixed nodes)."""
    if node_id == 0 or node_id == options.target_nodes - 1:
        return math.inf
    roll = mix01(options.seed, node_id, SALT_NODE_TYPE)
    return (roll - 0.06) / 0.22


def extra_edge_activation(
    roll: float, attempt: int, density: float, junction_from: float = math.inf
) -> float:
    """Lowest complexity at which an extra-edge roll succeeds.

    The chance is ``(0.10 + 0.45 * complexity) * (0.5 + 0.5 * density)``,
    halved for the second attempt and raised by half once the node is a
    junction.  It never falls as complexity rises, so the set of complexities
    where the roll succeeds starts at the returned value.
    """
    scale = (0.5 + 0.5 * density) * 0.5 ** attempt
    plain = (roll / scale - 0.10) / 0.45
    if plain < junction_from:
        return plain
    boosted = (roll / (scale * JUNCTION_EDGE_BONUS) - 0.10) / 0.45
    return max(boosted, junction_from)


def danger_spawn_threshold(node_type: LevelNodeType, danger: float, density: float) -> float:
    base, slope = DANGER_SPAWN_THRESHOLDS[node_type]
    return (base + slope * danger) * (0.75 + 0.25 * density)


def loot_spawn_threshold(node_type: LevelNodeType, complexity: float, density: float) -> float:
    base, slope = LOOT_SPAWN_THRESHOLDS[node_type]
    return (base + slope * complexity) * (0.8 + 0.2 * density)


# --- Generator ---


class _Link(NamedTuple):
    activation: float
    node_id: int
    target: int


def _offset(position: Vec3, direction: Vec3, distance: float) -> Vec3:
    return (
        position[0] + direction[0] * distance,
        position[1] + direction[1] * distance,
        position[2] + direction[2] * distance,
    )


def _distance_sq(a: Vec3, b: Vec3) -> float:
    return (a[0] - b[0]) ** 2 + (a[1] - b[1]) ** 2 + (a[2] - b[2]) ** 2


class _LevelBuilder:
    """Mutable generation state; discarded once the graph is frozen."""

    def __init__(self, options: LevelGenOptions) -> None:
        self.options = options
        self.rng = GameRNG(seed=options.seed)
        self.base_step = options.base_step
        self.min_separation_sq = (MIN_SEPARATION_FACTOR * self.base_step) ** 2
        self.positions: List[Vec3] = []
        self.types: List[LevelNodeType] = []
        self.adjacency: List[Set[int]] = []
        self.links: List[_Link] = []
        self.fallback_placements = 0
        self.links_applied = 0

    # --- Topology ---
    def degree(self, node_id: int) -> int:
        return len(self.adjacency[node_id])

    def connect(self, a: int, b: int) -> None:
        if a == b:
            raise RuntimeError(f"Refusing self-loop on node {a}")
        self.adjacency[a].add(b)
        self.adjacency[b].add(a)

    def sample_branch_parent(self, limit: int) -> Optional[int]:
        """Weighted pick among nodes below ``limit``, favouring low degree."""
        candidates = [n for n in range(limit) if self.degree(n) < MAX_DEGREE]
        if not candidates:
            return None
        weights = [max(1, 6 - self.degree(n)) for n in candidates]
        return int(self.rng.weighted_choice(candidates, weights))

    def select_parent(self, node_id: int) -> int:
        """Tree parent of ``node_id``; complexity-window branches are queued as links."""
        if node_id == 1:
            return 0
        roll = mix01(self.options.seed, node_id, SALT_BRANCH)
        if roll < BRANCH_BASE:
            parent = self.sample_branch_parent(node_id)
            if parent is not None:
                return parent
        elif roll < BRANCH_BASE + BRANCH_SLOPE:
            # The chain edge stays; the branch parent joins once complexity
            # reaches the roll.
            target = self.sample_branch_parent(node_id - 1)
            if target is not None:
                activation = (roll - BRANCH_BASE) / BRANCH_SLOPE
                self.links.append(_Link(activation, node_id, target))
        # Links are applied after the tree is complete, so the previous node
        # holds only its parent edge here.
        return node_id - 1

    # --- Placement ---
    def is_free(self, candidate: Vec3) -> bool:
        return all(
            _distance_sq(candidate, existing) >= self.min_separation_sq
            for existing in self.positions
        )

    def step_direction(self, node_type: LevelNodeType) -> Vec3:
        if node_type == LevelNodeType.SHAFT:
            danger = self.options.danger
            if self.rng.get_float() < 0.55 + 0.35 * danger:
                going_down = self.rng.get_float() < 0.5 + 0.4 * danger
                return (0.0, -1.0, 0.0) if going_down else (0.0, 1.0, 0.0)
        return CARDINAL_DIRECTIONS[self.rng.get_int(0, len(CARDINAL_DIRECTIONS) - 1)]

    def place(self, parent: int, node_type: LevelNodeType) -> Vec3:
        step = self.base_step * STEP_SCALE.get(node_type, 1.0)
        origin = self.positions[parent]
        for attempt in range(PLACEMENT_ATTEMPTS):
            direction = self.step_direction(node_type)
            # Later attempts reach a little further out.
            candidate = _offset(origin, direction, step * (1.0 + 0.15 * attempt))
            if self.is_free(candidate):
                return candidate

        # Stacking one base step above the highest node always clears the
        # separation radius.
        self.fallback_placements += 1
        top = max(position[1] for position in self.positions)
        fallback = (origin[0], top + self.base_step, origin[2])
        log.debug(
            "Placement attempts exhausted, stacking node",
            parent=parent,
            position=fallback,
        )
        return fallback

    # --- Extra edges ---
    def queue_extra_edges(self, node_id: int, parent: int) -> None:
        """Queue links from ``node_id`` to its nearest earlier nodes.

        Attempt ``n`` targets the ``n``-th nearest node other than the parent.
        """
        opts = self.options
        position = self.positions[node_id]
        nearby = sorted(
            (_distance_sq(position, self.positions[other]), other)
            for other in range(node_id)
            if other != parent
        )
        junction_from = junction_activation(opts, node_id)
        for attempt, (dist_sq, other) in enumerate(nearby[:EXTRA_EDGE_ATTEMPTS]):
            roll = mix01(opts.seed, node_id, SALT_EXTRA_EDGES[attempt])
            reach = math.sqrt(dist_sq) / self.base_step - EXTRA_EDGE_BASE_REACH - opts.density
            activation = max(
                reach, extra_edge_activation(roll, attempt, opts.density, junction_from)
            )
            if activation <= 1.0:
                self.links.append(_Link(activation, node_id, other))

    def apply_links(self, complexity: float) -> None:
        for link in sorted(self.links):
            if link.activation > complexity:
                break
            a, b = link.node_id, link.target
            if b in self.adjacency[a]:
                continue
            if self.degree(a) >= MAX_DEGREE or self.degree(b) >= MAX_DEGREE:
                continue
            self.connect(a, b)
            self.links_applied += 1

    # --- Driver ---
    def grow(self) -> None:
        opts = self.options
        self.positions.append((0.0, 0.0, 0.0))
        self.types.append(LevelNodeType.ROOM)
        self.adjacency.append(set())

        for node_id in range(1, opts.target_nodes):
            node_type = select_node_type(opts, node_id)
            parent = self.select_parent(node_id)
            position = self.place(parent, node_type)
            self.positions.append(position)
            self.types.append(node_type)
            self.adjacency.append(set())
            self.connect(node_id, parent)
            self.queue_extra_edges(node_id, parent)

    def run(self) -> LevelGraph:
        self.grow()
        self.apply_links(self.options.complexity)
        nodes = tuple(
            LevelNode(
                id=node_id,
                type=self.types[node_id],
                position=self.positions[node_id],
                connections=tuple(sorted(self.adjacency[node_id])),
            )
            for node_id in range(self.options.target_nodes)
        )
        return LevelGraph(nodes=nodes)


def _build_spawn_points(options: LevelGenOptions, graph: LevelGraph) -> Tuple[LevelSpawnPoint, ...]:
    spawns: List[LevelSpawnPoint] = []
    for node in graph:
        pos = node.position
        if node.id == 0:
            spawns.append(
                LevelSpawnPoint(0, _offset(pos, (0.0, 1.0, 0.0), PLAYER_SPAWN_LIFT), SPAWN_PLAYER_START)
            )
            continue
        danger_roll = mix01(options.seed, node.id, SALT_SPAWN_DANGER)
        if danger_roll < danger_spawn_threshold(node.type, options.danger, options.density):
            spawns.append(
                LevelSpawnPoint(node.id, _offset(pos, (0.0, 1.0, 0.0), DANGER_SPAWN_LIFT), SPAWN_DANGER)
            )
        loot_roll = mix01(options.seed, node.id, SALT_SPAWN_LOOT)
        if loot_roll < loot_spawn_threshold(node.type, options.complexity, options.density):
            spawns.append(
                LevelSpawnPoint(node.id, _offset(pos, (0.0, 1.0, 0.0), LOOT_SPAWN_LIFT), SPAWN_LOOT)
            )

    if not any(spawn.category == SPAWN_PLAYER_START for spawn in spawns):
        log.warning("No player_start produced, injecting at node 0")
        origin = graph.node(0).position
        spawns.insert(
            0, LevelSpawnPoint(0, _offset(origin, (0.0, 1.0, 0.0), PLAYER_SPAWN_LIFT), SPAWN_PLAYER_START)
        )
    return tuple(spawns)


def generate_level(options: LevelGenOptions) -> LevelGenResult:
    """Generate a connected level graph, its mesh chunks and spawn points."""
    options.validate()
    log.debug(
        "Generating level",
        seed=options.seed,
        target_nodes=options.target_nodes,
        density=options.density,
        danger=options.danger,
        complexity=options.complexity,
    )

    builder = _LevelBuilder(options)
    graph = builder.run()
    if not graph.is_connected():
        # Every node is attached to an earlier one, so this is a logic error.
        log.error("Generated level graph is disconnected", seed=options.seed)
        raise RuntimeError("Level generation produced a disconnected graph")

    mesh_chunks = tuple(
        LevelMeshChunk(node.id, format_mesh_tag(node.type, chunk_variant(options.seed, node.id, node.type)))
        for node in graph
    )
    spawn_points = _build_spawn_points(options, graph)

    log.info(
        "Level generated",
        seed=options.seed,
        nodes=len(graph),
        edges=len(graph.edges()),
        spawns=len(spawn_points),
        links=builder.links_applied,
        stacked=builder.fallback_placements,
    )
    return LevelGenResult(graph=graph, mesh_chunks=mesh_chunks, spawn_points=spawn_points)


__all__ = [
    "LevelNodeType",
    "LevelNode",
    "LevelGraph",
    "LevelMeshChunk",
    "LevelSpawnPoint",
    "LevelGenOptions",
    "LevelGenResult",
    "chunk_variant",
    "select_node_type",
    "junction_activation",
    "extra_edge_activation",
    "generate_level",
    "SPAWN_PLAYER_START",
    "SPAWN_DANGER",
    "SPAWN_LOOT",
]
