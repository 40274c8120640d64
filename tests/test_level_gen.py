import pytest

from game.procedural.chunk_tag import LevelChunkTag, LevelNodeType
from game.world.level_gen import (
    CARDINAL_DIRECTIONS,
    PLACEMENT_ATTEMPTS,
    SPAWN_DANGER,
    SPAWN_PLAYER_START,
    LevelGenOptions,
    _LevelBuilder,
    chunk_variant,
    extra_edge_activation,
    generate_level,
    select_node_type,
)


def _options(**overrides):
    params = dict(seed=1337, target_nodes=32, density=0.5, danger=0.3, complexity=0.5)
    params.update(overrides)
    return LevelGenOptions(**params)


def _count_type(result, node_type):
    return sum(1 for node in result.graph if node.type == node_type)


def _count_danger(result):
    return sum(1 for spawn in result.spawn_points if spawn.category == SPAWN_DANGER)


def test_generation_is_deterministic():
    a = generate_level(_options())
    b = generate_level(_options())
    assert a == b


def test_different_seeds_diverge():
    a = generate_level(_options(seed=1))
    b = generate_level(_options(seed=2))
    assert a.graph != b.graph


@pytest.mark.parametrize("seed", [0, 1, 7, 1337, 2**32 - 1])
@pytest.mark.parametrize("target", [2, 5, 40])
def test_graph_invariants(seed, target):
    result = generate_level(_options(seed=seed, target_nodes=target))
    graph = result.graph
    assert len(graph) == target
    assert [node.id for node in graph] == list(range(target))
    assert graph.is_connected()
    for node in graph:
        assert node.id not in node.connections
        assert len(set(node.connections)) == len(node.connections)
        for other in node.connections:
            assert node.id in graph.node(other).connections


def test_start_and_end_node_types():
    graph = generate_level(_options(target_nodes=12)).graph
    assert graph.node(0).type == LevelNodeType.ROOM
    assert graph.node(11).type == LevelNodeType.DEAD_END


def test_mesh_chunks_follow_nodes():
    options = _options()
    result = generate_level(options)
    assert len(result.mesh_chunks) == len(result.graph)
    for chunk, node in zip(result.mesh_chunks, result.graph):
        assert chunk.node_id == node.id
        tag = LevelChunkTag.parse(chunk.mesh_tag)
        assert tag.node_type == node.type
        assert tag.variant == chunk_variant(options.seed, node.id, node.type)


def test_single_player_start_at_origin_node():
    result = generate_level(_options())
    starts = [s for s in result.spawn_points if s.category == SPAWN_PLAYER_START]
    assert len(starts) == 1
    assert starts[0].node_id == 0
    assert starts[0].position[1] > result.graph.node(0).position[1]


def test_positions_respect_separation():
    options = _options(target_nodes=30, density=0.8)
    graph = generate_level(options).graph
    min_sq = (0.45 * options.base_step) ** 2
    positions = [node.position for node in graph]
    for i, a in enumerate(positions):
        for b in positions[i + 1:]:
            dist_sq = sum((p - q) ** 2 for p, q in zip(a, b))
            assert dist_sq >= min_sq - 1e-9


@pytest.mark.parametrize("seed", [3, 99, 1337])
def test_danger_never_reduces_shafts_or_danger_spawns(seed):
    previous_shafts = -1
    previous_spawns = -1
    for danger in (0.0, 0.25, 0.5, 0.75, 1.0):
        result = generate_level(_options(seed=seed, danger=danger))
        shafts = _count_type(result, LevelNodeType.SHAFT)
        spawns = _count_danger(result)
        assert shafts >= previous_shafts
        assert spawns >= previous_spawns
        previous_shafts, previous_spawns = shafts, spawns


def test_node_types_turn_into_shafts_as_danger_rises():
    low = _options(danger=0.0)
    high = _options(danger=1.0)
    for node_id in range(low.target_nodes):
        before = select_node_type(low, node_id)
        after = select_node_type(high, node_id)
        assert after == before or after == LevelNodeType.SHAFT


def _branching(graph):
    return sum(1 for node in graph if graph.degree(node.id) >= 3)


@pytest.mark.parametrize("seed", range(40))
def test_complexity_never_reduces_branching(seed):
    previous_count = -1
    previous_edges = set()
    for complexity in (0.0, 0.25, 0.5, 0.75, 1.0):
        graph = generate_level(
            _options(seed=seed, target_nodes=20, density=0.7, danger=0.4, complexity=complexity)
        ).graph
        edges = set(graph.edges())
        assert edges >= previous_edges
        assert _branching(graph) >= previous_count
        previous_count, previous_edges = _branching(graph), edges


def test_complexity_does_not_move_nodes():
    low = generate_level(_options(complexity=0.0)).graph
    high = generate_level(_options(complexity=1.0)).graph
    assert [n.position for n in low] == [n.position for n in high]
    assert len(high.edges()) > len(low.edges())


def test_extra_edge_activation_tracks_chance():
    # chance(c) = (0.10 + 0.45c) * (0.5 + 0.5 * density)
    assert extra_edge_activation(0.325, 0, 1.0) == pytest.approx(0.5)
    assert extra_edge_activation(0.1625, 1, 1.0) == pytest.approx(0.5)
    assert extra_edge_activation(0.05, 0, 1.0) < 0.0
    # Junction from c=0.2 on: 1.5 * (0.10 + 0.45c) reaches 0.3 at c=0.2222...
    assert extra_edge_activation(0.3, 0, 1.0, junction_from=0.2) == pytest.approx(0.2 / 0.9)
    assert extra_edge_activation(0.3, 0, 1.0, junction_from=0.4) == pytest.approx(0.4)
    assert extra_edge_activation(0.3, 0, 1.0, junction_from=0.6) == pytest.approx(0.2 / 0.45)


def test_placement_falls_back_when_every_spot_is_taken():
    options = _options()
    builder = _LevelBuilder(options)
    step = options.base_step
    builder.positions.append((0.0, 0.0, 0.0))
    for attempt in range(PLACEMENT_ATTEMPTS):
        reach = step * (1.0 + 0.15 * attempt)
        for dx, dy, dz in CARDINAL_DIRECTIONS:
            builder.positions.append((dx * reach, dy * reach, dz * reach))
    builder.positions.append((30.0, 2.5, 30.0))

    position = builder.place(0, LevelNodeType.ROOM)
    assert position == (0.0, 2.5 + step, 0.0)
    assert builder.fallback_placements == 1
    assert builder.is_free(position)


@pytest.mark.parametrize(
    "overrides",
    [
        dict(target_nodes=1),
        dict(target_nodes=0),
        dict(density=0.0),
        dict(density=1.5),
        dict(danger=-0.1),
        dict(danger=1.1),
        dict(complexity=2.0),
        dict(seed=-1),
        dict(seed=2**32),
    ],
)
def test_invalid_options_rejected(overrides):
    with pytest.raises(ValueError):
        generate_level(_options(**overrides))


def test_edges_are_sorted_pairs():
    graph = generate_level(_options()).graph
    edges = graph.edges()
    assert edges == sorted(edges)
    assert all(a < b for a, b in edges)
    assert len(edges) >= len(graph) - 1
