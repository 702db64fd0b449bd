import numpy as np
import pytest

from noodle_core import MatchingArena, format_matching, matching_pairs, random_matching, verify_matching


@pytest.mark.parametrize("n", [1, 2, 3, 7, 50])
def test_random_matching_keeps_degree_and_symmetry(n, rng):
    for _ in range(200):
        matrix = random_matching(n, rng)
        assert matrix.shape == (n, n)
        assert (matrix == matrix.T).all()
        degree = 2 * np.diagonal(matrix) + (matrix.sum(axis=1) - np.diagonal(matrix))
        assert (degree == 2).all()
        verify_matching(matrix)


def test_single_noodle_is_always_self_tied(rng):
    for _ in range(20):
        assert random_matching(1, rng).tolist() == [[1]]


def test_zero_noodles_gives_empty_matrix(rng):
    matrix = random_matching(0, rng)
    assert matrix.shape == (0, 0)


def test_negative_size_is_rejected(rng):
    with pytest.raises(ValueError):
        random_matching(-1, rng)
    with pytest.raises(ValueError):
        MatchingArena(-3)


def test_seeded_generation_is_reproducible():
    a = random_matching(20, np.random.default_rng(7))
    b = random_matching(20, np.random.default_rng(7))
    assert (a == b).all()


def test_two_noodles_reach_every_pairing():
    # three pairings of four ends: two self ties (1/3) or a doubled cross tie (2/3)
    rng = np.random.default_rng(2024)
    seen = set()
    crossed = 0
    for _ in range(3000):
        matrix = random_matching(2, rng)
        seen.add(tuple(matrix.ravel().tolist()))
        crossed += int(matrix[0, 1] == 2)
    assert seen == {(1, 0, 0, 1), (0, 2, 2, 0)}
    assert abs(crossed / 3000 - 2 / 3) < 0.05


def test_matching_pairs_lists_each_tie(make_matrix):
    matrix = make_matrix(4, [(0, 0), (1, 2), (1, 2), (3, 3)])
    assert matching_pairs(matrix) == [(0, 0), (1, 2), (1, 2), (3, 3)]


def test_matching_pairs_count_equals_noodles(rng):
    matrix = random_matching(30, rng)
    assert len(matching_pairs(matrix)) == 30


def test_arena_matches_fresh_matrices():
    arena = MatchingArena(25)
    arena_rng = np.random.default_rng(99)
    fresh_rng = np.random.default_rng(99)
    for _ in range(50):
        reused = arena.draw(arena_rng)
        fresh = random_matching(25, fresh_rng)
        assert (reused == fresh).all()


def test_arena_reset_clears_previous_draw(rng):
    arena = MatchingArena(10)
    arena.draw(rng)
    arena.reset()
    assert not arena.matrix.any()


def test_verify_matching_rejects_broken_matrices(make_matrix):
    asymmetric = make_matrix(2, [(0, 1), (0, 1)])
    asymmetric[0, 1] = 1
    with pytest.raises(AssertionError):
        verify_matching(asymmetric)

    overfull = make_matrix(2, [(0, 0), (0, 1)])
    with pytest.raises(AssertionError):
        verify_matching(overfull)


def test_format_matching_aligns_rows(make_matrix):
    matrix = make_matrix(3, [(0, 0), (1, 2), (1, 2)])
    assert format_matching(matrix) == "   1    0    0\n   0    0    2\n   0    2    0"
