import pytest

from discussion_guide.config import ChunkingConfig
from discussion_guide.planning.chunker import VerseChunker, distribute_quota


def _references(count: int) -> list[str]:
    return [f"Psalm 23:{i}" for i in range(1, count + 1)]


@pytest.mark.parametrize("size", [1, 2, 3, 5])
@pytest.mark.parametrize("count", [1, 2, 6, 7, 13])
def test_chunks_preserve_order_and_bound_size(size: int, count: int) -> None:
    references = _references(count)
    chunks = VerseChunker(size).chunk(references)

    assert all(1 <= len(chunk) <= size for chunk in chunks)
    assert [ref for chunk in chunks for ref in chunk] == references


def test_quota_sums_to_total_for_every_valid_count() -> None:
    for total in range(1, 21):
        for chunk_count in range(1, 11):
            allocations = distribute_quota(total, chunk_count)
            assert sum(allocations) == total
            assert len(allocations) == chunk_count


def test_quota_remainder_goes_to_earliest_chunks() -> None:
    assert distribute_quota(7, 3) == [3, 2, 2]
    assert distribute_quota(2, 5) == [1, 1, 0, 0, 0]


def test_coverage_variant_gives_every_chunk_a_question() -> None:
    assert distribute_quota(2, 4, min_per_chunk=1) == [1, 1, 1, 1]
    assert distribute_quota(9, 4, min_per_chunk=1) == [3, 2, 2, 2]


def test_build_plan_attaches_allocations() -> None:
    plan = VerseChunker(2).build_plan(_references(5), 4)

    assert [chunk.index for chunk in plan] == [0, 1, 2]
    assert [chunk.references for chunk in plan] == [
        ("Psalm 23:1", "Psalm 23:2"),
        ("Psalm 23:3", "Psalm 23:4"),
        ("Psalm 23:5",),
    ]
    assert [chunk.allocated_questions for chunk in plan] == [2, 1, 1]


def test_build_plan_with_coverage_config() -> None:
    chunker = VerseChunker(2, config=ChunkingConfig(guarantee_coverage=True))
    plan = chunker.build_plan(_references(6), 2)

    assert [chunk.allocated_questions for chunk in plan] == [1, 1, 1]


def test_invalid_arguments_rejected() -> None:
    with pytest.raises(ValueError):
        VerseChunker(0)
    with pytest.raises(ValueError):
        distribute_quota(3, 0)
