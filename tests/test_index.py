import pytest

from juno.errors import DimensionMismatchError, IndexNotFoundError, InvalidArgumentError
from juno.models import IndexedItem
from juno.retrieval.index import VectorIndex


def _item(vector: list[float], path: str = "a.py", **extra: object) -> IndexedItem:
    return IndexedItem(vector=vector, metadata={"filePath": path, "text": str(vector), **extra})


def _index(tmp_path) -> VectorIndex:
    index = VectorIndex(tmp_path / "vectors")
    index.ensure_created()
    return index


def test_ensure_created_is_idempotent(tmp_path):
    index = VectorIndex(tmp_path / "vectors")
    assert not index.is_created()

    index.ensure_created()
    index.insert(_item([1.0, 0.0]))
    index.ensure_created()

    assert index.is_created()
    assert index.count() == 1


def test_query_returns_exact_match_first(tmp_path):
    index = _index(tmp_path)
    vectors = [[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0], [0.6, 0.8, 0.0]]
    for i, vector in enumerate(vectors):
        index.insert(_item(vector, path=f"f{i}.py"))

    for i, vector in enumerate(vectors):
        results = index.query(vector, top_k=1)
        assert len(results) == 1
        assert results[0].item.metadata["filePath"] == f"f{i}.py"
        assert results[0].distance == pytest.approx(0.0, abs=1e-9)
        assert results[0].score == pytest.approx(1.0)


def test_results_ordered_by_similarity_with_insertion_order_ties(tmp_path):
    index = _index(tmp_path)
    index.insert(_item([0.0, 1.0], path="orthogonal.py"))
    index.insert(_item([1.0, 0.0], path="first-tie.py"))
    index.insert(_item([2.0, 0.0], path="second-tie.py"))
    index.insert(_item([1.0, 1.0], path="diagonal.py"))

    results = index.query([1.0, 0.0], top_k=10)

    assert [r.item.metadata["filePath"] for r in results] == [
        "first-tie.py",
        "second-tie.py",
        "diagonal.py",
        "orthogonal.py",
    ]
    assert [r.rank for r in results] == [1, 2, 3, 4]
    distances = [r.distance for r in results]
    assert distances == sorted(distances)


def test_top_k_limits_results(tmp_path):
    index = _index(tmp_path)
    for i in range(5):
        index.insert(_item([1.0, float(i)]))

    assert len(index.query([1.0, 0.0], top_k=2)) == 2


@pytest.mark.parametrize("top_k", [0, -1])
def test_non_positive_top_k_is_rejected(tmp_path, top_k):
    index = _index(tmp_path)

    with pytest.raises(InvalidArgumentError):
        index.query([1.0], top_k=top_k)


def test_query_missing_index_fails(tmp_path):
    index = VectorIndex(tmp_path / "missing")

    with pytest.raises(IndexNotFoundError):
        index.query([1.0, 0.0], top_k=1)
    with pytest.raises(IndexNotFoundError):
        index.insert(_item([1.0, 0.0]))


def test_empty_index_returns_no_results(tmp_path):
    assert _index(tmp_path).query([1.0, 2.0], top_k=3) == []


def test_dimension_is_fixed_by_first_insert(tmp_path):
    index = _index(tmp_path)
    index.insert(_item([1.0, 0.0, 0.0]))

    assert index.dimension == 3
    with pytest.raises(DimensionMismatchError) as excinfo:
        index.insert(_item([1.0, 0.0]))
    assert (excinfo.value.expected, excinfo.value.actual) == (3, 2)
    with pytest.raises(DimensionMismatchError):
        index.query([1.0, 0.0], top_k=1)


def test_dimension_survives_reopen(tmp_path):
    _index(tmp_path).insert(_item([1.0, 2.0]))

    reopened = VectorIndex(tmp_path / "vectors")

    assert reopened.dimension == 2
    assert reopened.query([1.0, 2.0], top_k=1)[0].item.vector == [1.0, 2.0]


def test_delete_index_then_recreate_is_empty(tmp_path):
    index = _index(tmp_path)
    index.insert(_item([1.0, 0.0]))

    assert index.delete_index() is True
    assert not index.is_created()
    assert index.delete_index() is False

    index.ensure_created()
    assert index.count() == 0
    assert index.dimension is None


def test_delete_items_and_content_hashes_by_path(tmp_path):
    index = _index(tmp_path)
    index.insert(_item([1.0, 0.0], path="a.py", contentHash="h1"))
    index.insert(_item([0.0, 1.0], path="a.py", contentHash="h1"))
    index.insert(_item([1.0, 1.0], path="b.py", contentHash="h2"))

    assert index.content_hashes("a.py") == {"h1"}
    assert index.delete_items("a.py") == 2
    assert index.content_hashes("a.py") == set()
    assert index.count() == 1


def test_rejects_empty_or_non_finite_vectors(tmp_path):
    index = _index(tmp_path)

    with pytest.raises(InvalidArgumentError):
        index.insert(_item([]))
    with pytest.raises(InvalidArgumentError):
        index.insert(_item([float("nan"), 1.0]))


def test_replace_items_swaps_a_files_items(tmp_path):
    index = _index(tmp_path)
    index.insert(_item([1.0, 0.0], path="a.py", contentHash="old"))
    index.insert(_item([0.0, 1.0], path="b.py", contentHash="other"))

    evicted = index.replace_items("a.py", [_item([0.5, 0.5], contentHash="new"), _item([0.2, 0.8], contentHash="new")])

    assert evicted == 1
    assert index.content_hashes("a.py") == {"new"}
    assert index.count() == 3


def test_replace_items_keeps_previous_items_on_dimension_mismatch(tmp_path):
    index = _index(tmp_path)
    index.insert(_item([1.0, 0.0, 0.0], path="a.py", contentHash="old"))

    with pytest.raises(DimensionMismatchError):
        index.replace_items("a.py", [_item([1.0, 0.0, 0.0], contentHash="new"), _item([1.0, 0.0], contentHash="new")])

    assert index.content_hashes("a.py") == {"old"}
    assert index.count() == 1
