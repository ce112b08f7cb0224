"""Tests for cutting networks into aggregation groups and labeling them"""

import numpy as np
import pytest
from conftest import groups

from stream_aggregation.exceptions import InvalidLocationError, InvalidParameterError, InvalidPolicyError
from stream_aggregation.network.graph import StreamNetwork
from stream_aggregation.network.labels import label_components
from stream_aggregation.network.remap import remap_to_source
from stream_aggregation.network.segment import default_segment_length, segment_network
from stream_aggregation.schemas.aggregation import AggregationMethod, resolve_method


def _source_groups(network: StreamNetwork, method: str, **kwargs) -> set[frozenset[int]]:
    cut = segment_network(network, method, **kwargs)
    labels, _ = label_components(cut.graph)
    return groups(remap_to_source(labels.astype(float), cut.node_map, cut.n_source).astype(int))


class TestLabelComponents:
    """Tests for connected component labeling."""

    def test_labels_weak_components(self, two_basins: StreamNetwork) -> None:
        labels, n = label_components(two_basins.graph)

        assert n == 2
        assert groups(labels) == {frozenset(range(4)), frozenset(range(4, 10))}

    def test_labels_numbered_by_smallest_node(self, complex_network: StreamNetwork) -> None:
        labels, n = label_components(complex_network.graph)

        assert n == 4
        assert sorted(set(labels.tolist())) == [1, 2, 3, 4]
        assert labels[0] == 1
        assert labels[16] == 2
        assert labels[24] == 3
        assert labels[28] == 4

    def test_isolated_nodes_are_own_components(self) -> None:
        labels, n = label_components(StreamNetwork(np.array([-1, -1, -1])).graph)
        assert n == 3
        assert groups(labels) == {frozenset({0}), frozenset({1}), frozenset({2})}


class TestBetweenConfluences:
    """Tests for cutting at confluences."""

    def test_no_group_spans_confluence(self, confluence_network: StreamNetwork) -> None:
        """Two tributaries and the trunk are separate reaches."""
        result = _source_groups(confluence_network, "between-confluences")

        assert result == {frozenset(range(5)), frozenset(range(5, 10)), frozenset(range(10, 15))}

    def test_complex_network(self, complex_network: StreamNetwork) -> None:
        result = _source_groups(complex_network, AggregationMethod.BETWEEN_CONFLUENCES)

        expected = [
            {0, 1, 2, 3},
            {5, 6, 7},
            {4, 8},
            {12, 13, 14},
            {9, 10},
            {15},
            {11},
            set(range(16, 24)),
            {24},
            {25},
            {26, 27},
            {28},
        ]
        assert result == {frozenset(g) for g in expected}

    def test_cut_network_is_reordered(self, confluence_network: StreamNetwork) -> None:
        """Cut nodes are stored in topological order with a correspondence to source nodes."""
        cut = segment_network(confluence_network, "between-confluences")

        assert cut.n_nodes == 15
        assert cut.n_cuts == 2
        assert sorted(cut.node_map.tolist()) == list(range(15))
        assert [cut.graph.get_node_data(k) for k in range(15)] == cut.node_map.tolist()

    def test_unbranched_reach_is_one_group(self, single_reach: StreamNetwork) -> None:
        assert _source_groups(single_reach, "between-confluences") == {frozenset(range(25))}


class TestFixedLengthSegments:
    """Tests for subdividing reaches into fixed length segments."""

    def test_remainder_in_upstream_segment(self, single_reach: StreamNetwork) -> None:
        """25 nodes with L = 10 give 10, 10, 5 from downstream to upstream."""
        result = _source_groups(single_reach, "fixed-length-segments", segment_length=10)

        assert result == {frozenset(range(15, 25)), frozenset(range(5, 15)), frozenset(range(0, 5))}

    def test_exact_multiple(self) -> None:
        """20 nodes with L = 10 give two segments of 10."""
        network = StreamNetwork(np.append(np.arange(1, 20), -1))
        result = _source_groups(network, "fixed-length-segments", segment_length=10)

        assert result == {frozenset(range(10)), frozenset(range(10, 20))}

    @pytest.mark.parametrize("n_nodes", [1, 9, 10, 11, 25, 31])
    def test_piece_count(self, n_nodes: int) -> None:
        """A reach of n nodes with unit spacing splits into ceil(n / L) pieces."""
        network = StreamNetwork(np.append(np.arange(1, n_nodes), -1))
        result = _source_groups(network, "fixed-length-segments", segment_length=10)

        assert len(result) == int(np.ceil(n_nodes / 10))
        assert max(len(g) for g in result) <= 10

    def test_segments_restart_at_confluences(self, complex_network: StreamNetwork) -> None:
        """Segments never span a confluence and restart at each reach."""
        result = _source_groups(complex_network, "fixed-length-segments", segment_length=3)

        assert frozenset({21, 22, 23}) in result
        assert frozenset({18, 19, 20}) in result
        assert frozenset({16, 17}) in result
        assert frozenset({1, 2, 3}) in result
        assert frozenset({0}) in result
        assert frozenset({4, 8}) in result

    def test_diagonal_distances(self, grid_network: StreamNetwork) -> None:
        """Diagonal steps of 14.14 m with L = 30 m put 3 nodes in the downstream segment."""
        result = _source_groups(grid_network, "fixed-length-segments", segment_length=30.0)

        assert result == {frozenset({2, 3, 4}), frozenset({0, 1})}

    def test_default_segment_length(self, single_reach: StreamNetwork) -> None:
        """Default length is 11 cell sizes."""
        assert default_segment_length(single_reach) == 11.0
        result = _source_groups(single_reach, "fixed-length-segments")

        assert result == {frozenset(range(14, 25)), frozenset(range(3, 14)), frozenset(range(0, 3))}

    @pytest.mark.parametrize("length", [0, -10.0, float("nan")])
    def test_non_positive_length(self, single_reach: StreamNetwork, length: float) -> None:
        with pytest.raises(InvalidParameterError):
            segment_network(single_reach, "fixed-length-segments", segment_length=length)


class TestDrainageBasins:
    """Tests for the drainage basin policy."""

    def test_reuses_network(self, two_basins: StreamNetwork) -> None:
        cut = segment_network(two_basins, "drainage-basins")

        assert cut.graph is two_basins.graph
        np.testing.assert_array_equal(cut.node_map, np.arange(10))
        assert cut.n_cuts == 0

    def test_groups_are_basins(self, two_basins: StreamNetwork) -> None:
        assert _source_groups(two_basins, "drainage-basins") == {
            frozenset(range(4)),
            frozenset(range(4, 10)),
        }


class TestExplicitLocations:
    """Tests for cutting at user supplied nodes."""

    def test_locations_end_upstream_groups(self, complex_network: StreamNetwork) -> None:
        result = _source_groups(complex_network, "explicit-locations", locations=[2, 9])

        expected = [
            {0, 1, 2},
            {3, 4, 5, 6, 7, 8, 9, 12, 13, 14},
            {10, 11, 15},
            set(range(16, 24)),
            {24, 25, 26, 27},
            {28},
        ]
        assert result == {frozenset(g) for g in expected}

    def test_outlet_location_is_no_op(self, two_basins: StreamNetwork) -> None:
        result = _source_groups(two_basins, "explicit-locations", locations=[3, 9])
        assert result == {frozenset(range(4)), frozenset(range(4, 10))}

    def test_empty_locations(self, two_basins: StreamNetwork) -> None:
        assert len(_source_groups(two_basins, "explicit-locations", locations=[])) == 2

    @pytest.mark.parametrize("locations", [[100], [-1], [0, 10]])
    def test_location_outside_network(self, two_basins: StreamNetwork, locations: list[int]) -> None:
        with pytest.raises(InvalidLocationError):
            segment_network(two_basins, "explicit-locations", locations=locations)

    def test_missing_locations(self, two_basins: StreamNetwork) -> None:
        with pytest.raises(InvalidLocationError):
            segment_network(two_basins, "explicit-locations")

    def test_non_integer_locations(self, two_basins: StreamNetwork) -> None:
        with pytest.raises(InvalidLocationError):
            segment_network(two_basins, "explicit-locations", locations=[1.5])


class TestMethodResolution:
    """Tests for selecting the policy by name."""

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("reach", AggregationMethod.FIXED_LENGTH_SEGMENTS),
            ("betweenconfluences", AggregationMethod.BETWEEN_CONFLUENCES),
            ("drainage_basins", AggregationMethod.DRAINAGE_BASINS),
            ("Locations", AggregationMethod.EXPLICIT_LOCATIONS),
            ("between", AggregationMethod.BETWEEN_CONFLUENCES),
            ("fixed", AggregationMethod.FIXED_LENGTH_SEGMENTS),
        ],
    )
    def test_aliases(self, name: str, expected: AggregationMethod) -> None:
        assert resolve_method(name) == expected

    @pytest.mark.parametrize("name", ["knickpoints", "", "x", None])
    def test_unknown_method(self, two_basins: StreamNetwork, name: str) -> None:
        with pytest.raises(InvalidPolicyError):
            segment_network(two_basins, name)
