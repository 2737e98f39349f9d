from cpgscan.cpg import accepted_clusters, cluster_cpg_sites, find_cpg_sites


def _seq_with_cpgs(length: int, sites: list[int]) -> str:
    seq = ["A"] * length
    for s in sites:
        seq[s] = "C"
        seq[s + 1] = "G"
    return "".join(seq)


def test_find_cpg_sites_reports_cytosine_offsets():
    assert find_cpg_sites("ACGTCGAACG") == [1, 4, 8]


def test_find_cpg_sites_adjacent_and_empty():
    assert find_cpg_sites("CGCG") == [0, 2]
    assert find_cpg_sites("") == []
    assert find_cpg_sites("C") == []


def test_clustering_merges_close_sites():
    assert cluster_cpg_sites([5, 12]) == [[5, 12]]


def test_clustering_splits_distant_sites():
    assert cluster_cpg_sites([5, 20]) == [[5], [20]]


def test_clustering_boundary_separation_is_inclusive():
    assert cluster_cpg_sites([5, 15]) == [[5, 15]]
    assert cluster_cpg_sites([5, 16]) == [[5], [16]]


def test_accepted_cluster_padding():
    seq = _seq_with_cpgs(100, [40, 45])
    clusters = list(accepted_clusters(seq))
    assert len(clusters) == 1
    c = clusters[0]
    assert c.sites == (40, 45)
    assert (c.sub_start, c.sub_end) == (30, 55)
    assert c.num_sites == 2


def test_cluster_near_start_is_skipped():
    # sub_start = 20 - 10 = 10, not strictly greater than 10
    seq = _seq_with_cpgs(100, [20, 60])
    assert [c.first for c in accepted_clusters(seq)] == [60]


def test_wide_cluster_is_skipped():
    sites = list(range(30, 240, 10))  # span 200
    seq = _seq_with_cpgs(300, sites)
    assert list(accepted_clusters(seq)) == []
    narrower = list(range(30, 230, 10))  # span 190
    assert len(list(accepted_clusters(_seq_with_cpgs(300, narrower)))) == 1
