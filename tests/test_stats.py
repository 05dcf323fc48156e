import random

import pytest

from proxy_bench.stats import NO_DATA, PERCENTILES, distribution, render_report, summarize


def test_uniform_latencies():
    report = summarize([10] * 15)
    assert report.count == 15
    assert report.minimum == 10
    assert report.maximum == 10
    assert report.mean == 10
    for p in PERCENTILES:
        assert report.percentile(p) == 10


def test_nearest_rank_rounds_up():
    report = summarize(range(1, 101))
    assert report.percentile(50.0) == 50
    assert report.percentile(90.0) == 90
    assert report.percentile(99.0) == 99
    assert report.percentile(99.9) == 100
    assert report.minimum == 1
    assert report.maximum == 100
    assert report.mean == pytest.approx(50.5)


def test_small_sample_uses_upper_rank():
    report = summarize([3, 1])
    # ceil(0.5 * 2) = 1 -> smallest value
    assert report.percentile(50.0) == 1
    assert report.percentile(90.0) == 3


def test_percentiles_are_monotonic():
    rng = random.Random(7)
    for _ in range(20):
        samples = [rng.randint(0, 500) for _ in range(rng.randint(1, 300))]
        report = summarize(samples)
        values = [report.percentile(p) for p in PERCENTILES]
        assert values == sorted(values)
        assert report.minimum <= values[0] and values[-1] <= report.maximum


def test_order_does_not_matter():
    samples = [5, 1, 9, 9, 3, 120, 7, 7, 7, 2]
    expected = summarize(samples)
    rng = random.Random(1)
    for _ in range(10):
        shuffled = samples[:]
        rng.shuffle(shuffled)
        assert summarize(shuffled) == expected


def test_distribution_buckets():
    assert distribution([3, 1, 3, 2, 3]) == [(1, 1), (2, 1), (3, 3)]


def test_empty_samples_report_no_data():
    report = summarize([])
    assert report.count == 0
    assert not report.has_data
    assert report.minimum is None and report.maximum is None and report.mean is None
    assert all(report.percentile(p) is None for p in PERCENTILES)

    text = render_report(report, 0.0)
    assert f"Percentiles: {NO_DATA}" in text
    assert f"Minimum: {NO_DATA}" in text


def test_render_report():
    text = render_report(summarize([10, 20]), 123.456)
    assert "RPS: 123.46" in text
    assert "p50: 10 ms" in text
    assert "p999: 20 ms" in text
    assert "Mean: 15.00 ms" in text


def test_as_dict_labels():
    data = summarize([4]).as_dict()
    assert data["count"] == 1
    assert data["percentiles_ms"] == {"p50": 4, "p90": 4, "p99": 4, "p999": 4}


def test_invalid_percentile():
    with pytest.raises(ValueError):
        summarize([1, 2, 3], percentiles=(0.0,))


@pytest.mark.parametrize("total, expected", [
    (1000, 999),
    (2000, 1998),
    (10000, 9990),
])
def test_p999_rank_is_exact_for_round_sample_counts(total, expected):
    report = summarize(range(1, total + 1))
    assert report.percentile(99.9) == expected
    assert report.percentile(99.0) == total * 99 // 100
    assert report.percentile(90.0) == total * 9 // 10
